# -*- coding: utf-8 -*-

"""
Serlink exceptions
"""

class SerlinkError(Exception):
    """Base exception for all serlink errors"""
    pass

class PlatformNotSupportedError(SerlinkError):
    """No usable serial port provider on this platform"""
    pass

class UserDeclinedError(SerlinkError):
    """Port selection was cancelled; not reported as an error event"""
    pass

class SerialConnectionError(SerlinkError):
    """Failed to open or wire up a serial port"""
    pass

class SerialReadError(SerlinkError):
    """Reading from an open serial port failed"""
    pass

class SerialWriteError(SerlinkError):
    """Writing to an open serial port failed"""
    pass

class SerialConfigError(SerlinkError):
    """Invalid connection configuration"""
    pass
