# -*- coding: utf-8 -*-

"""
Serlink - asyncio connection manager for line-oriented serial devices

Features:
- Device filtering by USB vendor/product id
- Hot-plug detection with automatic (re)connection
- Newline framing of inbound text across arbitrary chunk boundaries
- connect/disconnect/data/error events
- Teardown that always releases the port, whatever the exit path
"""

from .connection import SerialConnection
from .connection import ConnectionState

from .config import ConnectionOptions

from .events import EventBus
from .events import ConnectEvent
from .events import DisconnectEvent
from .events import DataEvent
from .events import ErrorEvent

from .framing import LineFramer
from .framing import LineReader
from .framing import LineWriter

from .matching import DeviceIdentity
from .matching import DeviceFilter
from .matching import matches

from .ports import SerialPort
from .ports import PortProvider

from .discovery import UsbSerialPort
from .discovery import UsbPortProvider

from .readloop import ReadLoop

from .streams import open_serial_connection
from .transport import SerialTransport

from .exceptions import SerlinkError
from .exceptions import PlatformNotSupportedError
from .exceptions import UserDeclinedError
from .exceptions import SerialConnectionError
from .exceptions import SerialReadError
from .exceptions import SerialWriteError
from .exceptions import SerialConfigError

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    # Lifecycle
    'SerialConnection',
    'ConnectionState',
    'ConnectionOptions',

    # Events
    'EventBus',
    'ConnectEvent',
    'DisconnectEvent',
    'DataEvent',
    'ErrorEvent',

    # Framing
    'LineFramer',
    'LineReader',
    'LineWriter',
    'ReadLoop',

    # Ports
    'DeviceIdentity',
    'DeviceFilter',
    'matches',
    'SerialPort',
    'PortProvider',
    'UsbSerialPort',
    'UsbPortProvider',

    # Transport
    'open_serial_connection',
    'SerialTransport',

    # Exceptions
    'SerlinkError',
    'PlatformNotSupportedError',
    'UserDeclinedError',
    'SerialConnectionError',
    'SerialReadError',
    'SerialWriteError',
    'SerialConfigError',
]
