# -*- coding: utf-8 -*-

"""
StreamReader/StreamWriter pairs over serial ports.
"""
import asyncio
import serial
import logging

from typing import Any
from typing import Callable
from typing import Optional
from typing import Tuple

from .transport import SerialTransport
from .exceptions import SerialConnectionError
from .exceptions import SerialConfigError

_DEFAULT_LIMIT = 64 * 1024  # 64KB

log = logging.getLogger('serlink.streams')

LostCallback = Callable[[Optional[Exception]], None]


class _SerialStreamProtocol(asyncio.StreamReaderProtocol):
    """StreamReaderProtocol that also reports the end of the connection."""

    def __init__(self, reader: asyncio.StreamReader, on_lost: Optional[LostCallback] = None):
        super().__init__(reader)
        self._on_lost = on_lost

    def connection_lost(self, exc: Optional[Exception]) -> None:
        # Report first so the owner can stop its readers before they see the error
        if self._on_lost is not None:
            try:
                self._on_lost(exc)
            except Exception:
                log.exception("on_lost callback failed")
        super().connection_lost(exc)


async def open_serial_connection(
    *,
    url: Optional[str] = None,
    port: Optional[str] = None,
    baudrate: int = 9600,
    limit: Optional[int] = None,
    on_lost: Optional[LostCallback] = None,
    **kwargs: Any
) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """
    Open a serial port and return a StreamReader/StreamWriter pair.

    Args:
        url: Serial port URL (e.g. 'loop://', 'rfc2217://host:port')
        port: Serial port name (e.g. '/dev/ttyACM0' or 'COM3')
        baudrate: Baud rate (default: 9600)
        limit: StreamReader buffer limit; reading pauses above it (default: 64KB)
        on_lost: Called with None on a normal close, or with the error
            that ended the connection (e.g. the device was unplugged)
        **kwargs: Additional pyserial parameters (bytesize, parity, ...)

    Raises:
        SerialConfigError: If neither url nor port is given
        SerialConnectionError: If the port cannot be opened

    Example:
        >>> reader, writer = await open_serial_connection(port='/dev/ttyACM0', baudrate=115200)
        >>> writer.write(b'PING\\n')
        >>> line = await reader.readline()
    """
    if not url and not port:
        raise SerialConfigError("Either 'url' or 'port' must be specified")

    loop = asyncio.get_running_loop()
    serial_instance = await _create_serial_instance(
        url=url, port=port, baudrate=baudrate, **kwargs
    )

    reader = asyncio.StreamReader(limit=limit or _DEFAULT_LIMIT)
    protocol = _SerialStreamProtocol(reader, on_lost)
    try:
        transport = SerialTransport(loop, protocol, serial_instance)
    except Exception:
        serial_instance.close()
        raise
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


async def _create_serial_instance(**kwargs: Any) -> serial.Serial:
    """
    Open a pyserial instance in the default executor.

    Opening may block (e.g. while the OS sets up a USB CDC device).
    """
    url = kwargs.pop('url', None)
    port = kwargs.pop('port', None)

    def create():
        if url:
            return serial.serial_for_url(url, **kwargs)
        return serial.Serial(port=port, **kwargs)

    try:
        return await asyncio.get_running_loop().run_in_executor(None, create)
    except serial.SerialException as e:
        raise SerialConnectionError(f"Failed to open serial port: {e}")
    except (OSError, ValueError) as e:
        raise SerialConnectionError(f"Unexpected error opening serial port: {e}")
