# -*- coding: utf-8 -*-

"""
Asyncio transport over a non-blocking pyserial port.
"""

import asyncio
import logging
import os
import serial

from collections import deque
from typing import Any
from typing import Deque
from typing import Optional

from .exceptions import PlatformNotSupportedError

log = logging.getLogger('serlink.transport')


class SerialTransport(asyncio.Transport):
    """
    Byte transport for one open ``serial.Serial``.

    POSIX ports are driven by file descriptor readiness callbacks. Windows
    has no such callbacks for serial handles, so a polling task is used
    there instead.

    Losing the device (unplug, I/O error) is a fatal error: the port is
    closed and ``protocol.connection_lost(exc)`` receives the error.
    """

    def __init__(
            self,
            loop: asyncio.AbstractEventLoop,
            protocol: asyncio.Protocol,
            serial_instance: serial.Serial,
            *,
            read_size: int = 4096,
            high_water_mark: int = 65536,
            low_water_mark: int = 16384,
            poll_interval: float = 0.005
        ):
        super().__init__()

        self._loop = loop
        self._protocol = protocol
        self._serial = serial_instance
        self._read_size = read_size
        self._poll_interval = poll_interval
        self._high_water_mark = high_water_mark
        self._low_water_mark = low_water_mark

        self._pending: Deque[bytes] = deque()
        self._pending_size = 0
        self._closing = False
        self._writing_paused = False
        self._reading_paused = False
        self._fd_reader = False
        self._fd_writer = False
        self._poll_task: Optional[asyncio.Task] = None
        self._uses_fd = os.name == 'posix'

        self._serial.timeout = 0
        self._serial.write_timeout = 0

        self._watch()
        self._loop.call_soon(self._protocol.connection_made, self)

    def _watch(self):
        if self._uses_fd:
            try:
                self._loop.add_reader(self._serial.fileno(), self._on_readable)
            except (OSError, NotImplementedError) as e:
                raise PlatformNotSupportedError(f"Cannot watch serial port: {e}")
            self._fd_reader = True
        elif os.name == 'nt':
            self._poll_task = self._loop.create_task(self._poll())
        else:
            raise PlatformNotSupportedError(
                f"Platform {os.name} not supported for async serial"
            )

    async def _poll(self):
        try:
            # Runs until _finish_close so a closing transport still flushes
            while self._serial is not None:
                if not self._closing and not self._reading_paused and self._serial.in_waiting:
                    self._on_readable()
                if self._pending:
                    self._on_writable()
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            pass
        except (serial.SerialException, OSError) as e:
            self._fail(e)

    def _on_readable(self):
        if self._closing:
            return

        try:
            data = self._serial.read(self._read_size)
        except (serial.SerialException, OSError) as e:
            self._fail(e)
            return

        if data:
            self._protocol.data_received(data)

    def write(self, data: bytes):
        if self._closing or not data:
            return

        self._pending.append(bytes(data))
        self._pending_size += len(data)
        if self._uses_fd and not self._fd_writer:
            try:
                self._loop.add_writer(self._serial.fileno(), self._on_writable)
                self._fd_writer = True
            except (OSError, NotImplementedError) as e:
                log.debug("Falling back to immediate writes: %s", e)
                self._on_writable()
        self._update_write_flow()

    def _on_writable(self):
        while self._pending:
            chunk = self._pending[0]
            try:
                written = self._serial.write(chunk) or 0
            except (BlockingIOError, InterruptedError):
                break
            except (serial.SerialException, OSError) as e:
                self._fail(e)
                return

            self._pending_size -= written
            if written < len(chunk):
                self._pending[0] = chunk[written:]
                break
            self._pending.popleft()

        if not self._pending:
            self._stop_fd_writer()
            if self._closing:
                self._finish_close(None)
        self._update_write_flow()

    def _update_write_flow(self):
        if not self._writing_paused and self._pending_size >= self._high_water_mark:
            self._writing_paused = True
            self._notify_protocol('pause_writing')
        elif self._writing_paused and self._pending_size <= self._low_water_mark:
            self._writing_paused = False
            self._notify_protocol('resume_writing')

    def _notify_protocol(self, method: str):
        try:
            getattr(self._protocol, method)()
        except Exception as e:
            self._loop.call_exception_handler({
                'message': f'protocol.{method}() failed',
                'exception': e,
                'transport': self,
                'protocol': self._protocol,
            })

    def close(self):
        """Stop reading and close once buffered writes are flushed."""
        if self._closing:
            return
        self._closing = True
        self._stop_fd_reader()
        if not self._pending:
            self._finish_close(None)
        elif not self._uses_fd:
            self._on_writable()

    def abort(self):
        """Close immediately, dropping anything still buffered."""
        self._pending.clear()
        self._pending_size = 0
        self._closing = True
        self._finish_close(None)

    def _fail(self, exc: Exception):
        if self._serial is None:
            return
        log.debug("Serial transport failed: %s", exc)
        self._closing = True
        self._pending.clear()
        self._pending_size = 0
        self._finish_close(exc)

    def _finish_close(self, exc: Optional[Exception]):
        if self._serial is None:
            return

        self._stop_fd_reader()
        self._stop_fd_writer()
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()

        serial_instance, self._serial = self._serial, None
        try:
            if serial_instance.is_open:
                serial_instance.close()
        except (serial.SerialException, OSError) as e:
            log.debug("Error closing serial port: %s", e)
        finally:
            self._loop.call_soon(self._protocol.connection_lost, exc)

    def _stop_fd_reader(self):
        if self._fd_reader:
            self._fd_reader = False
            try:
                self._loop.remove_reader(self._serial.fileno())
            except (OSError, NotImplementedError):
                pass

    def _stop_fd_writer(self):
        if self._fd_writer:
            self._fd_writer = False
            try:
                self._loop.remove_writer(self._serial.fileno())
            except (OSError, NotImplementedError):
                pass

    def is_closing(self) -> bool:
        return self._closing

    def pause_reading(self):
        if self._reading_paused or self._closing:
            return
        self._reading_paused = True
        self._stop_fd_reader()

    def resume_reading(self):
        if not self._reading_paused or self._closing:
            return
        self._reading_paused = False
        if self._uses_fd:
            try:
                self._loop.add_reader(self._serial.fileno(), self._on_readable)
                self._fd_reader = True
            except (OSError, NotImplementedError) as e:
                self._fail(e)

    def is_reading(self) -> bool:
        return not self._reading_paused and not self._closing

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == 'serial':
            return self._serial
        elif name == 'write_buffer_size':
            return self._pending_size
        return default

    def get_write_buffer_size(self) -> int:
        return self._pending_size

    def get_write_buffer_limits(self):
        return self._low_water_mark, self._high_water_mark

    def set_write_buffer_limits(self, high: Optional[int] = None, low: Optional[int] = None):
        if high is None:
            high = 65536 if low is None else 4 * low
        if low is None:
            low = high // 4
        if not high >= low >= 0:
            raise ValueError(f"high ({high}) must be >= low ({low}) must be >= 0")

        self._high_water_mark = high
        self._low_water_mark = low
        self._update_write_flow()

    def can_write_eof(self):
        return False

    def write_eof(self):
        raise NotImplementedError("Serial ports do not support EOF")
