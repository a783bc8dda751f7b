# -*- coding: utf-8 -*-

"""
Connection lifecycle for a single line-oriented serial device.
"""
import asyncio
import enum
import json
import logging

from typing import Any
from typing import Callable
from typing import List
from typing import Optional
from typing import Set

from .config import ConnectionOptions
from .events import CONNECT
from .events import DATA
from .events import DISCONNECT
from .events import ERROR
from .events import ConnectEvent
from .events import DataEvent
from .events import DisconnectEvent
from .events import ErrorEvent
from .events import EventBus
from .exceptions import PlatformNotSupportedError
from .exceptions import SerialConnectionError
from .exceptions import SerialWriteError
from .exceptions import UserDeclinedError
from .framing import LineReader
from .framing import LineWriter
from .matching import matches
from .ports import PortProvider
from .ports import SerialPort
from .readloop import ReadLoop

log = logging.getLogger('serlink.connection')


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class SerialConnection:
    """
    Owns at most one open port and the pipelines around it.

    Lifecycle calls (connect, disconnect and the reconnects and removal
    teardowns scheduled by hot-plug notifications) run one at a time under
    an asyncio.Lock. Each call re-checks the state once it holds the lock,
    so a connect that overlaps another connect ends up as the
    already-connected no-op, and likewise for disconnect.

    Failures never escape the public coroutines: they are returned as
    False and, when they are faults rather than misuse, published as an
    ``error`` event.

    Example:
        >>> connection = SerialConnection(UsbPortProvider(), vendor_id=0x303A, product_id=0x1001)
        >>> connection.on('data', lambda event: print(event.record))
        >>> await connection.initialize()
        >>> await connection.send_line('LED 255 0 0')
    """

    def __init__(
            self,
            provider: PortProvider,
            options: Optional[ConnectionOptions] = None,
            *,
            events: Optional[EventBus] = None,
            **overrides: Any
        ):
        if options is None:
            options = ConnectionOptions.from_mapping(overrides)
        elif overrides:
            options = options.replace(**overrides)

        self._provider = provider
        self._options = options
        self.events = events if events is not None else EventBus()

        self._state = ConnectionState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._known_ports: List[SerialPort] = []
        self._unsubscribe_hotplug: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()

        # Owned by the current connection only
        self._port: Optional[SerialPort] = None
        self._remove_listener: Optional[Callable[[], None]] = None
        self._reader: Optional[LineReader] = None
        self._writer: Optional[LineWriter] = None
        self._read_loop: Optional[ReadLoop] = None

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def is_supported(self) -> bool:
        return self._provider.is_supported

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def port(self) -> Optional[SerialPort]:
        return self._port

    @property
    def known_ports(self) -> List[SerialPort]:
        return list(self._known_ports)

    def on(self, name: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self.events.on(name, callback)

    async def initialize(self) -> bool:
        """
        Start watching for ports and optionally connect to a known one.

        Meant to be called once per instance.
        """
        if not self.is_supported:
            self._emit_error(
                "Serial ports are not supported on this platform",
                PlatformNotSupportedError("No serial port provider available"),
            )
            return False

        self._unsubscribe_hotplug = self._provider.add_hotplug_listener(
            self._on_port_attached, self._on_port_detached
        )

        try:
            ports = await self._provider.get_ports()
        except Exception as e:
            log.error("Error listing ports: %s", e)
            self._unsubscribe_hotplug()
            self._unsubscribe_hotplug = None
            self._emit_error(f"Error listing ports: {e}", e)
            return False

        self._known_ports = [port for port in ports if self._is_matching(port)]
        log.info("Known matching ports: %d", len(self._known_ports))

        if self._options.auto_connect and self._known_ports:
            return await self.connect(self._known_ports[0])
        return True

    async def request_permission(self) -> bool:
        """
        Ask the provider for a port (e.g. through a picker) and connect to it.

        A cancelled selection returns False without an error event.
        """
        if not self.is_supported:
            self._emit_error(
                "Serial ports are not supported on this platform",
                PlatformNotSupportedError("No serial port provider available"),
            )
            return False

        try:
            port = await self._provider.request_port(self._options.request_filters())
        except UserDeclinedError:
            log.info("Port selection cancelled")
            return False
        except Exception as e:
            log.error("Error requesting port: %s", e)
            self._emit_error(f"Error requesting port: {e}", e)
            return False

        return await self.connect(port)

    async def connect(self, port: SerialPort) -> bool:
        async with self._lock:
            return await self._connect(port)

    async def disconnect(self) -> None:
        async with self._lock:
            await self._disconnect()

    async def aclose(self) -> None:
        """Stop watching for ports, disconnect and release the provider."""
        if self._unsubscribe_hotplug is not None:
            self._unsubscribe_hotplug()
            self._unsubscribe_hotplug = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.wait(set(self._tasks))

        await self.disconnect()
        await self._provider.aclose()

    async def __aenter__(self) -> "SerialConnection":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def send(self, text: str) -> bool:
        writer = self._writer
        if not self.is_connected or writer is None:
            log.warning("Cannot send: not connected")
            return False

        try:
            await writer.write(text)
        except Exception as e:
            log.error("Send error: %s", e)
            self._emit_error(f"Send error: {e}", e)
            return False
        return True

    async def send_line(self, text: str) -> bool:
        return await self.send(text + self._options.newline)

    async def send_record(self, value: Any) -> bool:
        """Send value as one line of JSON."""
        if not self.is_connected:
            log.warning("Cannot send: not connected")
            return False

        try:
            text = json.dumps(value)
        except (TypeError, ValueError) as e:
            log.error("Cannot serialize record: %s", e)
            self._emit_error(f"Cannot serialize record: {e}", SerialWriteError(str(e)))
            return False
        return await self.send_line(text)

    async def _connect(self, port: SerialPort) -> bool:
        if self._state is ConnectionState.CONNECTED:
            log.info("Already connected")
            return True

        self._state = ConnectionState.CONNECTING
        self._port = port
        options = self._options

        try:
            stream_reader, stream_writer = await port.open(options.baudrate)
            self._remove_listener = port.add_removal_listener(
                lambda: self._on_port_removed(port)
            )
            self._writer = LineWriter(stream_writer, encoding=options.encoding)
            self._reader = LineReader(
                stream_reader,
                encoding=options.encoding,
                newline=options.newline,
                read_size=options.read_size,
            )
        except asyncio.CancelledError:
            log.info("Connect to %s cancelled", port.identity)
            await self._release()
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as e:
            log.error("Connection error: %s", e)
            cause = e
            if not isinstance(e, SerialConnectionError):
                cause = SerialConnectionError(str(e))
                cause.__cause__ = e
            self._emit_error(f"Failed to connect to {port.identity}: {e}", cause)
            await self._release()
            self._state = ConnectionState.DISCONNECTED
            return False

        self._state = ConnectionState.CONNECTED
        log.info("Connected to %s at %d baud", port.identity, options.baudrate)
        self.events.emit(CONNECT, ConnectEvent(port))

        self._read_loop = ReadLoop(
            self._reader,
            on_record=self._publish_record,
            on_error=self._on_read_error,
            on_exit=self._on_read_loop_exit,
        )
        self._read_loop.start()
        return True

    async def _disconnect(self) -> None:
        if self._port is None:
            return

        self._state = ConnectionState.DISCONNECTING
        log.info("Disconnecting from %s", self._port.identity)

        await self._release()

        self._state = ConnectionState.DISCONNECTED
        self.events.emit(DISCONNECT, DisconnectEvent())

    async def _release(self) -> None:
        """Tear down everything the current connection holds; never raises."""
        read_loop, reader, writer = self._read_loop, self._reader, self._writer
        port = self._port

        if read_loop is not None:
            read_loop.keep_reading = False

        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

        await asyncio.gather(
            self._quietly("cancel reader", self._cancel_reader, read_loop, reader),
            self._quietly("close writer", writer.close if writer else None),
        )

        closures = []
        if read_loop is not None:
            closures.append(self._quietly(
                "wait for read loop", read_loop.wait_stopped, self._options.stop_timeout
            ))
        if writer is not None:
            closures.append(self._quietly("wait for writer", writer.wait_closed))
        await asyncio.gather(*closures)

        if port is not None:
            await self._quietly("close port", port.close)

        if reader is not None:
            reader.release()

        self._port = None
        self._reader = None
        self._writer = None
        self._read_loop = None

    @staticmethod
    def _cancel_reader(read_loop: Optional[ReadLoop], reader: Optional[LineReader]) -> None:
        if read_loop is not None:
            read_loop.cancel_reader()
        elif reader is not None:
            reader.cancel()

    @staticmethod
    async def _quietly(what: str, func: Optional[Callable[..., Any]], *args: Any) -> None:
        if func is None:
            return
        try:
            result = func(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            log.debug("Ignoring error during teardown (%s): %s", what, e)

    def _publish_record(self, record: str) -> None:
        self.events.emit(DATA, DataEvent(record))

    def _on_read_error(self, error: BaseException) -> None:
        self._emit_error(f"Read error: {error}", error)

    def _on_read_loop_exit(self, read_loop: ReadLoop) -> None:
        if self._read_loop is read_loop:
            self._read_loop = None

    def _on_port_removed(self, port: SerialPort) -> None:
        if port is not self._port:
            return

        log.info("Port %s was removed", port.identity)
        # Stop publishing before the teardown task gets to run
        if self._read_loop is not None:
            self._read_loop.keep_reading = False
        self._spawn(self._teardown_removed(port))

    async def _teardown_removed(self, port: SerialPort) -> None:
        async with self._lock:
            if port is self._port:
                await self._disconnect()

    def _on_port_attached(self, port: SerialPort) -> None:
        log.debug("Port attached: %s", port.identity)
        if not self._is_matching(port):
            return

        if port not in self._known_ports:
            self._known_ports.append(port)

        if self._options.auto_reconnect and self._state is ConnectionState.DISCONNECTED:
            self._spawn(self._reconnect(port))

    def _on_port_detached(self, port: SerialPort) -> None:
        log.debug("Port detached: %s", port.identity)
        self._known_ports = [known for known in self._known_ports if known is not port]

    async def _reconnect(self, port: SerialPort) -> bool:
        async with self._lock:
            if port not in self._known_ports:
                log.debug("Skipping reconnect, %s is gone again", port.identity)
                return False
            if self._state is not ConnectionState.DISCONNECTED:
                return False
            log.info("Reconnecting to %s", port.identity)
            return await self._connect(port)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_matching(self, port: SerialPort) -> bool:
        return matches(port.identity, self._options.device_filter)

    def _emit_error(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.events.emit(ERROR, ErrorEvent(message, cause))
