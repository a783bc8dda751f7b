# -*- coding: utf-8 -*-

"""
Serial port discovery and hot-plug detection with pyserial.

pyserial has no attach/detach notifications, so UsbPortProvider rescans
``serial.tools.list_ports.comports()`` periodically while anyone listens.
"""
import asyncio
import inspect
import logging
import os

from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

from serial.tools import list_ports

from .exceptions import SerialConnectionError
from .exceptions import UserDeclinedError
from .matching import DeviceFilter
from .matching import DeviceIdentity
from .matching import matches
from .ports import PortListener
from .ports import PortProvider
from .ports import RemovalListener
from .ports import SerialPort
from .streams import open_serial_connection

log = logging.getLogger('serlink.discovery')

Chooser = Callable[
    [List["UsbSerialPort"]],
    Union[Optional["UsbSerialPort"], Awaitable[Optional["UsbSerialPort"]]],
]


class UsbSerialPort(SerialPort):
    """
    A port listed by pyserial (``ListPortInfo``).

    Removal is reported when a rescan no longer lists the device or when
    the open transport fails with an I/O error.
    """

    def __init__(self, info, *, limit: Optional[int] = None):
        self.device: str = info.device
        self.description: Optional[str] = getattr(info, 'description', None)
        self.serial_number: Optional[str] = getattr(info, 'serial_number', None)
        self._identity = DeviceIdentity(info.vid, info.pid)
        self._limit = limit
        self._writer: Optional[asyncio.StreamWriter] = None
        self._removal_listeners: List[RemovalListener] = []
        self._removed = False

    def __repr__(self) -> str:
        return f"<UsbSerialPort {self.device} {self._identity}>"

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    @property
    def is_removed(self) -> bool:
        return self._removed

    async def open(self, baudrate: int) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if self._writer is not None:
            raise SerialConnectionError(f"{self.device} is already open")
        if self._removed:
            raise SerialConnectionError(f"{self.device} is no longer present")

        reader, writer = await open_serial_connection(
            port=self.device,
            baudrate=baudrate,
            limit=self._limit,
            on_lost=self._connection_lost,
        )
        self._writer = writer
        return reader, writer

    async def close(self) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        writer.close()
        await writer.wait_closed()

    def add_removal_listener(self, callback: RemovalListener) -> Callable[[], None]:
        self._removal_listeners.append(callback)

        def remove():
            if callback in self._removal_listeners:
                self._removal_listeners.remove(callback)

        return remove

    def notify_removed(self) -> None:
        self._removed = True
        for callback in list(self._removal_listeners):
            try:
                callback()
            except Exception:
                log.exception("Removal listener failed for %s", self.device)

    def _connection_lost(self, exc: Optional[Exception]) -> None:
        self._writer = None
        if exc is not None:
            log.info("Lost %s: %s", self.device, exc)
            self.notify_removed()


def _first_candidate(candidates: List[UsbSerialPort]) -> Optional[UsbSerialPort]:
    return candidates[0] if candidates else None


class UsbPortProvider(PortProvider):
    """
    PortProvider backed by pyserial's port listing.

    Every listed port counts as already authorised. ``request_port`` hands
    the ports that pass the filters to a chooser (a picker UI, a prompt,
    ...) which returns one of them, or None to cancel.

    Args:
        chooser: Sync or async callable picking a port (default: first one)
        poll_interval: Seconds between hot-plug rescans
        limit: StreamReader buffer limit for opened ports
        scanner: Port listing function (default: list_ports.comports)
    """

    def __init__(
            self,
            *,
            chooser: Optional[Chooser] = None,
            poll_interval: float = 1.0,
            limit: Optional[int] = None,
            scanner: Callable[[], Sequence] = list_ports.comports
        ):
        self._chooser = chooser or _first_candidate
        self._poll_interval = poll_interval
        self._limit = limit
        self._scanner = scanner
        self._ports: Dict[str, UsbSerialPort] = {}
        self._listeners: List[Tuple[PortListener, PortListener]] = []
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def is_supported(self) -> bool:
        return os.name in ('posix', 'nt')

    async def get_ports(self) -> List[SerialPort]:
        await self._rescan(notify=False)
        return list(self._ports.values())

    async def request_port(self, filters: Sequence[DeviceFilter]) -> SerialPort:
        await self._rescan(notify=False)
        candidates = [
            port for port in self._ports.values()
            if not filters or any(matches(port.identity, f) for f in filters)
        ]

        choice = self._chooser(candidates)
        if inspect.isawaitable(choice):
            choice = await choice
        if choice is None:
            raise UserDeclinedError("No port selected")
        return choice

    def add_hotplug_listener(
            self,
            on_attach: PortListener,
            on_detach: PortListener
        ) -> Callable[[], None]:
        entry = (on_attach, on_detach)
        self._listeners.append(entry)
        if self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

        def remove():
            if entry in self._listeners:
                self._listeners.remove(entry)
            if not self._listeners:
                self._stop_polling()

        return remove

    async def aclose(self) -> None:
        self._listeners.clear()
        task = self._stop_polling()
        if task is not None:
            await asyncio.wait({task})

    def _stop_polling(self) -> Optional[asyncio.Task]:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _poll(self):
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self._rescan(notify=True)
            except Exception:
                log.exception("Port scan failed")

    async def _rescan(self, *, notify: bool) -> None:
        infos = await asyncio.get_running_loop().run_in_executor(None, self._scanner)
        present = {info.device: info for info in infos}

        # A port whose transport failed is stale even if the device is listed again
        gone = [
            device for device, port in self._ports.items()
            if device not in present or port.is_removed
        ]
        for device in gone:
            port = self._ports.pop(device)
            log.debug("Port detached: %s", port)
            if not port.is_removed:
                port.notify_removed()
            if notify:
                for _, on_detach in list(self._listeners):
                    self._call(on_detach, port)

        for device, info in present.items():
            if device in self._ports:
                continue
            port = UsbSerialPort(info, limit=self._limit)
            self._ports[device] = port
            log.debug("Port attached: %s", port)
            if notify:
                for on_attach, _ in list(self._listeners):
                    self._call(on_attach, port)

    @staticmethod
    def _call(callback: PortListener, port: UsbSerialPort) -> None:
        try:
            callback(port)
        except Exception:
            log.exception("Hot-plug listener failed for %s", port)
