# -*- coding: utf-8 -*-

"""
Port and port provider interfaces.

A SerialConnection never touches the operating system directly; it is
handed a PortProvider that lists, offers and watches ports. The pyserial
based implementation lives in ``serlink.discovery``.
"""
import asyncio

from abc import ABC
from abc import abstractmethod
from typing import Callable
from typing import List
from typing import Sequence
from typing import Tuple

from .matching import DeviceFilter
from .matching import DeviceIdentity

RemovalListener = Callable[[], None]
PortListener = Callable[["SerialPort"], None]


class SerialPort(ABC):
    """One physical or virtual serial device."""

    @property
    @abstractmethod
    def identity(self) -> DeviceIdentity:
        raise NotImplementedError

    @abstractmethod
    async def open(self, baudrate: int) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        Open the port.

        Returns:
            Tuple of (StreamReader, StreamWriter) over the port's byte streams

        Raises:
            SerialConnectionError: If the port cannot be opened
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close the port. Safe to call when it is not open."""
        raise NotImplementedError

    @abstractmethod
    def add_removal_listener(self, callback: RemovalListener) -> Callable[[], None]:
        """
        Call callback when the device goes away.

        Returns:
            Function that removes the listener
        """
        raise NotImplementedError


class PortProvider(ABC):
    """Source of ports and hot-plug notifications."""

    @property
    @abstractmethod
    def is_supported(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def get_ports(self) -> List[SerialPort]:
        """Ports that are present and already usable without asking."""
        raise NotImplementedError

    @abstractmethod
    async def request_port(self, filters: Sequence[DeviceFilter]) -> SerialPort:
        """
        Ask for a port to use.

        Raises:
            UserDeclinedError: If the selection was cancelled
        """
        raise NotImplementedError

    @abstractmethod
    def add_hotplug_listener(
            self,
            on_attach: PortListener,
            on_detach: PortListener
        ) -> Callable[[], None]:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass
