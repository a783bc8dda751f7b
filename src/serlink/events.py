# -*- coding: utf-8 -*-

"""
Connection events and a small publish/subscribe registry.

Listeners are plain callables invoked synchronously, in registration
order, with the event payload as the only argument.
"""
import logging

from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

CONNECT = "connect"
DISCONNECT = "disconnect"
DATA = "data"
ERROR = "error"

EVENT_NAMES = (CONNECT, DISCONNECT, DATA, ERROR)

log = logging.getLogger('serlink.events')

Listener = Callable[[Any], None]


@dataclass(frozen=True)
class ConnectEvent:
    handle: Any

    @property
    def port(self) -> Any:
        """Alias of handle, the connected SerialPort."""
        return self.handle


@dataclass(frozen=True)
class DisconnectEvent:
    pass


@dataclass(frozen=True)
class DataEvent:
    record: str


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    cause: Optional[BaseException] = None


class EventBus:
    """
    Registry mapping each event name to an ordered list of listeners.

    Emitting only reaches listeners registered at that moment; nothing is
    replayed for listeners added later.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {name: [] for name in EVENT_NAMES}

    def on(self, name: str, callback: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Function that removes this listener again

        Example:
            >>> bus = EventBus()
            >>> unsubscribe = bus.on('data', lambda event: print(event.record))
            >>> bus.emit('data', DataEvent('OK'))
            OK
            >>> unsubscribe()
        """
        self._check_name(name)
        self._listeners[name].append(callback)

        def unsubscribe():
            self.off(name, callback)

        return unsubscribe

    def off(self, name: str, callback: Listener) -> None:
        self._check_name(name)
        try:
            self._listeners[name].remove(callback)
        except ValueError:
            pass

    def listeners(self, name: str) -> List[Listener]:
        self._check_name(name)
        return list(self._listeners[name])

    def emit(self, name: str, payload: Any) -> None:
        """Deliver payload to every listener of name; a failing listener does not stop the rest."""
        self._check_name(name)
        for callback in list(self._listeners[name]):
            try:
                callback(payload)
            except Exception:
                log.exception("Listener %r for %r event failed", callback, name)

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event {name!r}, expected one of {EVENT_NAMES}")
