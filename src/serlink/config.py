# -*- coding: utf-8 -*-

"""
Connection options.

Options are captured once when a SerialConnection is built and never
change afterwards; use ``replace()`` to derive a modified copy.
"""
import codecs
import dataclasses

from dataclasses import dataclass
from typing import Any
from typing import List
from typing import Mapping
from typing import Optional

from .exceptions import SerialConfigError
from .matching import DeviceFilter

DEFAULT_BAUDRATE = 115200
DEFAULT_READ_SIZE = 4096


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Immutable configuration of one serial connection.

    Args:
        vendor_id: USB vendor id to filter devices on (default: None, any)
        product_id: USB product id to filter devices on (default: None, any)
        baudrate: Baud rate handed verbatim to the port on open
        auto_connect: Connect to the first known matching port on initialize()
        auto_reconnect: Reconnect when a matching port is plugged back in
        encoding: Text codec used for both directions
        newline: Record delimiter
        read_size: Maximum number of bytes pulled per stream read
        stop_timeout: Seconds to wait for the read loop during teardown
    """
    vendor_id: Optional[int] = None
    product_id: Optional[int] = None
    baudrate: int = DEFAULT_BAUDRATE
    auto_connect: bool = True
    auto_reconnect: bool = True
    encoding: str = "utf-8"
    newline: str = "\n"
    read_size: int = DEFAULT_READ_SIZE
    stop_timeout: float = 1.0

    def __post_init__(self):
        for name in ("vendor_id", "product_id"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFFFF:
                raise SerialConfigError(f"{name} must be a 16-bit integer, got {value!r}")

        if (self.vendor_id is None) != (self.product_id is None):
            raise SerialConfigError(
                "vendor_id and product_id must be given together"
            )

        if isinstance(self.baudrate, bool) or not isinstance(self.baudrate, int) or self.baudrate <= 0:
            raise SerialConfigError(f"baudrate must be a positive integer, got {self.baudrate!r}")

        if not self.newline:
            raise SerialConfigError("newline must not be empty")

        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise SerialConfigError(f"Unknown encoding: {self.encoding!r}")

        if self.read_size <= 0:
            raise SerialConfigError(f"read_size must be positive, got {self.read_size!r}")

        if self.stop_timeout < 0:
            raise SerialConfigError(f"stop_timeout must not be negative, got {self.stop_timeout!r}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ConnectionOptions":
        """Build options from a plain mapping, rejecting unknown keys."""
        known = {field.name for field in dataclasses.fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise SerialConfigError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**mapping)

    def replace(self, **changes: Any) -> "ConnectionOptions":
        return dataclasses.replace(self, **changes)

    @property
    def device_filter(self) -> Optional[DeviceFilter]:
        if self.vendor_id is None:
            return None
        return DeviceFilter(self.vendor_id, self.product_id)

    def request_filters(self) -> List[DeviceFilter]:
        """Filters offered to the port chooser (empty means any port)."""
        device_filter = self.device_filter
        return [device_filter] if device_filter else []
