# -*- coding: utf-8 -*-

"""
Device identity matching.
"""
from dataclasses import dataclass

from typing import Optional


@dataclass(frozen=True)
class DeviceIdentity:
    """USB identity of a serial device (either id may be unknown)."""
    vendor_id: Optional[int] = None
    product_id: Optional[int] = None

    def __str__(self) -> str:
        if self.vendor_id is None and self.product_id is None:
            return "unknown device"
        return f"{_hex_id(self.vendor_id)}:{_hex_id(self.product_id)}"


@dataclass(frozen=True)
class DeviceFilter:
    """Vendor/product pair a device must carry to be considered known."""
    vendor_id: Optional[int] = None
    product_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.vendor_id is None and self.product_id is None


def matches(identity: DeviceIdentity, device_filter: Optional[DeviceFilter]) -> bool:
    """
    Decide whether a device is a known/matching one.

    An absent or empty filter matches every device. Otherwise both the
    vendor id and the product id must be equal.
    """
    if device_filter is None or device_filter.is_empty:
        return True

    return (
        identity.vendor_id == device_filter.vendor_id
        and identity.product_id == device_filter.product_id
    )


def _hex_id(value: Optional[int]) -> str:
    return "????" if value is None else f"{value:04x}"
