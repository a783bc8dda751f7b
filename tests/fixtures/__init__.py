"""
Test fixtures for serlink testing.

Provides fake ports and providers so the connection lifecycle can be
exercised without hardware.
"""

from .fake_ports import (
    ESP32_VID,
    ESP32_PID,
    FakePort,
    FakeProvider,
    FakeStreamWriter,
)

__all__ = [
    'ESP32_VID',
    'ESP32_PID',
    'FakePort',
    'FakeProvider',
    'FakeStreamWriter',
]
