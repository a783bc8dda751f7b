# -*- coding: utf-8 -*-

"""
Pytest configuration and fixtures for serlink tests.
"""
import pytest
import asyncio
from unittest.mock import Mock, patch

from serlink.config import ConnectionOptions

from .fixtures import ESP32_PID
from .fixtures import ESP32_VID
from .fixtures import FakePort
from .fixtures import FakeProvider


class EventRecorder:
    """Records every event emitted on a bus as (name, payload)."""

    def __init__(self, bus):
        self.events = []
        for name in ('connect', 'disconnect', 'data', 'error'):
            bus.on(name, lambda payload, name=name: self.events.append((name, payload)))

    def names(self):
        return [name for name, _ in self.events]

    def payloads(self, name):
        return [payload for event_name, payload in self.events if event_name == name]

    def records(self):
        return [payload.record for payload in self.payloads('data')]


@pytest.fixture
def record_events():
    return EventRecorder

@pytest.fixture
def port():
    """Port matching the ESP32 filter."""
    return FakePort(name='esp32')

@pytest.fixture
def other_port():
    """Port that does not match the ESP32 filter."""
    return FakePort(0x2341, 0x0043, name='uno')

@pytest.fixture
def provider():
    return FakeProvider()

@pytest.fixture
def options():
    return ConnectionOptions(
        vendor_id=ESP32_VID,
        product_id=ESP32_PID,
        auto_connect=False,
        auto_reconnect=False,
    )

@pytest.fixture
def mock_serial():
    """Mock serial port for testing."""
    with patch('serial.Serial') as mock:
        instance = Mock()
        instance.is_open = True
        instance.fileno.return_value = 42
        instance.in_waiting = 0
        instance.out_waiting = 0
        instance.read.return_value = b""
        instance.write.return_value = 0
        instance.close.return_value = None
        mock.return_value = instance
        yield instance

@pytest.fixture
def mock_protocol():
    """Mock asyncio protocol for testing."""
    protocol = Mock(spec=asyncio.Protocol)
    protocol.connection_made = Mock()
    protocol.connection_lost = Mock()
    protocol.data_received = Mock()
    protocol.pause_writing = Mock()
    protocol.resume_writing = Mock()
    return protocol
