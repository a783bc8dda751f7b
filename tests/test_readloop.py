# -*- coding: utf-8 -*-

"""
Unit tests for the background read loop.
"""
import pytest
import asyncio

from unittest.mock import Mock

from serlink.exceptions import SerialReadError
from serlink.framing import LineReader
from serlink.readloop import ReadLoop


def make_loop(stream):
    reader = LineReader(stream)
    on_record = Mock()
    on_error = Mock()
    on_exit = Mock()
    return ReadLoop(reader, on_record, on_error, on_exit), reader, on_record, on_error, on_exit


class TestReadLoop:
    """Test ReadLoop publishing and exit paths."""

    @pytest.mark.asyncio
    async def test_publishes_records_until_stream_ends(self):
        stream = asyncio.StreamReader()
        loop, reader, on_record, on_error, on_exit = make_loop(stream)

        task = loop.start()
        stream.feed_data(b"a\nb\nc")
        stream.feed_eof()
        await asyncio.wait_for(task, 1.0)

        assert [call.args[0] for call in on_record.call_args_list] == ["a", "b", "c"]
        on_error.assert_not_called()
        on_exit.assert_called_once_with(loop)
        assert reader.released
        assert not loop.running
        assert loop.keep_reading is False

    @pytest.mark.asyncio
    async def test_reports_fault_while_reading(self):
        stream = asyncio.StreamReader()
        loop, reader, on_record, on_error, on_exit = make_loop(stream)

        task = loop.start()
        await asyncio.sleep(0.01)
        stream.set_exception(OSError("Input/output error"))
        await asyncio.wait_for(task, 1.0)

        on_error.assert_called_once()
        assert isinstance(on_error.call_args.args[0], SerialReadError)
        on_exit.assert_called_once_with(loop)
        assert reader.released

    @pytest.mark.asyncio
    async def test_fault_during_shutdown_is_swallowed(self):
        stream = asyncio.StreamReader()
        loop, reader, on_record, on_error, on_exit = make_loop(stream)

        task = loop.start()
        await asyncio.sleep(0.01)
        loop.keep_reading = False
        stream.set_exception(OSError("Bad file descriptor"))
        await asyncio.wait_for(task, 1.0)

        on_error.assert_not_called()
        on_exit.assert_called_once_with(loop)

    @pytest.mark.asyncio
    async def test_stop_while_waiting_for_data(self):
        stream = asyncio.StreamReader()
        loop, reader, on_record, on_error, on_exit = make_loop(stream)

        loop.start()
        await asyncio.sleep(0.01)
        assert loop.running

        await loop.stop(timeout=1.0)

        assert not loop.running
        on_record.assert_not_called()
        on_error.assert_not_called()
        on_exit.assert_called_once_with(loop)

    @pytest.mark.asyncio
    async def test_record_arriving_during_stop_is_dropped(self):
        stream = asyncio.StreamReader()
        loop, reader, on_record, on_error, on_exit = make_loop(stream)

        loop.start()
        await asyncio.sleep(0.01)
        stream.feed_data(b"late\n")
        loop.keep_reading = False
        await loop.wait_stopped(1.0)

        on_record.assert_not_called()

    @pytest.mark.asyncio
    async def test_stuck_read_is_cancelled_after_timeout(self):
        stream = asyncio.StreamReader()
        reader = LineReader(stream)
        # Cancelling the pipeline does not wake this reader up
        reader.cancel = Mock()
        on_exit = Mock()
        loop = ReadLoop(reader, Mock(), Mock(), on_exit)

        task = loop.start()
        await asyncio.sleep(0.01)

        await loop.stop(timeout=0.01)

        assert task.cancelled()
        on_exit.assert_called_once_with(loop)
        assert reader.released

    @pytest.mark.asyncio
    async def test_start_twice(self):
        loop, *_ = make_loop(asyncio.StreamReader())

        loop.start()
        with pytest.raises(RuntimeError):
            loop.start()

        await loop.stop(timeout=1.0)

    @pytest.mark.asyncio
    async def test_stop_before_start(self):
        loop, reader, *_ = make_loop(asyncio.StreamReader())

        await loop.stop(timeout=1.0)

        assert not loop.running
