# -*- coding: utf-8 -*-

"""
Background task publishing inbound records.
"""
import asyncio
import logging

from typing import Callable
from typing import Optional

from .framing import LineReader

log = logging.getLogger('serlink.readloop')


class ReadLoop:
    """
    Pulls records from a LineReader until told to stop or the stream ends.

    ``keep_reading`` is the cooperative stop flag. It is checked before
    each read and again after it returns, so a record that arrives while
    the loop is being stopped is dropped instead of published. Errors seen
    after the flag was cleared are part of shutting down and are not
    reported.
    """

    def __init__(
            self,
            reader: LineReader,
            on_record: Callable[[str], None],
            on_error: Callable[[BaseException], None],
            on_exit: Optional[Callable[["ReadLoop"], None]] = None
        ):
        self.keep_reading = False
        self._reader = reader
        self._on_record = on_record
        self._on_error = on_error
        self._on_exit = on_exit
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("Read loop already started")

        self.keep_reading = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self):
        try:
            while self.keep_reading:
                record = await self._reader.read_record()
                if record is None:
                    log.debug("Inbound stream ended")
                    break
                if not self.keep_reading:
                    break
                self._on_record(record)
        except asyncio.CancelledError:
            log.debug("Read loop cancelled")
            raise
        except Exception as e:
            if self.keep_reading:
                log.error("Read error: %s", e)
                self._on_error(e)
            else:
                log.debug("Read aborted during shutdown: %s", e)
        finally:
            self.keep_reading = False
            self._reader.release()
            if self._on_exit is not None:
                self._on_exit(self)

    def cancel_reader(self) -> None:
        self.keep_reading = False
        self._reader.cancel()

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the loop to finish after ``cancel_reader()``.

        If it has not finished within timeout the task is cancelled.
        """
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            log.warning("Read loop did not stop within %ss, cancelling it", timeout)
            task.cancel()
            await asyncio.wait({task})

    async def stop(self, timeout: Optional[float] = None) -> None:
        self.cancel_reader()
        await self.wait_stopped(timeout)
