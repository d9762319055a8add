# fxdesk/logger.py
import asyncio
import aiofiles
from aiocsv import AsyncWriter
import logging
import sys
import os
from typing import List, Any, Optional

from .models import Trade

TRADE_LOG_HEADER = ["timestamp", "trade_id", "type", "side", "size_m", "price", "client"]


class AsyncAuditLogger:
    """
    Non-blocking CSV blotter for executed trades.
    Ticks enqueue rows with record(); a background task owns all disk I/O.
    """
    def __init__(self, filepath: str):
        self.filepath = filepath
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    async def start(self):
        """
        Creates the directory and header row if missing, then starts the writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0:
            async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(TRADE_LOG_HEADER)
        self._worker_task = asyncio.create_task(self._writer_worker())

    def record(self, data: List[Any]):
        """Enqueue a row without awaiting; safe to call from a tick callback."""
        self._queue.put_nowait(data)

    def record_trade(self, trade: Trade):
        self.record([
            f"{trade.timestamp:.3f}",
            trade.id,
            trade.type.value,
            trade.side.value,
            f"{trade.size:g}",
            f"{trade.price:.5f}",
            trade.client_name or "",
        ])

    async def flush(self):
        await self._queue.join()

    async def stop(self):
        if self._worker_task is None:
            return
        await self.flush()
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None

    async def _writer_worker(self):
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except Exception as e:
                # Disk trouble must not stop the simulation.
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()


def setup_console_logger(name: str, level: str):
    """
    Sets up the standard Python logger for console output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
