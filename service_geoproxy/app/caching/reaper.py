"""
Periodic eviction of expired records.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from shared.logging import get_logger

from .record_store import RecordStore


class ExpiryReaper:
    """Sweeps the record store on a fixed interval."""

    def __init__(self, store: RecordStore, interval: timedelta):
        self.store = store
        self.interval = interval
        self.logger = get_logger("geoproxy.reaper")
        self._worker_task: Optional[asyncio.Task] = None
        self._running = False

    def sweep(self) -> int:
        removed = self.store.remove_expired()
        if removed:
            self.logger.info("Expired records removed", removed=removed, remaining=len(self.store))
        return removed

    async def start_workers(self) -> None:
        """Start the background sweep loop."""
        if self._running:
            return
        self._running = True
        self._worker_task = asyncio.create_task(self._sweep_worker())

    async def stop_workers(self) -> None:
        """Stop the background sweep loop."""
        if not self._running:
            return
        self._running = False
        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

    async def _sweep_worker(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                self.sweep()
            except Exception as e:
                self.logger.error("Error in expiry sweep", error=str(e))
