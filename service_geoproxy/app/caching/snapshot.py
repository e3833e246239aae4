"""
Snapshot persistence for the record store.

The whole store is written as one JSON document::

    {"version": 1, "saved_at": "...", "records": {key: {"result": {...}, "expires_at": "..."}}}

Writes go to a uniquely named sibling temp file which then replaces the target, so a crash
mid-write never leaves a truncated snapshot behind.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from shared.errors import SerializationError
from shared.logging import get_logger

from .record_store import Record, RecordStore, utc_now


SNAPSHOT_VERSION = 1

PathLike = Union[str, Path]


class SnapshotDocument(BaseModel):
    version: int = SNAPSHOT_VERSION
    saved_at: datetime
    records: Dict[str, Record] = {}


class SnapshotPersistence:
    """Save and load the full content of a :class:`RecordStore`."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.logger = get_logger("geoproxy.snapshot")

    def save(self, path: PathLike) -> int:
        """Write every record to ``path``; returns the number written."""
        target = Path(path)
        records = self.store.export_records()
        document = SnapshotDocument(saved_at=utc_now(), records=records)

        temp_path: Optional[Path] = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            payload = document.model_dump_json(by_alias=True, exclude_none=True)
            # unique per save so overlapping writers never share a temp file
            fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            temp_path = Path(temp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            temp_path.replace(target)
        except (OSError, TypeError, ValueError) as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise SerializationError(
                f"Failed to write snapshot: {exc}",
                details={"path": str(target)},
            ) from exc

        self.logger.info("Snapshot written", path=str(target), records=len(records))
        return len(records)

    def load(self, path: PathLike) -> int:
        """Replace the store content with the snapshot at ``path``.

        A missing file is created empty and a zero-byte file loads as an empty
        store. Expired records are loaded as-is; the reaper drops them.
        """
        target = Path(path)
        if not target.exists():
            self.logger.info("Snapshot missing, creating it", path=str(target))
            self.save(target)
            return 0

        try:
            raw = target.read_text(encoding="utf-8")
        except OSError as exc:
            raise SerializationError(
                f"Failed to read snapshot: {exc}",
                details={"path": str(target)},
            ) from exc

        if not raw.strip():
            self.store.replace_records({})
            return 0

        try:
            document = SnapshotDocument.model_validate_json(raw)
        except SchemaError as exc:
            raise SerializationError(
                "Snapshot is not a valid cache document",
                details={"path": str(target), "errors": exc.error_count()},
            ) from exc

        if document.version != SNAPSHOT_VERSION:
            raise SerializationError(
                f"Unsupported snapshot version {document.version}",
                details={"path": str(target)},
            )

        self.store.replace_records(document.records)
        self.logger.info("Snapshot loaded", path=str(target), records=len(document.records))
        return len(document.records)


class SnapshotWriter:
    """Background task saving the store every ``interval``."""

    def __init__(self, persistence: SnapshotPersistence, path: PathLike, interval: timedelta):
        self.persistence = persistence
        self.path = Path(path)
        self.interval = interval
        self.logger = get_logger("geoproxy.snapshot_writer")
        self._worker_task: Optional[asyncio.Task] = None
        self._running = False

    async def save(self) -> int:
        return await asyncio.to_thread(self.persistence.save, self.path)

    async def start_workers(self) -> None:
        """Start the periodic snapshot task."""
        if self._running:
            return
        self._running = True
        self._worker_task = asyncio.create_task(self._write_worker())

    async def stop_workers(self) -> None:
        """Stop the periodic task and write one last snapshot."""
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

        try:
            await self.save()
        except SerializationError as exc:
            self.logger.error("Final snapshot failed", error=exc.message, **exc.details)

    async def _write_worker(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                await self.save()
            except SerializationError as exc:
                self.logger.error("Periodic snapshot failed", error=exc.message, **exc.details)
