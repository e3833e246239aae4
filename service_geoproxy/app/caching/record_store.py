"""
In-memory record store for geolocation lookup results.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from shared.logging import get_logger

from ..domain.fields import ALL_FIELDS, FieldSet
from ..domain.models import Location
from .projection import project
from .rwlock import ReadWriteLock

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


TTL = Union[timedelta, int, float]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_timedelta(ttl: TTL) -> timedelta:
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(seconds=ttl)


class Record(BaseModel):
    """A stored result and the instant it goes stale."""

    model_config = ConfigDict(frozen=True)

    result: Location
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class RecordStore:
    """Concurrency-safe mapping of cache key to :class:`Record`.

    Time-based expiry is the only occupancy policy: there is no size bound.
    Expired records are dropped lazily by :meth:`get` and in bulk by
    :meth:`remove_expired`. The lock is held only around single map
    operations.
    """

    def __init__(
        self,
        metrics: Optional["MetricsCollector"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.metrics = metrics
        self.logger = get_logger("geoproxy.record_store")
        self._clock = clock or utc_now
        self._lock = ReadWriteLock()
        self._records: Dict[str, Record] = {}

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: str, fields: FieldSet = ALL_FIELDS) -> Tuple[Optional[Location], bool]:
        """Return the live result for ``key`` projected to ``fields``."""
        with self._lock.read():
            record = self._records.get(key)

        if record is None:
            return None, False

        if record.is_expired(self._clock()):
            self._discard(key, record)
            return None, False

        return project(record.result, fields), True

    def put(self, key: str, result: Location, ttl: TTL) -> None:
        """Store ``result`` under ``key`` for ``ttl``, replacing any previous record.

        A non-positive ttl produces a record that is already expired.
        """
        record = Record(result=result, expires_at=self._clock() + as_timedelta(ttl))
        with self._lock.write():
            self._records[key] = record
            size = len(self._records)

        self.logger.debug("Stored record", key=key, status=result.status, expires_at=record.expires_at.isoformat())
        self._update_metrics(size, stored=1)

    def remove_expired(self) -> int:
        """Drop every expired record, taking the write lock once per record."""
        now = self._clock()
        with self._lock.read():
            candidates = [
                (key, record) for key, record in self._records.items() if record.is_expired(now)
            ]

        removed = 0
        for key, record in candidates:
            if self._discard(key, record):
                removed += 1
        return removed

    def _discard(self, key: str, record: Record) -> bool:
        # a concurrent put may have replaced the expired record
        with self._lock.write():
            if self._records.get(key) is not record:
                return False
            del self._records[key]
            size = len(self._records)

        self.logger.debug("Evicted expired record", key=key)
        self._update_metrics(size, evicted=1)
        return True

    def export_records(self) -> Dict[str, Record]:
        """Copy of every record, taken under the read lock."""
        with self._lock.read():
            return dict(self._records)

    def replace_records(self, records: Mapping[str, Record]) -> None:
        """Swap the whole content of the store."""
        with self._lock.write():
            self._records = dict(records)
            size = len(self._records)
        self._update_metrics(size)

    def clear(self) -> None:
        self.replace_records({})

    def keys(self) -> List[str]:
        with self._lock.read():
            return list(self._records)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock.read():
            expired = sum(1 for record in self._records.values() if record.is_expired(now))
            total = len(self._records)
        return {"records": total, "expired": expired, "live": total - expired}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._records

    def _update_metrics(self, size: int, stored: int = 0, evicted: int = 0) -> None:
        if not self.metrics:
            return

        try:
            if stored:
                self.metrics.increment_counter("queries_cached_total", stored)
            if evicted:
                self.metrics.increment_counter("cache_evictions_total", evicted)
            self.metrics.set_gauge("queries_in_cache", size)
        except Exception as exc:  # pragma: no cover - metrics failures should never break the store
            self.logger.debug("Failed to record store metrics", error=str(exc))
