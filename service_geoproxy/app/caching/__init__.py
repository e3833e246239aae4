"""
Caching utilities for the geolocation proxy.
"""

from .projection import project, selects_all
from .reaper import ExpiryReaper
from .record_store import Record, RecordStore
from .snapshot import SnapshotPersistence, SnapshotWriter

__all__ = [
    "ExpiryReaper",
    "Record",
    "RecordStore",
    "SnapshotPersistence",
    "SnapshotWriter",
    "project",
    "selects_all",
]
