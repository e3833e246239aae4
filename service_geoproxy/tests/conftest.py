"""
Shared fixtures for geoproxy unit tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from service_geoproxy.app.caching.record_store import RecordStore
from service_geoproxy.app.domain.models import Location
from shared.metrics import MetricsCollector


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class StubUpstream:
    """In-memory stand-in for the ip-api client."""

    def __init__(self, answers: Optional[Dict[str, Location]] = None):
        self.answers = answers or {}
        self.batch_calls: List[tuple] = []
        self.single_calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0

    def answer(self, subject: str) -> Location:
        if subject in self.answers:
            return self.answers[subject]
        return Location(
            status="success",
            country="Testland",
            countryCode="TL",
            city="Testville",
            lat=1.5,
            lon=2.5,
            query=subject,
        )

    async def batch_query(self, queries, api_key=None, lang=None):
        self.batch_calls.append((list(queries), api_key, lang))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return [self.answer(query.subject) for query in queries]

    async def single_query(self, subject, api_key=None, lang=None):
        self.single_calls.append((subject, api_key, lang))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.answer(subject)


class StubResolver:
    """Reverse resolver answering from a fixed table."""

    def __init__(self, names: Optional[Dict[str, str]] = None):
        self.names = names or {}
        self.calls: List[str] = []

    async def reverse_lookup(self, subject):
        self.calls.append(subject)
        if subject in self.names:
            return self.names[subject], True
        return "", False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return MetricsCollector("geoproxy")


@pytest.fixture
def store(clock, metrics):
    return RecordStore(metrics=metrics, clock=clock)


@pytest.fixture
def upstream():
    return StubUpstream()


@pytest.fixture
def resolver():
    return StubResolver()


@pytest.fixture
def location():
    return Location(
        status="success",
        country="Canada",
        countryCode="CA",
        region="QC",
        regionName="Quebec",
        city="Montreal",
        zip="H1K",
        lat=45.5808,
        lon=-73.5825,
        timezone="America/Toronto",
        isp="Le Groupe Videotron Ltee",
        org="Videotron Ltee",
        **{"as": "AS5769 Videotron Telecom Ltee"},
        query="24.48.0.1",
    )
