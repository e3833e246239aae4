"""
Unit tests for single subject lookups.
"""

from datetime import timedelta

import pytest

from service_geoproxy.app.domain.fields import ALL_FIELDS
from service_geoproxy.app.domain.models import failure
from service_geoproxy.app.resolver.policy import CachePolicy
from service_geoproxy.app.resolver.single import SingleLookup
from shared.errors import UpstreamError


@pytest.fixture
def single(store, upstream, metrics):
    return SingleLookup(store, upstream, CachePolicy(), metrics=metrics, timeout=1.0)


@pytest.mark.asyncio
async def test_miss_goes_upstream_then_hits(single, upstream, metrics):
    result, cached = await single.lookup("8.8.8.8", ALL_FIELDS, "en")

    assert cached is False
    assert result.query == "8.8.8.8"
    assert upstream.single_calls == [("8.8.8.8", None, "en")]

    again, cached = await single.lookup("8.8.8.8", ALL_FIELDS, "en")

    assert cached is True
    assert again == result
    assert len(upstream.single_calls) == 1
    assert metrics.sample("cache_hits_total") == 1
    assert metrics.sample("cache_misses_total") == 1


@pytest.mark.asyncio
async def test_result_is_projected(single, store):
    result, _ = await single.lookup("8.8.8.8", ("city", "lat"))

    assert result.to_wire() == {"city": "Testville", "lat": 1.5}
    assert store.get("8.8.8.8")[0].country == "Testland"


@pytest.mark.asyncio
async def test_upstream_failure_body_uses_failure_ttl(single, store, clock, upstream):
    upstream.answers["10.0.0.1"] = failure("private range", query="10.0.0.1")

    result, _ = await single.lookup("10.0.0.1")

    assert result.message == "private range"
    assert store.export_records()["10.0.0.1"].expires_at == clock() + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_upstream_error_becomes_stored_failure(single, store, upstream, metrics):
    upstream.error = UpstreamError("Upstream unreachable: connection refused")

    result, cached = await single.lookup("8.8.8.8")

    assert cached is False
    assert result.to_wire() == {
        "status": "fail",
        "message": "Upstream unreachable: connection refused",
        "query": "8.8.8.8",
    }
    assert "8.8.8.8" in store
    assert metrics.sample("failed_queries_total") == 1


@pytest.mark.asyncio
async def test_unexpected_upstream_exception_becomes_stored_failure(single, store, clock, upstream):
    upstream.error = ConnectionResetError("peer reset")

    result, cached = await single.lookup("8.8.8.8")

    assert cached is False
    assert result.to_wire() == {
        "status": "fail",
        "message": "upstream request failed: peer reset",
        "query": "8.8.8.8",
    }
    assert store.export_records()["8.8.8.8"].expires_at == clock() + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_upstream_timeout(store, upstream):
    upstream.delay = 1.0
    single = SingleLookup(store, upstream, timeout=0.05)

    result, _ = await single.lookup("8.8.8.8")

    assert result.message == "upstream request timed out"


@pytest.mark.asyncio
async def test_api_key_is_forwarded(single, upstream):
    await single.lookup("8.8.8.8", api_key="secret")

    assert upstream.single_calls[0] == ("8.8.8.8", "secret", None)


def test_policy_chooses_ttl():
    policy = CachePolicy(success_ttl=timedelta(hours=2), failure_ttl=timedelta(minutes=1))

    assert policy.ttl_for(failure("nope")) == timedelta(minutes=1)
    assert policy.ttl_for(failure("nope").model_copy(update={"status": "success"})) == timedelta(hours=2)
