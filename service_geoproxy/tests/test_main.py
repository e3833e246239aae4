"""
Tests for the geoproxy HTTP boundary.
"""

import json

import pytest
from fastapi.testclient import TestClient

from service_geoproxy.app.main import GeoProxyService


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.delenv("GEOPROXY_API_KEY", raising=False)
    monkeypatch.setenv("GEOPROXY_CACHE_PERSIST", "false")
    monkeypatch.setenv("GEOPROXY_CACHE_WRITE_LOCATION", str(tmp_path))


@pytest.fixture
def service(upstream, resolver):
    return GeoProxyService(upstream=upstream, resolver=resolver)


@pytest.fixture
def client(service):
    with TestClient(service.app) as test_client:
        yield test_client


class TestSingleLookupRoute:

    def test_lookup(self, client, upstream):
        response = client.get("/json/8.8.8.8")

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "country": "Testland",
            "countryCode": "TL",
            "city": "Testville",
            "lat": 1.5,
            "lon": 2.5,
            "query": "8.8.8.8",
        }

    def test_second_lookup_is_cached(self, client, upstream, service):
        client.get("/json/8.8.8.8?lang=en")
        client.get("/json/8.8.8.8?lang=en")

        assert len(upstream.single_calls) == 1
        assert "8.8.8.8en" in service.store

    def test_fields_selection(self, client):
        response = client.get("/json/8.8.8.8", params={"fields": "city,countryCode"})

        assert response.json() == {"city": "Testville", "countryCode": "TL"}

    def test_key_override_is_forwarded(self, client, upstream):
        client.get("/json/8.8.8.8", params={"key": "per-request"})

        assert upstream.single_calls[0][1] == "per-request"

    def test_invalid_fields(self, client):
        response = client.get("/json/8.8.8.8", params={"fields": "city,bogus"})

        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "400 illegal field provided: bogus"}

    def test_invalid_lang(self, client):
        response = client.get("/json/8.8.8.8", params={"lang": "xx"})

        assert response.status_code == 400
        assert response.json()["message"] == "400 illegal lang value provided: xx"

    def test_blank_subject(self, client):
        response = client.get("/json/")

        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "400 query request is blank"}

    def test_unusable_subject(self, client, upstream):
        response = client.get("/json/!!!")

        assert response.status_code == 400
        assert upstream.single_calls == []


class TestBatchRoute:

    def test_batch_mixes_strings_and_objects(self, client, upstream):
        response = client.post(
            "/batch?lang=en",
            json=["1.1.1.1", {"query": "2.2.2.2", "fields": "city"}, {"query": ""}],
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 3
        assert body[0]["query"] == "1.1.1.1"
        assert body[1] == {"city": "Testville"}
        assert body[2]["status"] == "fail"
        assert len(upstream.batch_calls) == 1

    def test_batch_level_fields(self, client):
        response = client.post("/batch", params={"fields": "query"}, json=["1.1.1.1", "2.2.2.2"])

        assert response.json() == [{"query": "1.1.1.1"}, {"query": "2.2.2.2"}]

    def test_empty_batch(self, client):
        response = client.post("/batch", json=[])

        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "400 no queries passed"}

    def test_malformed_body(self, client):
        response = client.post("/batch", json={"query": "1.1.1.1"})

        assert response.status_code == 400
        assert response.json()["status"] == "fail"

    def test_invalid_batch_lang(self, client, upstream):
        response = client.post("/batch", params={"lang": "klingon"}, json=["1.1.1.1"])

        assert response.status_code == 400
        assert upstream.batch_calls == []


class TestServiceRoutes:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "geoproxy"
        assert body["dependencies"]["cache"] == {"records": 0, "expired": 0, "live": 0}

    def test_cache_stats(self, client):
        client.get("/json/8.8.8.8")

        response = client.get("/cache/stats")

        assert response.json() == {"records": 1, "expired": 0, "live": 1, "persist": False}

    def test_metrics(self, client):
        client.get("/json/8.8.8.8")
        client.get("/json/8.8.8.8")
        client.get("/json/")

        response = client.get("/metrics")

        assert response.status_code == 200
        text = response.text
        assert "geoproxy_queries_total 3.0" in text
        assert "geoproxy_cache_hits_total 1.0" in text
        assert 'geoproxy_handler_requests_total{code="400"} 1.0' in text
        assert 'geoproxy_handler_requests_total{code="200"} 2.0' in text


class TestSnapshotLifecycle:

    def test_snapshot_saved_on_shutdown_and_restored(self, monkeypatch, tmp_path, upstream, resolver):
        monkeypatch.setenv("GEOPROXY_CACHE_PERSIST", "true")

        first = GeoProxyService(upstream=upstream, resolver=resolver)
        with TestClient(first.app) as test_client:
            assert (tmp_path / "cache.json").exists()
            test_client.get("/json/8.8.8.8")

        document = json.loads((tmp_path / "cache.json").read_text())
        assert list(document["records"]) == ["8.8.8.8"]

        second = GeoProxyService(upstream=upstream, resolver=resolver)
        with TestClient(second.app) as test_client:
            assert "8.8.8.8" in second.store
            test_client.get("/json/8.8.8.8")

        assert len(upstream.single_calls) == 1

    def test_corrupt_snapshot_starts_empty(self, monkeypatch, tmp_path, upstream, resolver):
        monkeypatch.setenv("GEOPROXY_CACHE_PERSIST", "true")
        (tmp_path / "cache.json").write_text("definitely not json")

        service = GeoProxyService(upstream=upstream, resolver=resolver)
        with TestClient(service.app) as test_client:
            response = test_client.get("/cache/stats")

        assert response.status_code == 200
        assert response.json()["records"] == 0
