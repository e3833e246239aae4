"""
Geolocation caching proxy service.
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import SerializationError, ValidationError

from .adapters.ip_api_client import IPApiClient
from .adapters.reverse_resolver import ReverseResolver
from .caching.reaper import ExpiryReaper
from .caching.record_store import RecordStore
from .caching.snapshot import SnapshotPersistence, SnapshotWriter
from .domain.fields import extract_subject, parse_fields, validate_lang
from .domain.models import STATUS_FAIL, BatchItem
from .resolver.batch import BatchCoordinator
from .resolver.policy import CachePolicy
from .resolver.single import SingleLookup


class GeoProxyService(BaseService):
    """Caching proxy in front of the ip-api lookup service."""

    def __init__(self, *, upstream=None, resolver=None, clock=None):
        super().__init__("geoproxy")
        self.store = RecordStore(metrics=self.metrics, clock=clock)
        self.policy = CachePolicy.from_config(self.config)
        self.upstream = upstream or IPApiClient(
            self.config.upstream_url,
            self.config.upstream_pro_url,
            api_key=self.config.api_key,
            timeout=self.config.upstream_timeout.total_seconds(),
            metrics=self.metrics,
        )
        self.resolver = resolver or ReverseResolver(self.config.reverse_lookup_timeout.total_seconds())
        self.batch_coordinator = BatchCoordinator(
            self.store,
            self.upstream,
            self.resolver,
            self.policy,
            metrics=self.metrics,
            max_concurrency=self.config.batch_max_concurrency,
        )
        self.single_lookup = SingleLookup(
            self.store,
            self.upstream,
            self.policy,
            metrics=self.metrics,
            timeout=self.config.request_timeout.total_seconds(),
        )
        self.reaper = ExpiryReaper(self.store, self.config.cache_clean_interval)
        self.persistence = SnapshotPersistence(self.store)
        self.snapshot_writer = SnapshotWriter(
            self.persistence,
            self.config.snapshot_path,
            self.config.cache_write_interval,
        )

        @self.app.on_event("startup")
        async def _startup():
            if self.config.cache_persist:
                await self._load_snapshot()
                await self.snapshot_writer.start_workers()
            await self.reaper.start_workers()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.reaper.stop_workers()
            if self.config.cache_persist:
                await self.snapshot_writer.stop_workers()
            if hasattr(self.upstream, "close"):
                await self.upstream.close()

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.geoproxy_service = self

    async def _load_snapshot(self) -> None:
        path = self.config.snapshot_path
        try:
            loaded = await asyncio.to_thread(self.persistence.load, path)
        except SerializationError as exc:
            self.logger.error(
                "Snapshot load failed, starting with an empty cache",
                error=exc.message,
                **exc.details,
            )
            self.store.clear()
            return
        self.logger.info("Cache restored from snapshot", path=str(path), records=loaded)

    async def _check_dependencies(self) -> Dict[str, Any]:
        dependencies: Dict[str, Any] = {"cache": self.store.stats()}
        breaker = getattr(self.upstream, "circuit_breaker", None)
        if breaker is not None:
            dependencies["upstream"] = breaker.get_state()
        return dependencies

    def _fail(self, message: str) -> JSONResponse:
        self.metrics.increment_counter("handler_requests_total", code="400")
        return JSONResponse(
            status_code=400,
            content={"status": STATUS_FAIL, "message": f"400 {message}"},
        )

    def _setup_proxy_routes(self):
        """Set up lookup routes."""

        @self.app.exception_handler(ValidationError)
        async def lookup_validation_handler(request: Request, exc: ValidationError):
            self.logger.info("Rejected lookup request", path=request.url.path, message=exc.message)
            return self._fail(exc.message)

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            self.logger.info("Malformed lookup request", path=request.url.path, errors=len(exc.errors()))
            return self._fail("malformed request body")

        @self.app.get("/json/")
        async def lookup_blank():
            """A lookup without a subject."""
            self.metrics.increment_counter("queries_total")
            return self._fail("query request is blank")

        @self.app.get("/json/{subject}")
        async def lookup(
            subject: str,
            fields: Optional[str] = Query(None),
            lang: Optional[str] = Query(None),
            key: Optional[str] = Query(None),
        ):
            """Look up one IP address or host name."""
            self.metrics.increment_counter("queries_total")
            selected = parse_fields(fields)
            language = validate_lang(lang)
            target = extract_subject(subject)
            if not target:
                raise ValidationError("query request is blank", details={"subject": subject})

            result, cached = await self.single_lookup.lookup(target, selected, language, api_key=key)
            self.logger.debug("Lookup served", subject=target, cached=cached)

            code = "400" if result.status == STATUS_FAIL else "200"
            self.metrics.increment_counter("handler_requests_total", code=code)
            return result.to_wire()

        @self.app.post("/batch")
        async def lookup_batch(
            items: List[Union[str, BatchItem]] = Body(...),
            fields: Optional[str] = Query(None),
            lang: Optional[str] = Query(None),
            key: Optional[str] = Query(None),
        ):
            """Look up many subjects; the response follows request order."""
            selected = parse_fields(fields)
            language = validate_lang(lang)
            if not items:
                raise ValidationError("no queries passed")

            self.metrics.increment_counter("queries_total", len(items))
            results = await self.batch_coordinator.resolve(
                items,
                selected,
                language,
                api_key=key,
                timeout=self.config.request_timeout.total_seconds(),
            )
            self.metrics.increment_counter("handler_requests_total", code="200")
            return [result.to_wire() for result in results]

        @self.app.get("/cache/stats")
        async def get_cache_stats():
            """Get cache statistics."""
            stats: Dict[str, Any] = dict(self.store.stats())
            stats["persist"] = self.config.cache_persist
            if self.config.cache_persist:
                stats["snapshot_path"] = str(self.config.snapshot_path)
            return stats


def create_app():
    """Create FastAPI application."""
    service = GeoProxyService()
    return service.app


if __name__ == "__main__":
    service = GeoProxyService()
    service.run()
