"""
Single subject lookups.
"""

import asyncio
from typing import Optional, Tuple

from shared.errors import UpstreamError
from shared.logging import get_logger

from ..caching.projection import project
from ..caching.record_store import RecordStore
from ..domain.fields import ALL_FIELDS, FieldSet, cache_key
from ..domain.models import Location, failure
from .policy import CachePolicy


class SingleLookup:
    """Answer one subject from the store, falling back to the upstream."""

    def __init__(
        self,
        store: RecordStore,
        upstream,
        policy: Optional[CachePolicy] = None,
        metrics=None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.policy = policy or CachePolicy()
        self.metrics = metrics
        self.timeout = timeout
        self.logger = get_logger("geoproxy.single")

    async def lookup(
        self,
        subject: str,
        fields: FieldSet = ALL_FIELDS,
        lang: str = "",
        api_key: Optional[str] = None,
    ) -> Tuple[Location, bool]:
        """Return the projected result and whether it came from the store."""
        key = cache_key(subject, lang)
        cached, found = self.store.get(key, fields)
        if found:
            self.logger.debug("Cache hit", key=key)
            self._count("cache_hits_total")
            return cached, True

        self._count("cache_misses_total")
        try:
            result = await asyncio.wait_for(
                self.upstream.single_query(subject, api_key=api_key, lang=lang or None),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning("Upstream lookup timed out", subject=subject)
            result = failure("upstream request timed out", query=subject)
        except UpstreamError as exc:
            self.logger.warning("Upstream lookup failed", subject=subject, error=exc.message)
            result = failure(exc.message, query=subject)
        except Exception as e:
            self.logger.error("Upstream lookup raised", subject=subject, error=str(e))
            result = failure(f"upstream request failed: {e}", query=subject)

        self.store.put(key, result, self.policy.ttl_for(result))
        self._count("successful_queries_total" if result.is_success else "failed_queries_total")
        return project(result, fields), False

    def _count(self, metric_name: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name)
