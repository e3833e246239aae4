"""
Upstream client for the ip-api.com compatible lookup service.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError as SchemaError

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from shared.errors import UpstreamError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..domain.fields import ALL_FIELDS
from ..domain.models import Location


@dataclass(frozen=True)
class UpstreamQuery:
    """One entry of an upstream batch call."""

    subject: str
    lang: str = ""

    def to_payload(self) -> Dict[str, str]:
        payload = {"query": self.subject}
        if self.lang:
            payload["lang"] = self.lang
        return payload


class IPApiClient:
    """Single and batch lookups against the upstream service.

    The free endpoint is used without a key; with a key every call goes to
    the pro endpoint and carries ``key``. The full attribute vocabulary is
    always requested so that any later projection can be served from cache.
    """

    BATCH_LIMIT = 100

    def __init__(
        self,
        base_url: str = "http://ip-api.com",
        pro_url: str = "https://pro.ip-api.com",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        metrics=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.pro_url = pro_url.rstrip("/")
        self.api_key = api_key
        self.metrics = metrics
        self.logger = get_logger("geoproxy.ip_api_client")

        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            "ip_api",
            failure_threshold=5,
            recovery_timeout=30.0,
        )
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True,
        )
        self._send = retry_on_exception((httpx.TransportError,), config=self.retry_config)(self._send_once)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def single_query(
        self,
        subject: str,
        api_key: Optional[str] = None,
        lang: Optional[str] = None,
    ) -> Location:
        """Look up one subject; the upstream reports its own failures in the body."""
        base_url, params = self._prepare(api_key, lang)
        data = await self._request(
            "single",
            "GET",
            f"{base_url}/json/{subject}",
            params=params,
        )
        if not isinstance(data, dict):
            raise UpstreamError("Unexpected single response shape", details={"subject": subject})

        self._count_forwarded(1)
        return self._parse(data)

    async def batch_query(
        self,
        queries: Sequence[UpstreamQuery],
        api_key: Optional[str] = None,
        lang: Optional[str] = None,
    ) -> List[Location]:
        """Look up many subjects, returning results in upstream order.

        Requests larger than the upstream batch limit are split into
        consecutive calls; the combined list is still one logical answer.
        """
        if not queries:
            return []

        base_url, params = self._prepare(api_key, lang)
        results: List[Location] = []
        for start in range(0, len(queries), self.BATCH_LIMIT):
            chunk = queries[start:start + self.BATCH_LIMIT]
            data = await self._request(
                "batch",
                "POST",
                f"{base_url}/batch",
                params=params,
                json=[query.to_payload() for query in chunk],
            )
            if not isinstance(data, list):
                raise UpstreamError("Unexpected batch response shape", details={"size": len(chunk)})

            self._count_forwarded(len(chunk))
            results.extend(self._parse(item) for item in data if isinstance(item, dict))

        self.logger.debug("Batch lookup completed", requested=len(queries), returned=len(results))
        return results

    def _prepare(self, api_key: Optional[str], lang: Optional[str]):
        key = api_key or self.api_key
        params: Dict[str, str] = {"fields": ",".join(ALL_FIELDS)}
        if lang:
            params["lang"] = lang
        if key:
            params["key"] = key
            return self.pro_url, params
        return self.base_url, params

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> Any:
        start_time = time.time()
        try:
            response = await self.circuit_breaker.call(self._send, method, url, **kwargs)
        except CircuitBreakerOpenError as exc:
            raise UpstreamError(str(exc), details={"operation": operation}) from exc
        except RetryError as exc:
            self.logger.error(
                "Upstream unreachable",
                operation=operation,
                attempts=exc.attempts,
                error=str(exc.last_exception),
            )
            raise UpstreamError(
                f"Upstream unreachable: {exc.last_exception}",
                details={"operation": operation, "attempts": exc.attempts},
            ) from exc
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "upstream_request_duration_seconds",
                    time.time() - start_time,
                    operation=operation,
                )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                "Upstream returned a non-JSON body",
                details={"operation": operation},
            ) from exc

    async def _send_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)
        if response.status_code != 200:
            self.logger.warning(
                "Upstream returned error status",
                url=url,
                status_code=response.status_code,
            )
            raise UpstreamError(
                f"Upstream returned status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _parse(self, data: Dict[str, Any]) -> Location:
        try:
            return Location.model_validate(data)
        except SchemaError as exc:
            raise UpstreamError(
                "Upstream returned an invalid result",
                details={"errors": exc.error_count()},
            ) from exc

    def _count_forwarded(self, count: int) -> None:
        if self.metrics:
            self.metrics.increment_counter("queries_forwarded_total", count)
