"""
Batch resolution: cache classification, one coalesced upstream call,
reverse-name enrichment, write-back and ordered reassembly.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from shared.errors import UpstreamError, ValidationError
from shared.logging import get_logger

from ..adapters.ip_api_client import UpstreamQuery
from ..caching.projection import project
from ..caching.record_store import RecordStore
from ..domain.fields import ALL_FIELDS, FieldSet, cache_key, extract_subject, parse_fields, validate_lang
from ..domain.models import BatchItem, Location, failure
from .policy import CachePolicy


BatchInput = Union[BatchItem, str, Dict[str, Any]]


@dataclass
class _Entry:
    index: int
    subject: str
    fields: FieldSet
    lang: str

    @property
    def key(self) -> str:
        return cache_key(self.subject, self.lang)


class BatchCoordinator:
    """Resolves a list of lookups against the store and the upstream service.

    Every ``resolve`` call makes at most one upstream batch call no matter how
    many items miss the cache. Per-item work runs as bounded concurrent tasks
    and each phase is joined before the next starts. A failure in one item
    becomes that item's outcome and never affects the others.
    """

    def __init__(
        self,
        store: RecordStore,
        upstream,
        resolver,
        policy: Optional[CachePolicy] = None,
        metrics=None,
        max_concurrency: int = 10,
    ):
        self.store = store
        self.upstream = upstream
        self.resolver = resolver
        self.policy = policy or CachePolicy()
        self.metrics = metrics
        self.max_concurrency = max(1, max_concurrency)
        self.logger = get_logger("geoproxy.batch")

    async def resolve(
        self,
        items: Sequence[BatchInput],
        default_fields: FieldSet = ALL_FIELDS,
        default_lang: str = "",
        *,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[Location]:
        """Resolve ``items``; ``output[i]`` always answers ``items[i]``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        outcomes: Dict[int, Location] = {}
        entries: List[_Entry] = []
        for index, raw in enumerate(items):
            item = self._coerce(raw)
            try:
                entries.append(self._prepare(index, item, default_fields, default_lang))
            except ValidationError as exc:
                outcomes[index] = failure(exc.message, query=item.query or None)

        misses = await self._classify(entries, outcomes)

        if misses:
            written = await self._fetch_and_store(misses, default_lang, api_key, deadline)
            for entry in misses:
                result, found = self.store.get(entry.key, entry.fields)
                if not found:
                    # stored with a non-positive ttl and already gone
                    result = project(written[entry.key], entry.fields)
                outcomes[entry.index] = result

        self._count("failed_queries_total", len(items) - len(entries))
        self.logger.info(
            "Batch resolved",
            items=len(items),
            hits=len(entries) - len(misses),
            misses=len(misses),
            rejected=len(items) - len(entries),
        )
        return [outcomes[index] for index in range(len(items))]

    def _coerce(self, raw: BatchInput) -> BatchItem:
        if isinstance(raw, BatchItem):
            return raw
        if isinstance(raw, str):
            return BatchItem(query=raw)
        return BatchItem.model_validate(raw)

    def _prepare(self, index: int, item: BatchItem, default_fields: FieldSet, default_lang: str) -> _Entry:
        if not item.query or not item.query.strip():
            raise ValidationError("query request is blank")

        subject = extract_subject(item.query)
        if not subject:
            raise ValidationError(f"invalid query: {item.query}", details={"query": item.query})

        fields = parse_fields(item.fields) if item.fields else default_fields
        lang = validate_lang(item.lang) if item.lang else default_lang
        return _Entry(index=index, subject=subject, fields=fields or ALL_FIELDS, lang=lang)

    async def _classify(self, entries: List[_Entry], outcomes: Dict[int, Location]) -> List[_Entry]:
        async def lookup(entry: _Entry) -> Tuple[Optional[Location], bool]:
            return self.store.get(entry.key, entry.fields)

        misses: List[_Entry] = []
        results = await self._run_bounded(entries, lookup)
        for entry, outcome in zip(entries, results):
            if isinstance(outcome, Exception):
                self.logger.error("Cache lookup failed", key=entry.key, error=str(outcome))
                outcomes[entry.index] = failure(str(outcome), query=entry.subject)
                continue

            result, found = outcome
            if found:
                self.logger.debug("Cache hit", key=entry.key)
                outcomes[entry.index] = result
            else:
                misses.append(entry)

        self._count("cache_hits_total", len(entries) - len(misses))
        self._count("cache_misses_total", len(misses))
        return misses

    async def _fetch_and_store(
        self,
        misses: List[_Entry],
        default_lang: str,
        api_key: Optional[str],
        deadline: Optional[float],
    ) -> Dict[str, Location]:
        # upstream answers carry no language, so a subject is sent at most once
        chosen: Dict[str, _Entry] = {}
        for entry in misses:
            current = chosen.get(entry.subject)
            if current is None or (current.lang != default_lang and entry.lang == default_lang):
                chosen[entry.subject] = entry

        pending: Dict[str, UpstreamQuery] = {}
        deferred: Dict[str, str] = {}
        for entry in misses:
            if entry.key in pending or entry.key in deferred:
                continue
            if chosen[entry.subject].key != entry.key:
                deferred[entry.key] = entry.subject
                continue
            lang = entry.lang if entry.lang != default_lang else ""
            pending[entry.key] = UpstreamQuery(subject=entry.subject, lang=lang)

        queries = list(pending.values())
        try:
            results = await asyncio.wait_for(
                self.upstream.batch_query(queries, api_key=api_key, lang=default_lang or None),
                timeout=self._remaining(deadline),
            )
            fetched = self._correlate(list(pending.items()), results)
        except asyncio.TimeoutError:
            self.logger.warning("Upstream batch timed out", pending=len(pending))
            fetched = {key: failure("upstream request timed out", query=q.subject) for key, q in pending.items()}
        except UpstreamError as exc:
            self.logger.warning("Upstream batch failed", pending=len(pending), error=exc.message)
            fetched = {key: failure(exc.message, query=q.subject) for key, q in pending.items()}
        except Exception as e:
            self.logger.error("Upstream batch raised", pending=len(pending), error=str(e))
            fetched = {key: failure(f"upstream request failed: {e}", query=q.subject) for key, q in pending.items()}

        async def write_back(item: Tuple[str, Location]) -> Location:
            key, result = item
            if result.is_success:
                name, ok = await self._reverse(result.query or pending[key].subject, deadline)
                if ok:
                    result = result.model_copy(update={"reverse": name})
            self.store.put(key, result, self.policy.ttl_for(result))
            return result

        written: Dict[str, Location] = {}
        stored = await self._run_bounded(list(fetched.items()), write_back)
        for (key, result), outcome in zip(fetched.items(), stored):
            if isinstance(outcome, Exception):
                self.logger.error("Write-back failed", key=key, error=str(outcome))
                outcome = failure(str(outcome), query=pending[key].subject)
            written[key] = outcome
        for key, subject in deferred.items():
            written[key] = failure("subject already requested in another language in this batch", query=subject)

        successful = sum(1 for result in written.values() if result.is_success)
        self._count("successful_queries_total", successful)
        self._count("failed_queries_total", len(written) - successful)
        return written

    def _correlate(
        self,
        pending: List[Tuple[str, UpstreamQuery]],
        results: Sequence[Location],
    ) -> Dict[str, Location]:
        """Pair upstream results with requests.

        Results are matched on ``query`` first. The upstream answers host
        names with the resolved address, so leftover results fill the
        remaining requests in order. Requests still unanswered fail.
        """
        unmatched = list(pending)
        leftovers: List[Location] = []
        correlated: Dict[str, Location] = {}

        for result in results:
            for position, (key, query) in enumerate(unmatched):
                if query.subject == result.query:
                    correlated[key] = result
                    del unmatched[position]
                    break
            else:
                leftovers.append(result)

        for (key, query), result in zip(unmatched, leftovers):
            correlated[key] = result
        for key, query in unmatched[len(leftovers):]:
            correlated[key] = failure("no result returned for query", query=query.subject)
        return correlated

    async def _reverse(self, subject: str, deadline: Optional[float]) -> Tuple[str, bool]:
        try:
            return await asyncio.wait_for(
                self.resolver.reverse_lookup(subject),
                timeout=self._remaining(deadline),
            )
        except asyncio.TimeoutError:
            self.logger.debug("Reverse lookup timed out", subject=subject)
        except Exception as e:
            self.logger.debug("Reverse lookup failed", subject=subject, error=str(e))
        return "", False

    async def _run_bounded(self, items: List[Any], worker: Callable[[Any], Awaitable[Any]]) -> List[Any]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(item):
            async with semaphore:
                return await worker(item)

        return await asyncio.gather(*(run(item) for item in items), return_exceptions=True)

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - asyncio.get_running_loop().time())

    def _count(self, metric_name: str, amount: int) -> None:
        if self.metrics and amount:
            self.metrics.increment_counter(metric_name, amount)
