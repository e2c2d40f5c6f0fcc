# backend/services/refreshable_cache.py
"""
TTL read-through cache in front of expensive external calls (AI generation,
web search, keyword classification).

Per key: COLD (no row) -> FRESH (now < expires_at) -> STALE (now >= expires_at)
-> FRESH again after a successful refresh write.

usage_count policy (same for keyed and singleton kinds): +1 on every FRESH read,
+1 on every write. Cold or stale reads do not count.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from backend.schemas.cache import CachedResult, CacheRecord
from backend.services.cache_store import CacheBackend
from backend.utils.text_normalize import normalize_key

log = logging.getLogger("cache.refreshable")

Clock = Callable[[], datetime]
Compute = Callable[[], Awaitable[Any]]
Cacheable = Callable[[Any], bool]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheUnavailable(Exception):
    """The backing store could not be read. Callers treat this as a miss."""


class RefreshableCache:
    def __init__(
        self,
        kind: str,
        backend: CacheBackend,
        ttl: timedelta,
        *,
        clock: Clock = utcnow,
        count_reads: bool = True,
        coalesce: bool = False,
    ):
        self.kind = kind
        self.backend = backend
        self.ttl = ttl
        self.clock = clock
        self.count_reads = count_reads
        self.coalesce = coalesce
        self._inflight: Dict[str, "asyncio.Task[CachedResult]"] = {}

    def __repr__(self) -> str:
        return f"<RefreshableCache kind={self.kind!r} ttl={self.ttl}>"

    @staticmethod
    def make_key(query: str, *qualifiers: str) -> str:
        """'  Machine   Learning ', 'technology' -> 'machine learning_technology'"""
        return "_".join([normalize_key(query), *(q.strip().lower() for q in qualifiers)])

    # ---------- primitive ops ----------

    async def get(self, key: str) -> Optional[CacheRecord]:
        """FRESH row (with usage already bumped) or None for cold/stale keys."""
        now = self.clock()
        try:
            row = await self.backend.find(key)
        except Exception as e:
            raise CacheUnavailable(f"cache read failed for {key!r}: {e}") from e

        if row is None:
            return None
        if not row.is_fresh(now):
            log.debug("[%s] stale entry for %s (expired %s)", self.kind, key, row.expires_at)
            return None

        if self.count_reads:
            try:
                touched = await self.backend.touch(key, now)
            except Exception as e:
                raise CacheUnavailable(f"cache read failed for {key!r}: {e}") from e
            # row vanished between find and touch (purged); still serve what we read
            if touched is not None:
                row = touched
        return row

    async def put(self, key: str, payload: Any, ttl: Optional[timedelta] = None) -> CacheRecord:
        now = self.clock()
        expires_at = now + (ttl if ttl is not None else self.ttl)
        return await self.backend.upsert(key, self.kind, payload, expires_at, now)

    async def peek(self, key: str) -> Optional[CacheRecord]:
        """Raw row regardless of freshness; does not count as a read."""
        return await self.backend.find(key)

    async def evict(self, key: str) -> bool:
        return await self.backend.delete(key)

    async def purge_expired(self) -> int:
        return await self.backend.purge_expired(self.clock())

    # ---------- read-through ----------

    async def fetch_or_compute(
        self,
        key: str,
        compute: Compute,
        *,
        ttl: Optional[timedelta] = None,
        cacheable: Optional[Cacheable] = None,
    ) -> CachedResult:
        """
        Serve a FRESH entry (from_database=True) or run `compute`, store it and
        return it (from_database=False).
        - read failures fail open (treated as a miss)
        - compute failures propagate and nothing is cached
        - write failures are logged; the computed payload is still returned
        """
        try:
            hit = await self.get(key)
        except CacheUnavailable as e:
            log.warning("[%s] DB check failed: %s", self.kind, e)
            hit = None

        if hit is not None:
            log.info("[%s] DB hit for %s (usage=%d)", self.kind, key, hit.usage_count)
            return CachedResult(
                payload=hit.payload,
                from_database=True,
                usage_count=hit.usage_count,
                expires_at=hit.expires_at,
            )

        if not self.coalesce:
            return await self._refresh(key, compute, ttl, cacheable)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, compute, ttl, cacheable))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            log.debug("[%s] joining in-flight refresh for %s", self.kind, key)
        # shield: an abandoned request must not cancel the shared refresh
        return await asyncio.shield(task)

    def _forget(self, key: str, task: "asyncio.Task[CachedResult]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # waiters may all have been cancelled; mark the error as retrieved
        if not task.cancelled():
            task.exception()

    async def _refresh(
        self,
        key: str,
        compute: Compute,
        ttl: Optional[timedelta],
        cacheable: Optional[Cacheable],
    ) -> CachedResult:
        log.info("[%s] miss for %s, computing", self.kind, key)
        payload = await compute()

        if cacheable is not None and not cacheable(payload):
            log.info("[%s] result for %s not cacheable, returning uncached", self.kind, key)
            return CachedResult(payload=payload, from_database=False)

        try:
            row = await self.put(key, payload, ttl)
        except Exception as e:
            log.warning("[%s] Failed to save %s to DB: %s", self.kind, key, e)
            return CachedResult(payload=payload, from_database=False)

        log.info("[%s] saved %s (expires %s)", self.kind, key, row.expires_at.isoformat())
        return CachedResult(
            payload=payload,
            from_database=False,
            usage_count=row.usage_count,
            expires_at=row.expires_at,
        )


class SingletonCache:
    """
    A cache kind that only ever holds one row (e.g. trending domains).
    The row's key is the kind name itself, so no caller can address a second entry.
    """

    def __init__(self, kind: str, backend: CacheBackend, ttl: timedelta, **options):
        self._cache = RefreshableCache(kind, backend, ttl, **options)

    @property
    def kind(self) -> str:
        return self._cache.kind

    @property
    def key(self) -> str:
        return self._cache.kind

    def __repr__(self) -> str:
        return f"<SingletonCache kind={self.kind!r} ttl={self._cache.ttl}>"

    async def get(self) -> Optional[CacheRecord]:
        return await self._cache.get(self.key)

    async def put(self, payload: Any, ttl: Optional[timedelta] = None) -> CacheRecord:
        return await self._cache.put(self.key, payload, ttl)

    async def peek(self) -> Optional[CacheRecord]:
        return await self._cache.peek(self.key)

    async def evict(self) -> bool:
        return await self._cache.evict(self.key)

    async def fetch_or_compute(
        self,
        compute: Compute,
        *,
        ttl: Optional[timedelta] = None,
        cacheable: Optional[Cacheable] = None,
    ) -> CachedResult:
        return await self._cache.fetch_or_compute(self.key, compute, ttl=ttl, cacheable=cacheable)
