# backend/services/cache_store.py
"""
Storage boundary for cached computations.

A backend only knows find / touch ($inc usage + $set last access) / upsert /
delete / purge. Freshness is decided by the caller comparing `expires_at`
with "now"; purge timing is advisory.
"""
import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.database import SessionLocal
from backend.models import CacheEntry
from backend.schemas.cache import CacheRecord, as_utc

log = logging.getLogger("cache.store")


class CacheBackend:
    """Async document-store interface. Every call is atomic per key."""

    async def find(self, key: str) -> Optional[CacheRecord]:
        raise NotImplementedError

    async def touch(self, key: str, now: datetime) -> Optional[CacheRecord]:
        """usage_count += 1, last_accessed_at = now; returns the updated record."""
        raise NotImplementedError

    async def upsert(
        self, key: str, kind: str, payload: Any, expires_at: datetime, now: datetime
    ) -> CacheRecord:
        """Insert or overwrite payload/expiry, usage_count += 1."""
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def purge_expired(self, now: datetime) -> int:
        raise NotImplementedError


# =========================
# 🗄️ SQLAlchemy backend
# =========================

def _to_record(row: CacheEntry) -> CacheRecord:
    return CacheRecord(
        key=row.cache_key,
        kind=row.kind,
        payload=row.payload,
        usage_count=row.usage_count or 0,
        expires_at=as_utc(row.expires_at),
        last_accessed_at=as_utc(row.last_accessed_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class SQLCacheBackend(CacheBackend):
    """
    `cache_entries` table via SQLAlchemy. Sessions are sync, so each call runs in a
    worker thread with its own short-lived session; nothing is held across awaits.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        def _work():
            db = self.session_factory()
            try:
                return fn(db)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()
        return await asyncio.to_thread(_work)

    @staticmethod
    def _get(db: Session, key: str) -> Optional[CacheEntry]:
        return db.execute(select(CacheEntry).where(CacheEntry.cache_key == key)).scalar_one_or_none()

    async def find(self, key: str) -> Optional[CacheRecord]:
        def _find(db: Session):
            row = self._get(db, key)
            return _to_record(row) if row else None
        return await self._run(_find)

    async def touch(self, key: str, now: datetime) -> Optional[CacheRecord]:
        def _touch(db: Session):
            res = db.execute(
                update(CacheEntry)
                .where(CacheEntry.cache_key == key)
                .values(usage_count=CacheEntry.usage_count + 1, last_accessed_at=now)
            )
            db.commit()
            if not res.rowcount:
                return None
            row = self._get(db, key)
            return _to_record(row) if row else None
        return await self._run(_touch)

    async def upsert(self, key, kind, payload, expires_at, now) -> CacheRecord:
        def _write(db: Session):
            res = db.execute(
                update(CacheEntry)
                .where(CacheEntry.cache_key == key)
                .values(
                    kind=kind,
                    payload=payload,
                    expires_at=expires_at,
                    last_accessed_at=now,
                    updated_at=now,
                    usage_count=CacheEntry.usage_count + 1,
                )
            )
            if not res.rowcount:
                db.add(CacheEntry(
                    cache_key=key,
                    kind=kind,
                    payload=payload,
                    usage_count=1,
                    expires_at=expires_at,
                    last_accessed_at=now,
                    created_at=now,
                    updated_at=now,
                ))
            try:
                db.commit()
            except IntegrityError:
                # lost the insert race to a concurrent writer -> last write wins
                db.rollback()
                log.debug("upsert race on %s, retrying as update", key)
                db.execute(
                    update(CacheEntry)
                    .where(CacheEntry.cache_key == key)
                    .values(
                        kind=kind,
                        payload=payload,
                        expires_at=expires_at,
                        last_accessed_at=now,
                        updated_at=now,
                        usage_count=CacheEntry.usage_count + 1,
                    )
                )
                db.commit()
            return _to_record(self._get(db, key))
        return await self._run(_write)

    async def delete(self, key: str) -> bool:
        def _delete(db: Session):
            res = db.execute(delete(CacheEntry).where(CacheEntry.cache_key == key))
            db.commit()
            return bool(res.rowcount)
        return await self._run(_delete)

    async def purge_expired(self, now: datetime) -> int:
        def _purge(db: Session):
            res = db.execute(delete(CacheEntry).where(CacheEntry.expires_at <= now))
            db.commit()
            return res.rowcount or 0
        removed = await self._run(_purge)
        if removed:
            log.info("Cache purge: removed %d expired entries", removed)
        return removed


# =========================
# 🧠 In-memory backend (dev / tests)
# =========================

class InMemoryCacheBackend(CacheBackend):
    """Process-local dict. Each method completes without yielding, so per-key ops stay atomic."""

    def __init__(self):
        self._rows: Dict[str, CacheRecord] = {}

    async def find(self, key: str) -> Optional[CacheRecord]:
        row = self._rows.get(key)
        return row.model_copy(deep=True) if row else None

    async def touch(self, key: str, now: datetime) -> Optional[CacheRecord]:
        row = self._rows.get(key)
        if row is None:
            return None
        row.usage_count += 1
        row.last_accessed_at = now
        return row.model_copy(deep=True)

    async def upsert(self, key, kind, payload, expires_at, now) -> CacheRecord:
        row = self._rows.get(key)
        if row is None:
            row = CacheRecord(key=key, kind=kind, expires_at=expires_at, created_at=now)
            self._rows[key] = row
        row.kind = kind
        row.payload = copy.deepcopy(payload)  # callers may mutate what they handed in
        row.expires_at = expires_at
        row.last_accessed_at = now
        row.updated_at = now
        row.usage_count += 1
        return row.model_copy(deep=True)

    async def delete(self, key: str) -> bool:
        return self._rows.pop(key, None) is not None

    async def purge_expired(self, now: datetime) -> int:
        expired = [k for k, row in self._rows.items() if not row.is_fresh(now)]
        for k in expired:
            del self._rows[k]
        if expired:
            log.info("Cache purge: removed %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._rows)
