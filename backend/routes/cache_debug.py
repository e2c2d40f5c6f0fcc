# backend/routes/cache_debug.py
from fastapi import APIRouter, Depends, HTTPException

from backend.deps import get_cache_backend
from backend.services.cache_store import CacheBackend
from backend.services.refreshable_cache import utcnow

router = APIRouter(prefix="/api/v1/_debug/cache", tags=["Debug"])


@router.get("/{key}")
async def peek_entry(key: str, backend: CacheBackend = Depends(get_cache_backend)):
    """ Raw cache row (does not count as a read). """
    row = await backend.find(key)
    if row is None:
        raise HTTPException(404, f"No cache entry for {key!r}")
    out = row.model_dump(mode="json")
    out["fresh"] = row.is_fresh(utcnow())
    return out


@router.delete("/{key}")
async def evict_entry(key: str, backend: CacheBackend = Depends(get_cache_backend)):
    if not await backend.delete(key):
        raise HTTPException(404, f"No cache entry for {key!r}")
    return {"evicted": key}


@router.post("/purge")
async def purge_expired(backend: CacheBackend = Depends(get_cache_backend)):
    """ Drop every entry past its expires_at (SQLite has no TTL index). """
    return {"removed": await backend.purge_expired(utcnow())}
