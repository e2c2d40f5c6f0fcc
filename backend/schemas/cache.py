# backend/schemas/cache.py
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


class CacheRecord(BaseModel):
    key: str
    kind: str
    payload: Any = None
    usage_count: int = 0
    expires_at: datetime
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_fresh(self, now: datetime) -> bool:
        # FRESH iff now < expires_at; at the instant itself it is already STALE
        return as_utc(now) < as_utc(self.expires_at)


class CachedResult(BaseModel):
    """What a cache-consulting call hands back: the payload plus where it came from."""
    payload: Any = None
    from_database: bool = Field(False, serialization_alias="fromDatabase")
    usage_count: Optional[int] = Field(None, serialization_alias="usageCount")
    expires_at: Optional[datetime] = Field(None, serialization_alias="expiresAt")

    def to_response(self) -> dict:
        """Flatten dict payloads so clients see {...payload, fromDatabase, usageCount}."""
        meta = self.model_dump(by_alias=True, exclude={"payload"}, exclude_none=True, mode="json")
        if isinstance(self.payload, dict):
            return {**self.payload, **meta}
        return {"data": self.payload, **meta}
