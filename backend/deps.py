# backend/deps.py
import logging
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.config import (
    CACHE_BACKEND, CACHE_COALESCE_MISSES,
    CAREER_KEYWORD_TTL_HOURS, TRENDING_DOMAINS_TTL_HOURS, WEB_SEARCH_TTL_HOURS,
)
from backend.database import SessionLocal
from backend.services.cache_store import CacheBackend, InMemoryCacheBackend, SQLCacheBackend
from backend.services.career_domains import CareerDomainService
from backend.services.openai_client import OpenAIClient
from backend.services.path_versions import PathVersionService
from backend.services.refreshable_cache import RefreshableCache, SingletonCache
from backend.services.web_search import WebSearchService

log = logging.getLogger("deps")

# cache kinds (one row per key; trending is a singleton kind)
TRENDING_DOMAINS = "trending_domains"
CAREER_KEYWORD = "career_keyword"
WEB_SEARCH = "web_search"


def get_db():
    """Yield a DB session and ensure it closes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_cache_backend() -> CacheBackend:
    if CACHE_BACKEND == "memory":
        log.info("Using in-memory cache backend (CACHE_BACKEND=memory)")
        return InMemoryCacheBackend()
    return SQLCacheBackend(SessionLocal)


@lru_cache
def get_web_search_cache() -> RefreshableCache:
    return RefreshableCache(
        WEB_SEARCH, get_cache_backend(), timedelta(hours=WEB_SEARCH_TTL_HOURS),
        coalesce=CACHE_COALESCE_MISSES,
    )


@lru_cache
def get_web_search_service() -> WebSearchService:
    return WebSearchService(get_web_search_cache())


@lru_cache
def get_career_service() -> CareerDomainService:
    backend = get_cache_backend()
    return CareerDomainService(
        llm=OpenAIClient(),
        keyword_cache=RefreshableCache(
            CAREER_KEYWORD, backend, timedelta(hours=CAREER_KEYWORD_TTL_HOURS),
            coalesce=CACHE_COALESCE_MISSES,
        ),
        trending_cache=SingletonCache(
            TRENDING_DOMAINS, backend, timedelta(hours=TRENDING_DOMAINS_TTL_HOURS),
            coalesce=CACHE_COALESCE_MISSES,
        ),
        web_search=get_web_search_service(),
    )


def get_version_service(db: Session = Depends(get_db)) -> PathVersionService:
    return PathVersionService(db)
