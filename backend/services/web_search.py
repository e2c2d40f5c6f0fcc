# backend/services/web_search.py
"""
Google Custom Search (Programmable Search Engine) behind a keyed DB cache.

Setup: create a search engine with "Search the entire web", then put
GOOGLE_CSE_API_KEY and GOOGLE_CSE_ID in .env. Without them every search returns
an 'ai-only' placeholder, which is served but never cached.
"""
import asyncio
import logging
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from backend.config import (
    GOOGLE_CSE_API_KEY, GOOGLE_CSE_ID, WEB_SEARCH_URL, WEB_SEARCH_TIMEOUT_SECS, WEB_SEARCH_RETRIES,
    WEB_NEWS_TTL_HOURS,
)
from backend.schemas.cache import CachedResult
from backend.services.openai_client import UpstreamError
from backend.services.refreshable_cache import RefreshableCache
from backend.utils.text_normalize import normalize_keyword

log = logging.getLogger("services.web_search")

SEARCH_TYPES = ("technology", "market_trends", "news", "general")
MAX_RESULTS = 10  # CSE hard cap per request

_VERSION_RES = [
    re.compile(r"(\d+\.?\d*\.?\d*)\s*(?:release|version|update)", re.I),
    re.compile(r"version\s*(\d+\.?\d*\.?\d*)", re.I),
    re.compile(r"\bv(\d+\.?\d*\.?\d*)", re.I),
]
_SALARY_RE = re.compile(r"(\$|₹|rs\.?|inr)\s*(\d[\d,]*)\s*(?:-|–|to)+\s*(?:\$|₹|rs\.?|inr)?\s*(\d[\d,]*)", re.I)
_LPA_RE = re.compile(r"(\d[\d,]*)\s*(?:-|–|to)+\s*(\d[\d,]*)\s*(lpa|lakh)", re.I)


def _num(s: str) -> int:
    return int(s.replace(",", ""))


def simulated_results(query: str) -> Dict[str, Any]:
    return {
        "organic_results": [],
        "note": "Search API not configured. AI will provide information from training data.",
        "query": query,
        "source": "ai-only",
    }


def extract_technology_insights(results: Dict[str, Any]) -> Dict[str, Any]:
    insights: Dict[str, Any] = {"latestVersion": None, "useCases": [], "trendingTopics": []}
    for r in (results.get("organic_results") or [])[:5]:
        title = r.get("title") or ""
        text = f"{title} {r.get('snippet') or ''}".lower()

        if insights["latestVersion"] is None:
            for rx in _VERSION_RES:
                m = rx.search(text)
                if m:
                    insights["latestVersion"] = m.group(1)
                    break

        if any(w in text for w in ("use", "application", "build")) and title:
            insights["useCases"].append(title[:80])

    insights["useCases"] = list(dict.fromkeys(insights["useCases"]))[:5]
    return insights


def extract_market_insights(results: Dict[str, Any]) -> Dict[str, Any]:
    insights: Dict[str, Any] = {"marketDemand": "Unknown", "salaryRange": None, "topCompanies": []}
    for r in (results.get("organic_results") or [])[:5]:
        text = f"{r.get('title') or ''} {r.get('snippet') or ''}".lower()

        if insights["salaryRange"] is None:
            m = _SALARY_RE.search(text)
            if m:
                insights["salaryRange"] = {
                    "min": _num(m.group(2)),
                    "max": _num(m.group(3)),
                    "currency": "USD" if "$" in m.group(1) else "INR",
                }
            else:
                m = _LPA_RE.search(text)
                if m:
                    insights["salaryRange"] = {
                        "min": _num(m.group(1)) * 100000,
                        "max": _num(m.group(2)) * 100000,
                        "currency": "INR",
                    }

        if "shortage" in text or "hiring spree" in text:
            insights["marketDemand"] = "Very High"
        elif "high demand" in text or "most wanted" in text or "top skills" in text:
            insights["marketDemand"] = "High"
        elif "growing" in text or "increasing demand" in text:
            insights["marketDemand"] = "Growing"
    return insights


def is_real_search(payload: Any) -> bool:
    results = (payload or {}).get("results") or {}
    return results.get("source") != "ai-only"


class WebSearchService:
    def __init__(
        self,
        cache: RefreshableCache,
        api_key: Optional[str] = GOOGLE_CSE_API_KEY,
        search_engine_id: Optional[str] = GOOGLE_CSE_ID,
        base_url: str = WEB_SEARCH_URL,
        timeout: float = WEB_SEARCH_TIMEOUT_SECS,
        news_ttl: timedelta = timedelta(hours=WEB_NEWS_TTL_HOURS),
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retries: int = WEB_SEARCH_RETRIES,
    ):
        self.cache = cache
        self.api_key = api_key
        self.search_engine_id = search_engine_id
        self.base_url = base_url
        self.timeout = timeout
        self.news_ttl = news_ttl
        self.retries = retries
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key and self.search_engine_id)

    async def perform_search(self, query: str, **options: Any) -> Dict[str, Any]:
        if not self.is_configured():
            log.info("Google Custom Search not configured, using AI-only mode")
            return simulated_results(query)

        params = {"key": self.api_key, "cx": self.search_engine_id, "q": query, "num": MAX_RESULTS, **options}
        backoff = 0.9
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(self.retries + 1):
                try:
                    r = await client.get(self.base_url, params=params)
                    if r.status_code == 429:
                        log.warning("Google CSE quota exceeded")
                        raise UpstreamError("Google CSE quota exceeded")
                    r.raise_for_status()
                    data = r.json()
                    break
                except UpstreamError:
                    raise
                except (httpx.HTTPError, ValueError) as e:
                    log.warning("Google CSE request error: %s", e)
                    last_error = e
                    if attempt < self.retries:
                        await asyncio.sleep(backoff * (2 ** attempt))
            else:
                raise UpstreamError(f"Google CSE failed: {last_error}") from last_error

        items = data.get("items") or []
        return {
            "organic_results": [
                {
                    "title": it.get("title"),
                    "link": it.get("link"),
                    "snippet": it.get("snippet"),
                    "displayLink": it.get("displayLink"),
                }
                for it in items
            ],
            "searchInformation": data.get("searchInformation"),
            "source": "google-custom-search",
        }

    async def _search(
        self,
        keyword: str,
        search_type: str,
        query: str,
        ttl: Optional[timedelta] = None,
        **options: Any,
    ) -> CachedResult:
        if search_type not in SEARCH_TYPES:
            raise ValueError(f"Unknown search type: '{search_type}'")
        normalized = normalize_keyword(keyword)
        if not normalized:
            raise ValueError("Search keyword is required")

        async def _do_search():
            results = await self.perform_search(query, **options)
            if search_type == "technology":
                insights = extract_technology_insights(results)
            elif search_type == "market_trends":
                insights = extract_market_insights(results)
            else:
                insights = {}
            return {"query": normalized, "searchType": search_type, "results": results, "insights": insights}

        return await self.cache.fetch_or_compute(
            RefreshableCache.make_key(normalized, search_type),
            _do_search,
            ttl=ttl,
            cacheable=is_real_search,
        )

    async def search_technology_info(self, keyword: str) -> CachedResult:
        q = f"{normalize_keyword(keyword)} latest version features use cases"
        return await self._search(keyword, "technology", q)

    async def search_market_trends(self, keyword: str) -> CachedResult:
        q = f"{normalize_keyword(keyword)} job market demand salary trends"
        return await self._search(keyword, "market_trends", q)

    async def search_news(self, keyword: str) -> CachedResult:
        # news goes stale faster than everything else
        q = f"{normalize_keyword(keyword)} news updates"
        return await self._search(keyword, "news", q, ttl=self.news_ttl, dateRestrict="m1")

    async def search_general(self, keyword: str) -> CachedResult:
        return await self._search(keyword, "general", normalize_keyword(keyword))

    async def get_ai_context(self, keyword: str) -> str:
        """Short text block of live web facts to prepend to AI prompts ('' on failure)."""
        try:
            tech, market = await asyncio.gather(
                self.search_technology_info(keyword),
                self.search_market_trends(keyword),
            )
        except (UpstreamError, ValueError) as e:
            log.warning("Web context failed: %s", e)
            return ""

        tech_insights = tech.payload.get("insights") or {}
        market_insights = market.payload.get("insights") or {}

        lines: List[str] = [f'=== REAL-TIME WEB CONTEXT FOR "{keyword.upper()}" ===']
        if tech_insights.get("latestVersion"):
            lines.append(f"Latest Version: {tech_insights['latestVersion']}")
        if market_insights.get("marketDemand") not in (None, "Unknown"):
            lines.append(f"Market Demand: {market_insights['marketDemand']}")
        salary = market_insights.get("salaryRange")
        if salary:
            symbol = "$" if salary.get("currency") == "USD" else "₹"
            lines.append(f"Salary Range: {symbol}{salary['min']:,} - {symbol}{salary['max']:,}")

        top = [
            *(tech.payload.get("results") or {}).get("organic_results", []),
            *(market.payload.get("results") or {}).get("organic_results", []),
        ][:5]
        top = [r for r in top if r.get("title") and r.get("snippet")]
        if top:
            lines.append("Top Web Results:")
            lines.extend(f"{i}. {r['title']}: {r['snippet'][:150]}" for i, r in enumerate(top, 1))

        if len(lines) == 1:
            return ""
        lines.append("=== END CONTEXT ===")
        return "\n".join(lines)
