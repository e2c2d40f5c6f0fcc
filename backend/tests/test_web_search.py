import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backend.services.cache_store import InMemoryCacheBackend
from backend.services.openai_client import UpstreamError
from backend.services.refreshable_cache import RefreshableCache
from backend.services.web_search import (
    WebSearchService, extract_market_insights, extract_technology_insights, is_real_search,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

CSE_ITEMS = {
    "items": [
        {
            "title": "React 19 release: what's new",
            "link": "https://react.dev/blog/react-19",
            "snippet": "Build apps with actions and the new compiler.",
            "displayLink": "react.dev",
        },
        {
            "title": "React developer salary 2025",
            "link": "https://example.com/salary",
            "snippet": "Salaries range $90,000 - $140,000; react skills in high demand.",
            "displayLink": "example.com",
        },
    ],
    "searchInformation": {"totalResults": "2"},
}


class Recorder:
    def __init__(self, status=200, body=CSE_ITEMS):
        self.status = status
        self.body = body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


def _service(handler=None, api_key="test-key", cx="test-cx", backend=None, retries=1):
    backend = backend or InMemoryCacheBackend()
    cache = RefreshableCache("web_search", backend, timedelta(days=7), clock=lambda: NOW)
    svc = WebSearchService(
        cache,
        api_key=api_key,
        search_engine_id=cx,
        base_url="https://cse.test/customsearch/v1",
        timeout=5,
        news_ttl=timedelta(hours=24),
        transport=httpx.MockTransport(handler or Recorder()),
        retries=retries,
    )
    return svc, backend


def test_technology_search_is_cached_per_keyword_and_type():
    handler = Recorder()
    svc, backend = _service(handler)

    first = asyncio.run(svc.search_technology_info("React"))
    second = asyncio.run(svc.search_technology_info("react"))

    assert len(handler.requests) == 1
    assert first.from_database is False and second.from_database is True
    payload = second.payload
    assert payload["searchType"] == "technology"
    assert payload["results"]["source"] == "google-custom-search"
    assert len(payload["results"]["organic_results"]) == 2
    assert payload["insights"]["latestVersion"] == "19"
    assert asyncio.run(backend.find("react_technology")) is not None

    params = handler.requests[0].url.params
    assert params["q"] == "react latest version features use cases"
    assert params["cx"] == "test-cx"
    assert params["num"] == "10"


def test_market_search_uses_its_own_key():
    handler = Recorder()
    svc, backend = _service(handler)
    asyncio.run(svc.search_technology_info("react"))
    market = asyncio.run(svc.search_market_trends("react"))

    assert len(handler.requests) == 2
    assert market.payload["insights"]["salaryRange"] == {"min": 90000, "max": 140000, "currency": "USD"}
    assert market.payload["insights"]["marketDemand"] == "High"
    assert len(backend) == 2


def test_news_search_has_shorter_ttl_and_date_restriction():
    handler = Recorder()
    svc, _ = _service(handler)
    news = asyncio.run(svc.search_news("kubernetes"))

    assert news.expires_at == NOW + timedelta(hours=24)
    assert handler.requests[0].url.params["dateRestrict"] == "m1"


def test_unconfigured_search_returns_ai_only_and_is_not_cached():
    handler = Recorder()
    svc, backend = _service(handler, api_key=None)

    result = asyncio.run(svc.search_technology_info("react"))
    assert result.payload["results"]["source"] == "ai-only"
    assert result.from_database is False
    assert handler.requests == []
    assert len(backend) == 0


def test_quota_exceeded_raises_upstream_error():
    svc, backend = _service(Recorder(status=429, body={"error": "quota"}))
    with pytest.raises(UpstreamError, match="quota"):
        asyncio.run(svc.search_technology_info("react"))
    assert len(backend) == 0


def test_server_errors_are_raised_after_retries():
    handler = Recorder(status=503, body={"error": "unavailable"})
    svc, _ = _service(handler, retries=0)
    with pytest.raises(UpstreamError):
        asyncio.run(svc.search_general("react"))
    assert len(handler.requests) == 1


def test_unknown_search_type_and_empty_keyword():
    svc, _ = _service()
    with pytest.raises(ValueError):
        asyncio.run(svc._search("react", "images", "react"))
    with pytest.raises(ValueError):
        asyncio.run(svc.search_general("   "))


def test_ai_context_summarizes_live_results():
    svc, _ = _service()
    context = asyncio.run(svc.get_ai_context("react"))
    assert context.startswith('=== REAL-TIME WEB CONTEXT FOR "REACT" ===')
    assert "Latest Version: 19" in context
    assert "Salary Range: $90,000 - $140,000" in context
    assert "Top Web Results:" in context
    assert context.endswith("=== END CONTEXT ===")


def test_ai_context_is_empty_without_data_or_on_failure():
    svc, _ = _service(api_key=None)
    assert asyncio.run(svc.get_ai_context("react")) == ""

    svc, _ = _service(Recorder(status=429, body={}))
    assert asyncio.run(svc.get_ai_context("react")) == ""


def test_insight_extractors():
    tech = extract_technology_insights({"organic_results": [
        {"title": "Python 3.13 released", "snippet": "Version 3.13 brings a new REPL"},
        {"title": "Build APIs with FastAPI", "snippet": "web applications"},
    ]})
    assert tech["latestVersion"] == "3.13"
    assert tech["useCases"] == ["Build APIs with FastAPI"]

    market = extract_market_insights({"organic_results": [
        {"title": "Data engineer pay in India", "snippet": "Freshers get 8 - 15 LPA; growing field"},
    ]})
    assert market["salaryRange"] == {"min": 800000, "max": 1500000, "currency": "INR"}
    assert market["marketDemand"] == "Growing"

    assert extract_market_insights({})["marketDemand"] == "Unknown"


def test_is_real_search():
    assert is_real_search({"results": {"source": "google-custom-search"}})
    assert not is_real_search({"results": {"source": "ai-only"}})
