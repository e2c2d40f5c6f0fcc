# backend/routes/career.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.deps import get_career_service, get_web_search_service
from backend.services.career_domains import CareerDomainService
from backend.services.openai_client import UpstreamError
from backend.services.web_search import WebSearchService

log = logging.getLogger("routes.career")

# NOTE: Do NOT set a prefix here since main.py already includes this router with prefix="/api/v1"
router = APIRouter()


async def _respond(coro, what: str):
    try:
        result = await coro
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamError as e:
        log.warning("%s failed upstream: %s", what, e)
        raise HTTPException(status_code=502, detail=f"Failed to {what}: {e}")
    except Exception:
        log.exception("%s failed", what)
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return result.to_response()


# ================
# 🧭 Career domains
# ================

@router.get("/career/trending", tags=["Career"])
async def trending_domains(svc: CareerDomainService = Depends(get_career_service)):
    """Top trending tech domains (refreshed from AI at most once per TTL)."""
    return await _respond(svc.get_trending_domains(), "get trending domains")


@router.get("/career/keyword/{keyword}", tags=["Career"])
async def analyze_keyword(keyword: str, svc: CareerDomainService = Depends(get_career_service)):
    """Career domains related to a keyword. Non-career keywords are answered but not stored."""
    return await _respond(svc.analyze_keyword(keyword), "analyze keyword")


# ================
# 🔎 Web search
# ================

@router.get("/search/technology", tags=["Search"])
async def technology_info(
    q: str = Query(..., min_length=1, max_length=120, description="Technology, e.g. 'react'"),
    svc: WebSearchService = Depends(get_web_search_service),
):
    return await _respond(svc.search_technology_info(q), "search technology info")


@router.get("/search/market", tags=["Search"])
async def market_trends(
    q: str = Query(..., min_length=1, max_length=120),
    svc: WebSearchService = Depends(get_web_search_service),
):
    return await _respond(svc.search_market_trends(q), "search market trends")


@router.get("/search/news", tags=["Search"])
async def news(
    q: str = Query(..., min_length=1, max_length=120),
    svc: WebSearchService = Depends(get_web_search_service),
):
    return await _respond(svc.search_news(q), "search news")
