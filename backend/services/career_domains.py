# backend/services/career_domains.py
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from backend.schemas.cache import CachedResult
from backend.services.openai_client import OpenAIClient
from backend.services.refreshable_cache import RefreshableCache, SingletonCache
from backend.services.web_search import WebSearchService
from backend.utils.text_normalize import normalize_keyword

log = logging.getLogger("services.career_domains")

# quick local screen before spending an AI call
_BLOCKED_RE = re.compile(r"\b(porn|xxx|nsfw|nude|drug|kill|murder|suicide|hate|racist)\b", re.I)

SYSTEM_PROMPT = """You are an expert career counselor and tech industry analyst.
Analyze technology keywords and identify ALL career domains, job opportunities and career paths related to them,
including niche and emerging domains that have real job openings.

FIRST: decide whether the keyword is career/tech related. If it is about cooking, weather, entertainment
or other non-professional topics, set "isCareerRelated" to false.

Return JSON only:
{
  "isCareerRelated": true,
  "primaryCategory": "technology",
  "subcategory": "web development",
  "tags": ["tag1", "tag2"],
  "summary": "One paragraph overview",
  "domains": [
    {"name": "Domain", "description": "...", "jobCount": 0, "demandLevel": "High/Medium/Low", "skills": ["..."]}
  ],
  "totalDomainsFound": 0
}"""

TRENDING_PROMPT = """List the top 10 trending tech domains for the next two years with high job demand.

Return JSON format:
{
  "domains": [
    {
      "name": "Domain Name",
      "description": "Brief 1-line description",
      "demandLevel": "High/Very High/Extreme",
      "avgSalaryUSD": 120000,
      "growthRate": "25%",
      "topSkills": ["skill1", "skill2", "skill3"],
      "icon": "emoji representing domain"
    }
  ]
}"""


def build_analysis_prompt(keyword: str, web_context: str = "") -> str:
    prompt = (
        f'Analyze the keyword "{keyword}" and identify ALL possible career domains and job opportunities.\n\n'
        "Include mainstream, niche, emerging and cross-functional domains "
        f"(combining {keyword} with healthcare, finance, gaming, etc.).\n"
        "Give realistic job counts based on current market data and focus on domains with REAL openings.\n\n"
        "Return comprehensive JSON as specified in the system prompt."
    )
    if web_context:
        prompt = f"{prompt}\n\n{web_context}"
    return prompt


def is_career_related(result: Any) -> bool:
    # only an explicit False opts out of persistence
    return not (isinstance(result, dict) and result.get("isCareerRelated") is False)


class CareerDomainService:
    """AI-backed keyword analysis and trending domains, each fronted by a DB cache."""

    def __init__(
        self,
        llm: OpenAIClient,
        keyword_cache: RefreshableCache,
        trending_cache: SingletonCache,
        web_search: Optional[WebSearchService] = None,
    ):
        self.llm = llm
        self.web_search = web_search
        self.keyword_cache = keyword_cache
        self.trending_cache = trending_cache

    @staticmethod
    def moderate(keyword: str) -> str:
        normalized = normalize_keyword(keyword)
        if not normalized:
            raise ValueError("Keyword is required")
        if len(normalized) > 120:
            raise ValueError("Keyword is too long")
        if _BLOCKED_RE.search(normalized):
            raise ValueError("This keyword is not appropriate for career search")
        return normalized

    @staticmethod
    def process_ai_response(ai_response: Dict[str, Any], keyword: str) -> Dict[str, Any]:
        return {
            **ai_response,
            "category": (ai_response.get("primaryCategory") or "technology").strip().lower(),
            "subcategory": (ai_response.get("subcategory") or "").strip().lower(),
            "tags": [str(t).strip().lower() for t in ai_response.get("tags") or []],
            "analyzedAt": datetime.now(timezone.utc).isoformat(),
            "keyword": keyword,
            "source": "groq-ai",
        }

    async def analyze_keyword(self, keyword: str) -> CachedResult:
        normalized = self.moderate(keyword)

        async def _analyze():
            log.info("Analyzing keyword: %s", normalized)
            web_context = await self.web_search.get_ai_context(normalized) if self.web_search else ""
            ai = await self.llm.get_json_completion(
                build_analysis_prompt(normalized, web_context),
                system_prompt=SYSTEM_PROMPT,
                max_tokens=4000,
            )
            return self.process_ai_response(ai, normalized)

        return await self.keyword_cache.fetch_or_compute(
            RefreshableCache.make_key(normalized),
            _analyze,
            cacheable=is_career_related,
        )

    async def get_trending_domains(self) -> CachedResult:
        async def _trending():
            log.info("Fetching trending domains from AI")
            ai = await self.llm.get_json_completion(
                TRENDING_PROMPT,
                system_prompt="You are a tech industry expert. Return JSON only.",
                max_tokens=2000,
            )
            return {**ai, "generatedAt": datetime.now(timezone.utc).isoformat()}

        return await self.trending_cache.fetch_or_compute(_trending)
