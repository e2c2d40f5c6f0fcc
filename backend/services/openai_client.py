# backend/services/openai_client.py
import json
import logging
from typing import Any, Dict, List, Optional

from openai import APIStatusError, AsyncOpenAI, AuthenticationError, OpenAIError, RateLimitError

from backend.config import LLM_API_KEYS, LLM_BASE_URL, LLM_MODEL, LLM_MAX_TOKENS

log = logging.getLogger("services.llm")


class UpstreamError(Exception):
    """An external provider (AI, search) failed. Never cached."""


class OpenAIClient:
    """
    JSON chat completions against any OpenAI-compatible endpoint (Groq by default).
    Keys are tried in order: 401/429 moves on to the next key, anything else fails fast.
    """

    def __init__(
        self,
        api_keys: Optional[List[str]] = None,
        base_url: str = LLM_BASE_URL,
        model: str = LLM_MODEL,
        max_tokens: int = LLM_MAX_TOKENS,
    ):
        self.api_keys = list(api_keys if api_keys is not None else LLM_API_KEYS)
        self.base_url = base_url
        self.model = model
        self.max_tokens = max_tokens
        self._clients: Dict[str, AsyncOpenAI] = {}

    @property
    def configured(self) -> bool:
        return bool(self.api_keys)

    def _client(self, key: str) -> AsyncOpenAI:
        if key not in self._clients:
            self._clients[key] = AsyncOpenAI(api_key=key, base_url=self.base_url)
        return self._clients[key]

    async def get_json_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not self.api_keys:
            raise UpstreamError("No AI API key configured (set GROQ_API_KEY)")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        log.info("🔍 Prompt preview: %s", prompt[:300])

        last_error: Optional[Exception] = None
        for idx, key in enumerate(self.api_keys):
            try:
                response = await self._client(key).chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=max_tokens or self.max_tokens,
                    temperature=temperature,
                    response_format={"type": "json_object"},
                )
            except (RateLimitError, AuthenticationError) as e:
                log.warning("API key %d of %d failed with status %s, trying next key...",
                            idx + 1, len(self.api_keys), getattr(e, "status_code", "?"))
                last_error = e
                continue
            except APIStatusError as e:
                log.error("❌ AI provider error %s: %s", e.status_code, e)
                raise UpstreamError(f"AI provider returned {e.status_code}") from e
            except OpenAIError as e:
                log.exception("❌ AI client error: %s", e)
                raise UpstreamError(f"AI call failed: {e}") from e

            text = response.choices[0].message.content or ""
            log.info("✅ Response preview: %s", text[:300])
            try:
                return json.loads(text)
            except json.JSONDecodeError as e:
                raise UpstreamError("AI returned invalid JSON") from e

        log.error("All API keys exhausted or rate limited")
        raise UpstreamError("All AI API keys exhausted or rate limited") from last_error
