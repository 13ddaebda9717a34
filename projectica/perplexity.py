import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .agents import SEARCH_SYSTEM
from .errors import ServiceError
from .schemas import Reference


logger = logging.getLogger("uvicorn.error")

STATUS_MESSAGES = {
    401: "Invalid API key or unauthorized access",
    429: "Rate limit exceeded. Please try again later",
    400: "Invalid request format",
}


@dataclass
class SearchResult:
    content: str
    references: List[Reference] = field(default_factory=list)


def _raw_references(data: Dict[str, Any], message: Dict[str, Any]) -> List[Any]:
    refs = message.get("references")
    if isinstance(refs, list) and refs:
        return refs
    # Newer responses only list cited URLs at the top level.
    citations = data.get("citations")
    if isinstance(citations, list):
        return citations
    search_results = data.get("search_results")
    if isinstance(search_results, list):
        return search_results
    return []


class PerplexityClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.perplexity.ai",
        model: str = "sonar-pro",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, system_prompt: str = SEARCH_SYSTEM) -> SearchResult:
        if not self.enabled:
            raise ServiceError("API key is not configured")
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": query},
            ],
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            resp = await self.client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            body = exc.response.text
            logger.warning("Perplexity API error status=%s body=%s", status, body[:500])
            message = STATUS_MESSAGES.get(status) or f"API request failed: {status} - {body}"
            raise ServiceError(message, upstream_status=status, detail=body) from exc
        except httpx.RequestError as exc:
            raise ServiceError(f"API request failed: {exc}", detail=str(exc)) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise ServiceError("Invalid response format from Perplexity API") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        message = (choices[0].get("message") or {}) if choices else {}
        content = message.get("content")
        if not content:
            raise ServiceError("Invalid response format from Perplexity API")
        references = [Reference.coerce(raw) for raw in _raw_references(data, message)]
        return SearchResult(content=content, references=references)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
