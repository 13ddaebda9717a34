import asyncio
from typing import Any, Dict, Optional

import httpx

from .errors import ServiceError


# SerpApi date ranges matching the last 7 days / 12 months / 30 days.
TIMEFRAME_RANGES = {
    "current": "now 7-d",
    "historical": "today 12-m",
    "forecast": "today 1-m",
}
DATA_TYPES = {
    "interestOverTime": ("TIMESERIES", "interest_over_time"),
    "relatedTopics": ("RELATED_TOPICS", "related_topics"),
    "relatedQueries": ("RELATED_QUERIES", "related_queries"),
}


class TrendsClient:
    """Google Trends lookups through SerpApi's ``google_trends`` engine."""

    def __init__(self, api_key: Optional[str], base_url: str = "https://serpapi.com/search.json", timeout: float = 60.0):
        self.api_key = api_key
        self.base_url = base_url
        self.client = httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _lookup(self, keyword: str, date_range: str, data_type: str, result_key: str) -> Any:
        params = {
            "engine": "google_trends",
            "q": keyword,
            "data_type": data_type,
            "date": date_range,
            "api_key": self.api_key,
        }
        try:
            resp = await self.client.get(self.base_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ServiceError(
                f"Trends request failed: {status} - {exc.response.text}",
                upstream_status=status,
                detail=exc.response.text,
            ) from exc
        except httpx.RequestError as exc:
            raise ServiceError(f"Trends request failed: {exc}", detail=str(exc)) from exc
        except ValueError as exc:
            raise ServiceError("Invalid response format from trends API") from exc
        if isinstance(data, dict) and data.get("error"):
            raise ServiceError(f"Trends request failed: {data['error']}", detail=data)
        return data.get(result_key) if isinstance(data, dict) else None

    async def fetch_trends(self, keyword: str, timeframe: str = "current") -> Dict[str, Any]:
        if not self.enabled:
            raise ServiceError("Trends API key is not configured")
        date_range = TIMEFRAME_RANGES.get(timeframe, TIMEFRAME_RANGES["current"])
        keys = list(DATA_TYPES)
        results = await asyncio.gather(
            *(self._lookup(keyword, date_range, *DATA_TYPES[key]) for key in keys)
        )
        return dict(zip(keys, results))

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
