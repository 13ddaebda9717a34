import json
from typing import Any, Dict, List, Optional

import httpx

from .errors import ServiceError


ASSISTANTS_BETA_HEADER = "assistants=v2"


def _normalize_error_text(detail: str) -> str:
    text = detail or ""
    for _ in range(2):
        try:
            parsed = json.loads(text)
        except ValueError:
            break
        if isinstance(parsed, dict):
            found = False
            for key in ("error", "detail", "message"):
                val = parsed.get(key)
                if isinstance(val, dict):
                    val = val.get("message")
                if isinstance(val, str) and val.strip():
                    text = val
                    found = True
                    break
            if not found:
                break
        elif isinstance(parsed, str):
            text = parsed
        else:
            break
    return text


def extract_error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict):
            return json.dumps(data, ensure_ascii=True)
    except ValueError:
        pass
    return response.text or ""


class OpenAIClient:
    """Chat completions plus the assistant/thread/run primitives of an OpenAI-compatible API."""

    def __init__(self, api_key: Optional[str], base_url: str = "https://api.openai.com/v1", timeout: float = 60.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self, beta: bool = True) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if beta:
            headers["OpenAI-Beta"] = ASSISTANTS_BETA_HEADER
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        beta: bool = True,
    ) -> Dict[str, Any]:
        if not self.enabled:
            raise ServiceError("OpenAI API key is not configured")
        url = f"{self.base_url}{path}"
        try:
            resp = await self.client.request(method, url, json=payload, params=params, headers=self._headers(beta))
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = extract_error_detail(exc.response)
            status = exc.response.status_code
            raise ServiceError(
                f"OpenAI request failed: {status} - {_normalize_error_text(detail)}",
                upstream_status=status,
                detail=detail,
            ) from exc
        except httpx.RequestError as exc:
            raise ServiceError(f"OpenAI request failed: {exc}", detail=str(exc)) from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise ServiceError("Invalid response format from OpenAI API", upstream_status=resp.status_code) from exc
        if not isinstance(data, dict):
            raise ServiceError("Invalid response format from OpenAI API", upstream_status=resp.status_code)
        return data

    async def chat_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        return await self._request("POST", "/chat/completions", payload, beta=False)

    async def list_assistants(self, limit: int = 100) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/assistants", params={"limit": limit, "order": "desc"})
        return [a for a in data.get("data") or [] if isinstance(a, dict)]

    async def create_assistant(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/assistants", payload)

    async def create_thread(self) -> Dict[str, Any]:
        return await self._request("POST", "/threads", {})

    async def delete_thread(self, thread_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/threads/{thread_id}")

    async def create_message(self, thread_id: str, content: str, role: str = "user") -> Dict[str, Any]:
        return await self._request("POST", f"/threads/{thread_id}/messages", {"role": role, "content": content})

    async def list_messages(self, thread_id: str, limit: int = 1, order: str = "desc") -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/threads/{thread_id}/messages", params={"limit": limit, "order": order})
        return [m for m in data.get("data") or [] if isinstance(m, dict)]

    async def create_run(
        self,
        thread_id: str,
        assistant_id: str,
        model: Optional[str] = None,
        additional_instructions: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"assistant_id": assistant_id}
        if model:
            payload["model"] = model
        if additional_instructions:
            payload["additional_instructions"] = additional_instructions
        return await self._request("POST", f"/threads/{thread_id}/runs", payload)

    async def retrieve_run(self, thread_id: str, run_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")

    async def cancel_run(self, thread_id: str, run_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel", {})

    async def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        tool_outputs: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            {"tool_outputs": tool_outputs},
        )

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


def completion_text(data: Dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        raise ServiceError("Invalid response format from OpenAI API")
    content = (choices[0].get("message") or {}).get("content")
    if not isinstance(content, str):
        raise ServiceError("Invalid response format from OpenAI API")
    return content
