from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ServiceError


RunStatus = Literal[
    "queued",
    "in_progress",
    "requires_action",
    "cancelling",
    "cancelled",
    "failed",
    "completed",
    "incomplete",
    "expired",
]
Timeframe = Literal["current", "historical", "forecast"]


class Reference(BaseModel):
    title: str = ""
    url: str = ""
    snippet: Optional[str] = None
    date: Optional[str] = None

    model_config = {"extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def coerce_url_only(cls, data: Any) -> Any:
        # Some search payloads cite bare URLs instead of objects.
        if isinstance(data, str):
            return {"title": data, "url": data}
        return data

    @classmethod
    def coerce(cls, raw: Any) -> "Reference":
        """Build a reference from any search payload entry without failing.

        Citation markers index sources by position, so a malformed entry still
        yields a (possibly blank) reference in its slot.
        """
        if isinstance(raw, cls):
            return raw
        try:
            return cls.model_validate(raw)
        except ValidationError:
            pass
        if not isinstance(raw, dict):
            return cls(title="" if raw is None else str(raw))
        url = raw.get("url") or ""
        snippet = raw.get("snippet")
        date = raw.get("date")
        return cls(
            title=str(raw.get("title") or url),
            url=str(url),
            snippet=None if snippet is None else str(snippet),
            date=None if date is None else str(date),
        )


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class ToolOutput(BaseModel):
    tool_call_id: str
    output: str


class RunState(BaseModel):
    id: str
    thread_id: Optional[str] = None
    status: RunStatus = "queued"
    last_error: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RunState":
        try:
            last_error = payload.get("last_error") or {}
            message = last_error.get("message") if isinstance(last_error, dict) else None
            calls: List[ToolCall] = []
            required = payload.get("required_action") or {}
            submit = required.get("submit_tool_outputs") or {}
            for call in submit.get("tool_calls") or []:
                function = call.get("function") or {}
                if not function:
                    continue
                calls.append(
                    ToolCall(
                        id=str(call.get("id") or ""),
                        name=str(function.get("name") or ""),
                        arguments=function.get("arguments") or "{}",
                    )
                )
            return cls(
                id=str(payload.get("id") or ""),
                thread_id=payload.get("thread_id"),
                status=payload.get("status") or "queued",
                last_error=message,
                tool_calls=calls,
            )
        except (AttributeError, ValidationError) as exc:
            raise ServiceError("Invalid run response from assistant service", detail=payload) from exc


class AskRequest(BaseModel):
    input: str = ""
    conversation_key: str = Field(default="", alias="conversationKey")
    model: Optional[str] = None

    model_config = {"populate_by_name": True, "protected_namespaces": ()}


class CreateProjectRequest(BaseModel):
    title: Optional[str] = None


class AutomateTask(BaseModel):
    task_id: str = Field(alias="taskId")
    input: str

    model_config = {"populate_by_name": True}


class AutomateRequest(BaseModel):
    tasks: List[AutomateTask] = Field(default_factory=list)
    model: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class SearchRequest(BaseModel):
    query: str = ""


class CompetitorRequest(BaseModel):
    company_name: str = Field(default="", alias="companyName")
    aspects: Optional[List[str]] = None

    model_config = {"populate_by_name": True}


class TrendsRequest(BaseModel):
    industry: str = ""
    timeframe: Timeframe = "current"
    trend_type: Optional[str] = Field(default=None, alias="trendType")

    model_config = {"populate_by_name": True}


class AgentTaskRequest(BaseModel):
    input: str = ""
    task_id: str = Field(default="", alias="taskId")

    model_config = {"populate_by_name": True}
