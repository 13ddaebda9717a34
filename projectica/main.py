import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .agents import (
    COMPETITOR_SYSTEM,
    MARKET_EXPERT,
    RUN_INSTRUCTIONS,
    SYSTEM_AGENTS,
    market_function_prompt,
    missing_tool_params,
    search_prompt,
    trends_prompt,
)
from .config import AppSettings, load_settings
from .db import Database
from .errors import InvalidRequest, NotFound, ProjecticaError, Unauthenticated
from .llm import OpenAIClient, completion_text
from .orchestrator import PollPolicy, RunOrchestrator
from .perplexity import PerplexityClient
from .references import normalize_references
from .schemas import (
    AgentTaskRequest,
    AskRequest,
    AutomateRequest,
    CompetitorRequest,
    CreateProjectRequest,
    SearchRequest,
    TrendsRequest,
)
from .trends import TrendsClient


logger = logging.getLogger("uvicorn.error")

USER_HEADER = "X-User-Email"
NO_ANSWER_TEXT = "Projectica was unable to find an answer for that!"
RUN_FAILED_MARKER = "Projectica could not finish this request. Please try again."


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_openai_client(request: Request) -> OpenAIClient:
    return request.app.state.openai_client


def get_perplexity_client(request: Request) -> PerplexityClient:
    return request.app.state.perplexity_client


def get_trends_client(request: Request) -> TrendsClient:
    return request.app.state.trends_client


def get_orchestrator(request: Request) -> RunOrchestrator:
    return request.app.state.orchestrator


def get_user_id(request: Request) -> str:
    # Identity is asserted by the upstream identity provider.
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        raise Unauthenticated()
    return user_id


async def require_project(db: Database, user_id: str, project_id: str) -> dict:
    project = await db.get_project(user_id, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


router = APIRouter()


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/api/projects")
async def create_project(
    payload: Optional[CreateProjectRequest] = None,
    user_id: str = Depends(get_user_id),
    db: Database = Depends(get_db),
):
    project = await db.create_project(user_id, title=payload.title if payload else None)
    return {"project": project}


@router.get("/api/projects/{project_id}/messages")
async def list_project_messages(
    project_id: str,
    limit: int = 200,
    user_id: str = Depends(get_user_id),
    db: Database = Depends(get_db),
):
    await require_project(db, user_id, project_id)
    messages = await db.list_messages(user_id, project_id, limit=limit)
    return {"messages": messages}


@router.post("/api/ask")
async def ask(
    payload: AskRequest,
    user_id: str = Depends(get_user_id),
    db: Database = Depends(get_db),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    prompt = payload.input.strip()
    project_id = payload.conversation_key.strip()
    if not prompt or not project_id:
        raise InvalidRequest("Missing required fields")
    await require_project(db, user_id, project_id)

    await db.add_message(user_id, project_id, "user", prompt)
    try:
        result = await orchestrator.run_to_completion(
            prompt,
            project_id,
            payload.model,
            user_id=user_id,
            additional_instructions=RUN_INSTRUCTIONS,
        )
    except ProjecticaError:
        await db.add_message(user_id, project_id, "assistant", RUN_FAILED_MARKER)
        raise
    response = result.text or NO_ANSWER_TEXT
    await db.add_message(user_id, project_id, "assistant", response)
    return {"response": response}


@router.post("/api/projects/{project_id}/automate")
async def automate_tasks(
    project_id: str,
    payload: AutomateRequest,
    user_id: str = Depends(get_user_id),
    db: Database = Depends(get_db),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    await require_project(db, user_id, project_id)
    tasks = [t for t in payload.tasks if t.input.strip()]
    if not tasks:
        raise InvalidRequest("Missing required fields")

    async def run_task(task_id: str, task_input: str) -> Dict[str, Any]:
        try:
            result = await orchestrator.run_to_completion(
                task_input.strip(),
                f"{project_id}:task:{task_id}",
                payload.model,
                user_id=user_id,
                additional_instructions=RUN_INSTRUCTIONS,
            )
        except ProjecticaError as exc:
            logger.warning("Task %s of project %s failed: %s", task_id, project_id, exc)
            return {"taskId": task_id, "error": str(exc)}
        return {"taskId": task_id, "response": result.text}

    results: List[Dict[str, Any]] = await asyncio.gather(*(run_task(t.task_id, t.input) for t in tasks))
    return {"results": results}


@router.post("/api/agent/market/search")
async def market_search(
    payload: SearchRequest,
    user_id: str = Depends(get_user_id),
    perplexity: PerplexityClient = Depends(get_perplexity_client),
):
    query = payload.query.strip()
    if not query:
        raise InvalidRequest("Query is required")
    result = await perplexity.search(search_prompt(query))
    normalized = normalize_references(result.content, result.references)
    data = normalized.to_dict()
    return {
        "analysis": data["text"],
        "references": data["references"],
        "metadata": {
            "query": query,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": "comprehensive_analysis",
        },
    }


@router.post("/api/agent/market/competitor")
async def market_competitor(
    payload: CompetitorRequest,
    user_id: str = Depends(get_user_id),
    perplexity: PerplexityClient = Depends(get_perplexity_client),
):
    company = payload.company_name.strip()
    if not company:
        raise InvalidRequest("Company name is required")
    result = await perplexity.search(f"Analyze the company: {company}", system_prompt=COMPETITOR_SYSTEM)
    return {
        "analysis": result.content,
        "references": [ref.model_dump(exclude_none=True) for ref in result.references],
        "metadata": {"companyName": company, "aspects": payload.aspects},
    }


@router.post("/api/agent/market/trends")
async def market_trends(
    payload: TrendsRequest,
    user_id: str = Depends(get_user_id),
    trends_client: TrendsClient = Depends(get_trends_client),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    industry = payload.industry.strip()
    if not industry:
        raise InvalidRequest("Industry is required")
    trends_data = await trends_client.fetch_trends(industry, payload.timeframe)
    result = await orchestrator.run_to_completion(
        trends_prompt(industry, payload.timeframe, payload.trend_type, trends_data),
        None,
        profile=MARKET_EXPERT,
    )
    return {
        "analysis": result.text,
        "trendsData": trends_data,
        "metadata": {
            "industry": industry,
            "timeframe": payload.timeframe,
            "trendType": payload.trend_type,
            "threadId": result.thread_id,
        },
    }


@router.post("/api/agent/market")
async def market_function(
    payload: Dict[str, Any] = Body(default={}),
    user_id: str = Depends(get_user_id),
    orchestrator: RunOrchestrator = Depends(get_orchestrator),
):
    params = dict(payload)
    function_name = params.pop("functionName", None)
    if not function_name or MARKET_EXPERT.tool_schema(str(function_name)) is None:
        raise InvalidRequest("Invalid function name")
    missing = missing_tool_params(MARKET_EXPERT, function_name, params)
    if missing:
        raise InvalidRequest(f"Missing required parameters: {', '.join(missing)}")
    result = await orchestrator.run_to_completion(
        market_function_prompt(function_name, params),
        None,
        profile=MARKET_EXPERT,
    )
    return {
        "analysis": result.text,
        "metadata": {"function": function_name, "params": params, "threadId": result.thread_id},
    }


@router.post("/api/agent/{agent_id}/task")
async def agent_task(
    agent_id: str,
    payload: AgentTaskRequest,
    user_id: str = Depends(get_user_id),
    db: Database = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
    openai_client: OpenAIClient = Depends(get_openai_client),
):
    if not payload.input.strip() or not payload.task_id:
        raise InvalidRequest("Missing required fields")
    await db.seed_system_agents(user_id, SYSTEM_AGENTS)
    agent = await db.get_agent(user_id, agent_id)
    if not agent:
        raise NotFound("Agent not found")
    data = await openai_client.chat_completion(
        model=agent.get("model") or settings.default_model,
        messages=[
            {"role": "system", "content": agent.get("instructions") or ""},
            {"role": "user", "content": payload.input},
        ],
    )
    return {"taskId": payload.task_id, "response": completion_text(data)}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProjecticaError)
    async def handle_projectica_error(request: Request, exc: ProjecticaError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s crashed", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "An error occurred while processing your request"})


def create_app(
    settings: AppSettings,
    *,
    db: Optional[Database] = None,
    openai_client: Optional[OpenAIClient] = None,
    perplexity_client: Optional[PerplexityClient] = None,
    trends_client: Optional[TrendsClient] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.db.init()
        await app.state.db.save_config(app.state.settings.to_safe_dict())
        try:
            yield
        finally:
            await app.state.openai_client.close()
            await app.state.perplexity_client.close()
            await app.state.trends_client.close()

    app = FastAPI(title="Projectica Planning Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db or Database(settings.database_path)
    app.state.openai_client = openai_client or OpenAIClient(
        settings.openai_api_key, settings.openai_base_url, timeout=settings.http_timeout_s
    )
    app.state.perplexity_client = perplexity_client or PerplexityClient(
        settings.perplexity_api_key,
        settings.perplexity_base_url,
        model=settings.perplexity_model,
        timeout=settings.http_timeout_s,
    )
    app.state.trends_client = trends_client or TrendsClient(
        settings.serpapi_api_key, settings.trends_base_url, timeout=settings.http_timeout_s
    )
    app.state.orchestrator = RunOrchestrator(
        app.state.openai_client,
        app.state.db,
        policy=PollPolicy.from_settings(settings),
        default_model=settings.default_model,
        cancel_on_timeout=settings.cancel_on_timeout,
    )
    install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("PROJECTICA_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "projectica.main:app",
            host=getattr(settings, "host", "0.0.0.0"),
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
