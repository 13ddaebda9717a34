import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

from .agents import PLANNING_ASSISTANT, AssistantProfile
from .config import AppSettings
from .errors import RunCancelled, RunFailed, RunTimeout, ServiceError
from .schemas import RunState
from .tools import TOOL_HANDLERS, ToolHandler, build_tool_outputs


logger = logging.getLogger("uvicorn.error")

NON_TEXT_RESPONSE = "Non-text response received"
# Server-reported endings other than completed/failed; surfaced as failures.
ABORTED_STATUSES = {"cancelled", "expired", "incomplete"}


class ThreadStore(Protocol):
    async def get_thread_id(self, user_id: str, conversation_key: str) -> Optional[str]: ...

    async def claim_thread(self, user_id: str, conversation_key: str, thread_id: str) -> str: ...


@dataclass
class PollPolicy:
    max_attempts: int = 30
    interval_s: float = 1.0
    backoff: str = "fixed"
    max_interval_s: float = 8.0

    def delay(self, checks_done: int) -> float:
        """Delay before the next status check, given how many checks already ran."""
        if self.backoff == "exponential":
            return min(self.interval_s * (2 ** max(checks_done - 1, 0)), self.max_interval_s)
        return self.interval_s

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "PollPolicy":
        return cls(
            max_attempts=max(1, settings.poll_max_attempts),
            interval_s=settings.poll_interval_s,
            backoff=settings.poll_backoff,
            max_interval_s=settings.poll_max_interval_s,
        )


@dataclass
class RunResult:
    text: str
    thread_id: str
    run_id: str
    status_checks: int


def _message_text(message: Dict[str, Any]) -> str:
    content = message.get("content") or []
    first = content[0] if isinstance(content, list) and content else {}
    if isinstance(first, dict) and first.get("type") == "text":
        text = first.get("text") or {}
        value = text.get("value") if isinstance(text, dict) else text
        if isinstance(value, str):
            return value
    return NON_TEXT_RESPONSE


def _require_id(payload: Dict[str, Any], what: str) -> str:
    value = payload.get("id") if isinstance(payload, dict) else None
    if not value:
        raise ServiceError(f"Invalid {what} response from assistant service", detail=payload)
    return str(value)


class RunOrchestrator:
    """Drives a single assistant run from user input to final text."""

    def __init__(
        self,
        client: Any,
        store: ThreadStore,
        policy: Optional[PollPolicy] = None,
        default_model: str = "gpt-4",
        cancel_on_timeout: bool = True,
        tool_handlers: Optional[Dict[str, ToolHandler]] = None,
    ):
        self.client = client
        self.store = store
        self.policy = policy or PollPolicy()
        self.default_model = default_model
        self.cancel_on_timeout = cancel_on_timeout
        self.tool_handlers = tool_handlers if tool_handlers is not None else TOOL_HANDLERS
        self._assistants: Dict[str, str] = {}
        self._assistant_lock = asyncio.Lock()
        self._conversation_locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    async def resolve_assistant(self, profile: AssistantProfile) -> str:
        cached = self._assistants.get(profile.name)
        if cached:
            return cached
        async with self._assistant_lock:
            cached = self._assistants.get(profile.name)
            if cached:
                return cached
            existing = next(
                (a for a in await self.client.list_assistants() if a.get("name") == profile.name),
                None,
            )
            if existing:
                assistant_id = _require_id(existing, "assistant")
            else:
                created = await self.client.create_assistant(profile.to_create_payload(model=self.default_model))
                assistant_id = _require_id(created, "assistant")
                logger.info("Created assistant %s (%s)", profile.name, assistant_id)
            self._assistants[profile.name] = assistant_id
            return assistant_id

    async def resolve_thread(self, user_id: str, conversation_key: str) -> str:
        thread_id = await self.store.get_thread_id(user_id, conversation_key)
        if thread_id:
            return thread_id
        created = _require_id(await self.client.create_thread(), "thread")
        stored = await self.store.claim_thread(user_id, conversation_key, created)
        if stored != created:
            # Another request persisted a handle first; drop ours and join theirs.
            logger.info("Thread race on %s; using %s", conversation_key, stored)
            try:
                await self.client.delete_thread(created)
            except ServiceError as exc:
                logger.warning("Could not delete orphan thread %s: %s", created, exc)
        else:
            logger.info("Created thread %s for %s", created, conversation_key)
        return stored

    async def run_to_completion(
        self,
        user_input: str,
        conversation_key: Optional[str],
        model_hint: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        profile: AssistantProfile = PLANNING_ASSISTANT,
        cancel_event: Optional[asyncio.Event] = None,
        additional_instructions: Optional[str] = None,
    ) -> RunResult:
        """Run ``user_input`` through the assistant for ``profile``.

        ``conversation_key=None`` runs on a fresh thread that is not persisted.
        Chat messages are never stored here; callers own message persistence.
        """
        assistant_id = await self.resolve_assistant(profile)
        if conversation_key is None:
            thread_id = _require_id(await self.client.create_thread(), "thread")
            return await self._start_and_poll(
                thread_id, assistant_id, user_input, model_hint, additional_instructions, cancel_event
            )
        if not user_id:
            raise ValueError("user_id is required for a persisted conversation")
        # A thread accepts one active run at a time; later callers queue here.
        async with self._conversation_lock(user_id, conversation_key):
            thread_id = await self.resolve_thread(user_id, conversation_key)
            return await self._start_and_poll(
                thread_id, assistant_id, user_input, model_hint, additional_instructions, cancel_event
            )

    def _conversation_lock(self, user_id: str, conversation_key: str) -> asyncio.Lock:
        key = (user_id, conversation_key)
        lock = self._conversation_locks.get(key)
        if lock is None:
            lock = self._conversation_locks[key] = asyncio.Lock()
        return lock

    async def _start_and_poll(
        self,
        thread_id: str,
        assistant_id: str,
        user_input: str,
        model_hint: Optional[str],
        additional_instructions: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> RunResult:
        await self.client.create_message(thread_id, user_input)
        run = await self.client.create_run(
            thread_id,
            assistant_id,
            model=model_hint,
            additional_instructions=additional_instructions,
        )
        run_id = _require_id(run, "run")
        logger.info("Run %s started on thread %s", run_id, thread_id)
        return await self._poll(thread_id, run_id, cancel_event)

    async def _poll(self, thread_id: str, run_id: str, cancel_event: Optional[asyncio.Event]) -> RunResult:
        checks = 0
        while checks < self.policy.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                await self._cancel_remote(thread_id, run_id)
                raise RunCancelled(run_id=run_id)
            run = RunState.from_api(await self.client.retrieve_run(thread_id, run_id))
            checks += 1

            if run.status == "completed":
                messages = await self.client.list_messages(thread_id, limit=1, order="desc")
                text = _message_text(messages[0]) if messages else NON_TEXT_RESPONSE
                logger.info("Run %s completed after %d checks", run_id, checks)
                return RunResult(text=text, thread_id=thread_id, run_id=run_id, status_checks=checks)
            if run.status == "failed":
                raise RunFailed(run.last_error or "Assistant run failed", run_id=run_id)
            if run.status in ABORTED_STATUSES:
                detail = f": {run.last_error}" if run.last_error else ""
                raise RunFailed(f"Assistant run {run.status}{detail}", run_id=run_id)
            if run.status == "requires_action" and run.tool_calls:
                outputs = build_tool_outputs(run.tool_calls, self.tool_handlers)
                await self.client.submit_tool_outputs(
                    thread_id,
                    run_id,
                    [o.model_dump() for o in outputs],
                )
                logger.info("Run %s submitted %d tool outputs", run_id, len(outputs))
                continue

            if checks >= self.policy.max_attempts:
                break
            if await self._wait(self.policy.delay(checks), cancel_event):
                await self._cancel_remote(thread_id, run_id)
                raise RunCancelled(run_id=run_id)

        logger.warning("Run %s timed out after %d checks", run_id, checks)
        if self.cancel_on_timeout:
            await self._cancel_remote(thread_id, run_id)
        raise RunTimeout(run_id=run_id, attempts=checks)

    async def _wait(self, delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep ``delay`` seconds; return True when cancelled instead."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return cancel_event.is_set()
        return True

    async def _cancel_remote(self, thread_id: str, run_id: str) -> None:
        try:
            await self.client.cancel_run(thread_id, run_id)
        except ServiceError as exc:
            logger.warning("Could not cancel run %s: %s", run_id, exc)
