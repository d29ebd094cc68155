"""Planning chat session controller.

Owns the conversation state of one planning chat: message history, the
planning session, progress phase, the current recommendation and the
readiness-for-approval flag. Only this object mutates that state; callers
read its attributes and can register listeners to be told when it changes.

Usage:
    async with PlanningChatController(project_id="proj-1") as chat:
        await chat.load_history()
        await chat.send_message("Break the auth work into tasks")
        if chat.is_ready_for_approval:
            result = await chat.approve_recommendation()
"""

import asyncio
import logging
import time
import uuid
from contextlib import aclosing
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

import httpx
from pydantic import ValidationError

from planchat.config import settings
from planchat.planning.approval import ApprovalResult
from planchat.planning.errors import (
    ApprovalError,
    PlanningChatError,
    PlanningRequestError,
    SendInProgressError,
    SessionExpiredError,
)
from planchat.planning.events import (
    ApprovalReady,
    BackendError,
    ContentDelta,
    PhaseUpdate,
    RecommendationsReceived,
    SessionAssigned,
    StreamEvent,
    TurnDone,
    UnknownEvent,
    parse_stream_event,
)
from planchat.planning.models import (
    ApproveRequest,
    ChatMessage,
    ChatRequest,
    DecompositionRecommendation,
    HistoryEntry,
    ProgressPhase,
)
from planchat.planning.session import (
    PlanningSession,
    create_session,
    get_session_aware_phase,
    set_backend_conversation_id,
    touch_session,
)
from planchat.planning.sse import iter_sse_payloads
from planchat.planning.status_messages import get_status_message, should_enhance_message
from planchat.repositories import ConversationRepository

logger = logging.getLogger(__name__)

TERMINAL_PHASES = frozenset({"complete", "done"})

Listener = Callable[["PlanningChatController"], None]


def _error_detail(response: httpx.Response) -> str | None:
    """Pull the error text out of a relay JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        return body.get("details") or body.get("error") or body.get("message")
    return None


def _timestamp(value: datetime) -> float:
    # SQLite hands back naive UTC datetimes
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class PlanningChatController:
    """Stateful client for one planning conversation."""

    def __init__(
        self,
        project_id: str | None = None,
        sprint_id: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        skip_history: bool = False,
        history_limit: int | None = None,
        phase_clear_delay: float | None = None,
        readiness_fallback_delay: float | None = None,
        session_timeout: float | None = None,
        history_loader: Any = ConversationRepository,
    ) -> None:
        self.project_id = project_id
        self.sprint_id = sprint_id
        self.base_url = (base_url if base_url is not None else settings.dashboard_url).rstrip("/")
        self.skip_history = skip_history
        self.history_limit = settings.history_limit if history_limit is None else history_limit
        self.phase_clear_delay = (
            settings.phase_clear_delay if phase_clear_delay is None else phase_clear_delay
        )
        self.readiness_fallback_delay = (
            settings.readiness_fallback_delay
            if readiness_fallback_delay is None
            else readiness_fallback_delay
        )
        self.session_timeout = (
            settings.session_timeout_seconds if session_timeout is None else session_timeout
        )
        self._history_loader = history_loader

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout, read=settings.stream_timeout)
        )

        # Visible state
        self.messages: list[ChatMessage] = []
        self.conversation_id: str | None = None
        self.session: PlanningSession = create_session()
        self.is_streaming = False
        self.phase: ProgressPhase | None = None
        self.current_recommendation: DecompositionRecommendation | None = None
        self.is_ready_for_approval = False
        self.last_error: Exception | None = None

        self._history_loaded = False
        self._cancel_requested = False
        self._phase_reference: PlanningSession | None = None
        self._stream_task: asyncio.Task | None = None
        self._recommendation_rejected = False
        self._phase_clear_handle: asyncio.TimerHandle | None = None
        self._readiness_handle: asyncio.TimerHandle | None = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "PlanningChatController":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop any in-flight read, drop timers and close an owned HTTP client."""
        self.cancel()
        self._cancel_timers()
        if self._owns_client:
            await self._client.aclose()

    @property
    def backend_conversation_id(self) -> str | None:
        return self.session.backend_conversation_id

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a state-change callback. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Planning chat listener failed: {e}")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self) -> bool:
        """Load the active conversation for this project or sprint, once.

        Returns True if a conversation was found and loaded.
        """
        if self._history_loaded or self.skip_history:
            return False
        if not self.project_id and not self.sprint_id:
            return False

        conversation = await self._history_loader.get_active(
            project_id=self.project_id,
            sprint_id=self.sprint_id,
        )
        if conversation is None:
            self._history_loaded = True
            logger.debug("No active planning conversation to load")
            return False

        records = await self._history_loader.list_messages(conversation.id)
        self._history_loaded = True

        messages = []
        for record in records:
            recommendations = None
            if record.recommendations:
                try:
                    recommendations = DecompositionRecommendation.model_validate(record.recommendations)
                except ValidationError as e:
                    logger.warning(f"Ignoring invalid stored recommendation on message {record.id}: {e}")
            messages.append(
                ChatMessage(
                    id=record.id,
                    role=record.role,
                    content=record.content,
                    recommendations=recommendations,
                    created_at=record.created_at,
                )
            )

        self.messages = messages
        self.conversation_id = conversation.id
        self.current_recommendation = next(
            (
                m.recommendations
                for m in reversed(messages)
                if m.role == "orchestrator" and m.recommendations is not None
            ),
            None,
        )

        last_activity = _timestamp(messages[-1].created_at) if messages else time.time()
        self.session = PlanningSession(
            conversation_id=conversation.id,
            backend_conversation_id=getattr(conversation, "backend_conversation_id", None),
            last_activity_at=last_activity,
        )

        logger.info(
            f"Loaded {len(messages)} planning messages",
            extra={"conversation_id": conversation.id},
        )
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> None:
        """Send a user message and stream the orchestrator's reply.

        Raises:
            ValueError: If the text is blank.
            SendInProgressError: If a reply is still streaming.
            SessionExpiredError: If the backend no longer knows the session.
            PlanningRequestError: On any other transport or backend failure.
        """
        if not text or not text.strip():
            raise ValueError("Message text is required")
        if self.is_streaming:
            raise SendInProgressError()

        self._cancel_requested = False
        self.last_error = None
        self._cancel_readiness_fallback()
        self._recommendation_rejected = False

        # Warmth is judged on the backend session as it stood before this send
        self._phase_reference = self.session if self.session.backend_conversation_id else None
        self.session = touch_session(self.session)

        if self.conversation_id is None:
            # Local placeholder id, unrelated to the backend session id
            self.conversation_id = str(uuid.uuid4())
            self.session = replace(self.session, conversation_id=self.conversation_id)

        prior = [m for m in self.messages if m.content]
        if self.history_limit > 0:
            history = [HistoryEntry(**m.to_history_entry()) for m in prior[-self.history_limit:]]
        else:
            history = []

        user_message = ChatMessage(role="user", content=text)
        assistant_message = ChatMessage(role="orchestrator")
        self.messages.extend([user_message, assistant_message])
        self.is_streaming = True
        self.is_ready_for_approval = False
        self._notify()

        request = ChatRequest(
            conversation_id=self.session.backend_conversation_id,
            message=text,
            history=history,
            project_id=self.project_id,
            sprint_id=self.sprint_id,
        )

        log_extra = {"conversation_id": self.conversation_id}
        logger.info("Sending planning message", extra=log_extra)

        stream_task = asyncio.create_task(self._stream_reply(request, assistant_message.id))
        self._stream_task = stream_task
        try:
            try:
                await stream_task
            except asyncio.CancelledError:
                # Only a cancel() of the read itself ends the send normally
                if not (self._cancel_requested and stream_task.cancelled()):
                    stream_task.cancel()
                    raise

            if self._cancel_requested:
                logger.info("Planning stream cancelled", extra=log_extra)
                if not assistant_message.content and assistant_message.recommendations is None:
                    self._remove_message(assistant_message.id)

        except PlanningChatError as e:
            self._remove_message(assistant_message.id)
            self.last_error = e
            raise
        except httpx.HTTPError as e:
            self._remove_message(assistant_message.id)
            logger.error(f"Planning request failed: {e}", extra=log_extra)
            error = PlanningRequestError(f"Planning request failed: {e}", detail=str(e))
            self.last_error = error
            raise error from e
        finally:
            self._stream_task = None
            self.is_streaming = False
            self._cancel_requested = False
            self._schedule_readiness_fallback()
            self._notify()

    def cancel(self) -> None:
        """Interrupt the in-flight read and release the connection; the send returns normally."""
        if not self.is_streaming:
            return
        self._cancel_requested = True
        if self._stream_task is not None and not self._stream_task.done():
            self._stream_task.cancel()

    async def _stream_reply(self, request: ChatRequest, message_id: str) -> None:
        async with self._client.stream(
            "POST",
            f"{self.base_url}/api/planning",
            json=request.to_payload(),
            headers={"Accept": "text/event-stream"},
        ) as response:
            if response.is_error:
                await response.aread()
                self._raise_for_status(response)

            async with aclosing(iter_sse_payloads(self._read_chunks(response))) as payloads:
                async for payload in payloads:
                    if self._cancel_requested:
                        break
                    self.session = touch_session(self.session)
                    for event in parse_stream_event(payload):
                        self._apply_event(event, message_id)
                    self._notify()

    async def _read_chunks(self, response: httpx.Response) -> AsyncIterator[bytes]:
        async for chunk in response.aiter_bytes():
            if self._cancel_requested:
                break
            yield chunk

    def _raise_for_status(self, response: httpx.Response) -> None:
        detail = _error_detail(response)
        extra = {"status_code": response.status_code, "conversation_id": self.conversation_id}

        if response.status_code == 404:
            logger.warning("Planning session not found upstream, clearing backend id", extra=extra)
            self.session = set_backend_conversation_id(self.session, None)
            raise SessionExpiredError(detail)

        logger.error(f"Planning request failed: {detail}", extra=extra)
        raise PlanningRequestError(
            f"Planning request failed with status {response.status_code}",
            status_code=response.status_code,
            detail=detail,
        )

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------

    def _apply_event(self, event: StreamEvent, message_id: str) -> None:
        if isinstance(event, SessionAssigned):
            if self.session.backend_conversation_id is None:
                self.session = set_backend_conversation_id(self.session, event.conversation_id)
                logger.info(
                    "Adopted backend planning session",
                    extra={
                        "conversation_id": self.conversation_id,
                        "backend_conversation_id": event.conversation_id,
                    },
                )
            elif event.conversation_id != self.session.backend_conversation_id:
                logger.debug(f"Ignoring backend session id {event.conversation_id}, already bound")

        elif isinstance(event, PhaseUpdate):
            self._apply_phase(event)

        elif isinstance(event, ContentDelta):
            self._clear_phase()
            message = self._find_message(message_id)
            if message is not None:
                message.content += event.text

        elif isinstance(event, RecommendationsReceived):
            try:
                recommendation = DecompositionRecommendation.model_validate(event.recommendations)
            except ValidationError as e:
                logger.warning(f"Ignoring invalid recommendation payload: {e}")
                self._recommendation_rejected = True
                return
            self._recommendation_rejected = False
            self.current_recommendation = recommendation
            message = self._find_message(message_id)
            if message is not None:
                message.recommendations = recommendation

        elif isinstance(event, ApprovalReady):
            if self._recommendation_rejected:
                logger.warning("Not marking ready for approval, this turn's recommendation was rejected")
                return
            self.is_ready_for_approval = True
            self._cancel_readiness_fallback()

        elif isinstance(event, TurnDone):
            logger.debug("Planning turn finished", extra={"conversation_id": self.conversation_id})

        elif isinstance(event, BackendError):
            logger.error(f"Planning backend reported an error: {event.message}")
            raise PlanningRequestError(f"Planning backend error: {event.message}", detail=event.message)

        elif isinstance(event, UnknownEvent):
            logger.debug(f"Unrecognised planning event keys: {sorted(event.payload)}")

    def _apply_phase(self, event: PhaseUpdate) -> None:
        phase = get_session_aware_phase(
            event.phase,
            self._phase_reference,
            timeout=self.session_timeout,
        )
        message = event.message
        enhanced = phase != event.phase or should_enhance_message(event.phase, message)
        if enhanced:
            message = get_status_message(phase, time.time() * 1000)

        self.phase = ProgressPhase(
            phase=phase,
            message=message,
            icon=event.icon,
            elapsed=event.elapsed,
            enhanced=enhanced,
        )
        self._cancel_phase_clear()
        if phase in TERMINAL_PHASES:
            self._schedule_phase_clear(self.phase)

    def _find_message(self, message_id: str) -> ChatMessage | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def _remove_message(self, message_id: str) -> None:
        self.messages = [m for m in self.messages if m.id != message_id]

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle | None:
        if delay <= 0:
            callback()
            return None
        return asyncio.get_running_loop().call_later(delay, callback)

    def _clear_phase(self) -> None:
        self._cancel_phase_clear()
        self.phase = None

    def _schedule_phase_clear(self, phase: ProgressPhase) -> None:
        def clear() -> None:
            self._phase_clear_handle = None
            if self.phase is phase:
                self.phase = None
                self._notify()

        self._phase_clear_handle = self._call_later(self.phase_clear_delay, clear)

    def _cancel_phase_clear(self) -> None:
        if self._phase_clear_handle is not None:
            self._phase_clear_handle.cancel()
            self._phase_clear_handle = None

    def _schedule_readiness_fallback(self) -> None:
        if self.current_recommendation is None or self.is_ready_for_approval:
            return
        if self._recommendation_rejected:
            return

        def mark_ready() -> None:
            self._readiness_handle = None
            if self.current_recommendation is not None and not self.is_streaming:
                self.is_ready_for_approval = True
                self._notify()

        self._readiness_handle = self._call_later(self.readiness_fallback_delay, mark_ready)

    def _cancel_readiness_fallback(self) -> None:
        if self._readiness_handle is not None:
            self._readiness_handle.cancel()
            self._readiness_handle = None

    def _cancel_timers(self) -> None:
        self._cancel_phase_clear()
        self._cancel_readiness_fallback()

    # ------------------------------------------------------------------
    # Approval and reset
    # ------------------------------------------------------------------

    async def approve_recommendation(
        self,
        modifications: dict[str, Any] | None = None,
    ) -> ApprovalResult | None:
        """Approve the current recommendation.

        Returns None when there is nothing to approve.

        Raises:
            ApprovalError: If the approval request fails.
        """
        if self.current_recommendation is None or self.conversation_id is None:
            return None

        request = ApproveRequest(
            conversation_id=self.session.backend_conversation_id,
            supabase_conversation_id=self.conversation_id,
            project_id=self.project_id,
            sprint_id=self.sprint_id,
            modifications=modifications or {},
            recommendation=self.current_recommendation.to_payload(),
        )

        try:
            response = await self._client.post(
                f"{self.base_url}/api/planning/approve",
                json=request.model_dump(by_alias=True, exclude_none=True),
            )
        except httpx.HTTPError as e:
            logger.error(f"Approve request failed: {e}")
            raise ApprovalError(f"Approve request failed: {e}", detail=str(e)) from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error(
                f"Approval failed: {detail}",
                extra={"status_code": response.status_code, "conversation_id": self.conversation_id},
            )
            raise ApprovalError(
                detail or "Failed to approve recommendation",
                status_code=response.status_code,
                detail=detail,
            )

        try:
            result = ApprovalResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ApprovalError("Invalid approval response", detail=str(e)) from e

        if result.project_id is None:
            result = result.model_copy(update={"project_id": self.project_id})
        return result

    def reset(self) -> None:
        """Start over locally. The backend is not told the old session was abandoned."""
        self.cancel()
        self._cancel_timers()
        self.messages = []
        self.conversation_id = None
        self.current_recommendation = None
        self.is_ready_for_approval = False
        self.phase = None
        self.last_error = None
        self.session = create_session()
        self._notify()
