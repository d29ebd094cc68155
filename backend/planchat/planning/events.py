"""Typed events decoded from planning stream payloads.

The backend discriminates events only by which keys a JSON payload carries,
and one payload may carry several of them (a final frame often holds
recommendations, the readiness flag and ``done`` together). Each payload is
therefore expanded into an ordered list of events.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SessionAssigned:
    """The backend announced its session id."""

    conversation_id: str


@dataclass(frozen=True)
class PhaseUpdate:
    """Coarse progress stage reported by the backend."""

    phase: str
    message: str = ""
    icon: str = "spinner"
    elapsed: float | None = None


@dataclass(frozen=True)
class ContentDelta:
    """Incremental assistant text."""

    text: str


@dataclass(frozen=True)
class RecommendationsReceived:
    """Structured plan attached to the current turn."""

    recommendations: dict[str, Any]


@dataclass(frozen=True)
class ApprovalReady:
    """The plan is final and may be offered for approval."""


@dataclass(frozen=True)
class TurnDone:
    """The backend finished (and persisted) this turn."""


@dataclass(frozen=True)
class BackendError:
    """The backend reported a failure inside the stream."""

    message: str


@dataclass(frozen=True)
class UnknownEvent:
    """Payload with no recognised keys, kept for forward compatibility."""

    payload: dict[str, Any] = field(default_factory=dict)


StreamEvent = (
    SessionAssigned
    | PhaseUpdate
    | ContentDelta
    | RecommendationsReceived
    | ApprovalReady
    | TurnDone
    | BackendError
    | UnknownEvent
)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def parse_stream_event(payload: dict[str, Any]) -> list[StreamEvent]:
    """Expand one decoded payload into typed events.

    Order is fixed: session id, phase, content, recommendations, readiness,
    done. Errors come last so whatever arrived with them is still applied.
    """
    events: list[StreamEvent] = []

    conversation_id = payload.get("conversation_id") or payload.get("conversationId")
    if isinstance(conversation_id, str) and conversation_id:
        events.append(SessionAssigned(conversation_id))

    phase = payload.get("phase")
    if isinstance(phase, str) and phase:
        events.append(
            PhaseUpdate(
                phase=phase,
                message=str(payload.get("message") or ""),
                icon=str(payload.get("icon") or "spinner"),
                elapsed=_as_float(payload.get("elapsed")),
            )
        )

    text = payload.get("content")
    if text is None:
        text = payload.get("chunk")
    if isinstance(text, str) and text:
        events.append(ContentDelta(text))

    recommendations = payload.get("recommendations")
    if isinstance(recommendations, dict):
        events.append(RecommendationsReceived(recommendations))

    if payload.get("ready_for_approval") is True:
        events.append(ApprovalReady())

    if payload.get("done") is True:
        events.append(TurnDone())

    error = payload.get("error")
    if error:
        events.append(BackendError(str(error)))

    if not events:
        events.append(UnknownEvent(payload))

    return events
