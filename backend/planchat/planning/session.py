"""Planning session tracking.

Tracks session state client-side to give better feedback about whether the
orchestrator is "warm" (recently active) or "cold" (needs startup). Every
function here is pure: sessions are frozen and transitions return copies.
"""

import time
import uuid
from dataclasses import dataclass, field, replace

SESSION_TIMEOUT = 15 * 60  # seconds


@dataclass(frozen=True)
class PlanningSession:
    """Ephemeral client-side session state (never persisted)."""

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    conversation_id: str | None = None  # Locally persisted conversation id
    backend_conversation_id: str | None = None  # Remote orchestration session id
    last_activity_at: float = field(default_factory=time.time)
    is_active: bool = True


def _now(now: float | None) -> float:
    return time.time() if now is None else now


def create_session(conversation_id: str | None = None, now: float | None = None) -> PlanningSession:
    """Create a fresh session; the backend id is filled in from the first stream event."""
    return PlanningSession(
        conversation_id=conversation_id,
        backend_conversation_id=None,
        last_activity_at=_now(now),
    )


def touch_session(session: PlanningSession, now: float | None = None) -> PlanningSession:
    """Return a copy with the activity timestamp refreshed."""
    return replace(session, last_activity_at=_now(now))


def set_backend_conversation_id(
    session: PlanningSession,
    backend_id: str | None,
    now: float | None = None,
) -> PlanningSession:
    """Return a copy carrying the backend session id.

    No first-write-wins guard here; callers only invoke this while the field is unset
    (or with None, to invalidate an expired session).
    """
    return replace(session, backend_conversation_id=backend_id, last_activity_at=_now(now))


def is_session_warm(
    session: PlanningSession | None,
    now: float | None = None,
    timeout: float = SESSION_TIMEOUT,
) -> bool:
    """Check if the session is still within the timeout window."""
    if session is None:
        return False
    return _now(now) - session.last_activity_at < timeout


def is_session_expired(
    session: PlanningSession | None,
    now: float | None = None,
    timeout: float = SESSION_TIMEOUT,
) -> bool:
    """Check if the session has expired.

    A missing session counts as expired, so for ``None`` this and
    :func:`is_session_warm` both report the unusable side.
    """
    if session is None:
        return True
    return _now(now) - session.last_activity_at >= timeout


def get_session_aware_phase(
    phase: str,
    session: PlanningSession | None,
    now: float | None = None,
    timeout: float = SESSION_TIMEOUT,
) -> str:
    """Rewrite the "starting" phase according to session warmth.

    Every other phase passes through unchanged.
    """
    if phase != "starting":
        return phase

    if is_session_warm(session, now, timeout):
        return "continuing"

    if session is not None and is_session_expired(session, now, timeout):
        return "reconnecting"

    return phase
