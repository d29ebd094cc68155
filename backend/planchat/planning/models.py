"""Planning chat data models.

Dataclasses hold controller-owned state; pydantic models validate what
crosses the wire.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "orchestrator", "system"]
Complexity = Literal["low", "medium", "high"]

COMPLEXITY_LEVELS = ("low", "medium", "high")


# =============================================================================
# Recommendations
# =============================================================================


class TaskRecommendation(BaseModel):
    """A proposed task."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str | None = None
    description: str = ""
    estimated_complexity: Complexity | None = Field(default=None, alias="estimatedComplexity")
    success_criteria: list[str] = Field(default_factory=list, alias="successCriteria")
    suggested_files: list[str] = Field(default_factory=list, alias="suggestedFiles")

    @field_validator("estimated_complexity", mode="before")
    @classmethod
    def normalize_complexity(cls, v: Any) -> str | None:
        """Lowercase known levels; anything else is treated as unknown."""
        if isinstance(v, str) and v.strip().lower() in COMPLEXITY_LEVELS:
            return v.strip().lower()
        return None


class SprintRecommendation(BaseModel):
    """A proposed sprint with its tasks."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    description: str = ""
    tasks: list[TaskRecommendation] = Field(default_factory=list)


class DecompositionRecommendation(BaseModel):
    """A structured plan: sprints with nested tasks, or a flat task list.

    When ``sprints`` is non-empty it takes precedence and ``tasks`` is
    treated as absent.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    sprints: list[SprintRecommendation] | None = None
    tasks: list[TaskRecommendation] | None = None

    @property
    def shape(self) -> Literal["sprints", "tasks", "empty"]:
        if self.sprints:
            return "sprints"
        if self.tasks:
            return "tasks"
        return "empty"

    @property
    def effective_tasks(self) -> list[TaskRecommendation]:
        """Flat tasks to render; empty when the plan is sprint-shaped."""
        if self.sprints:
            return []
        return list(self.tasks or [])

    def to_payload(self) -> dict[str, Any]:
        """Wire form, with camelCase keys as the backend sends them."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Controller state
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    """One turn in the conversation.

    Only the in-flight orchestrator message has its ``content`` appended to.
    """

    role: Role
    content: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    recommendations: DecompositionRecommendation | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_history_entry(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ProgressPhase:
    """Transient progress display state."""

    phase: str
    message: str
    icon: str = "spinner"
    elapsed: float | None = None
    enhanced: bool = False  # message was substituted locally and may rotate


# =============================================================================
# Wire bodies
# =============================================================================


class HistoryEntry(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /api/planning``."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str | None = Field(default=None, alias="conversationId")
    message: str = ""
    history: list[HistoryEntry] = Field(default_factory=list)
    project_id: str | None = Field(default=None, alias="projectId")
    sprint_id: str | None = Field(default=None, alias="sprintId")

    def to_payload(self) -> dict[str, Any]:
        """Wire form; ``conversationId`` is always present (null starts a new session)."""
        payload = self.model_dump(by_alias=True)
        for key in ("projectId", "sprintId"):
            if payload[key] is None:
                del payload[key]
        return payload


class ApproveRequest(BaseModel):
    """Body of ``POST /api/planning/approve``."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str | None = Field(default=None, alias="conversationId")
    supabase_conversation_id: str | None = Field(default=None, alias="supabaseConversationId")
    project_id: str | None = Field(default=None, alias="projectId")
    sprint_id: str | None = Field(default=None, alias="sprintId")
    modifications: dict[str, Any] = Field(default_factory=dict)
    recommendation: dict[str, Any] | None = None


class BackendApproveResponse(BaseModel):
    """What the planning backend returns from ``/planning/approve``."""

    model_config = ConfigDict(extra="allow")

    success: bool = False
    project_id: str | None = None
    sprint_ids: list[str] = Field(default_factory=list)
    task_ids: list[str] = Field(default_factory=list)
    message: str | None = None
    error: str | None = None
