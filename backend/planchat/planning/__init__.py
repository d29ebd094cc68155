"""Planning chat: session protocol with the remote planning backend."""

from planchat.planning.controller import PlanningChatController
from planchat.planning.errors import (
    ApprovalError,
    PlanningChatError,
    PlanningRequestError,
    SendInProgressError,
    SessionExpiredError,
)
from planchat.planning.models import ChatMessage, DecompositionRecommendation, ProgressPhase
from planchat.planning.session import PlanningSession, create_session

__all__ = [
    "ApprovalError",
    "ChatMessage",
    "DecompositionRecommendation",
    "PlanningChatController",
    "PlanningChatError",
    "PlanningRequestError",
    "PlanningSession",
    "ProgressPhase",
    "SendInProgressError",
    "SessionExpiredError",
    "create_session",
]
