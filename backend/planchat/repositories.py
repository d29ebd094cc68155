"""Repositories for planning persistence.

The planning core reads conversations and checks entity existence here;
message writes happen on the backend side and in tests.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import or_, select, update

import planchat.database as db_module
from planchat.database import (
    PlanningConversation,
    PlanningMessage,
    Project,
    Sprint,
    Task,
)

logger = logging.getLogger(__name__)

EntityType = Literal["projects", "sprints", "tasks"]

_ENTITY_MODELS = {
    "projects": Project,
    "sprints": Sprint,
    "tasks": Task,
}


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_session():
    """Get the current session factory (supports test patching)."""
    return db_module.async_session_factory


# =============================================================================
# Conversation Repository
# =============================================================================


class ConversationRepository:
    """Repository for planning conversations and their messages."""

    @staticmethod
    async def create(
        project_id: str | None = None,
        sprint_id: str | None = None,
        conversation_id: str | None = None,
        status: str = "active",
        backend_conversation_id: str | None = None,
    ) -> PlanningConversation:
        """Create a conversation record."""
        async with get_session()() as db:
            conversation = PlanningConversation(
                id=conversation_id or str(uuid.uuid4()),
                project_id=project_id,
                sprint_id=sprint_id,
                status=status,
                backend_conversation_id=backend_conversation_id,
            )
            db.add(conversation)
            await db.commit()
            await db.refresh(conversation)
            logger.info(f"Created planning conversation {conversation.id}")
            return conversation

    @staticmethod
    async def get(conversation_id: str) -> PlanningConversation | None:
        """Get a conversation by ID."""
        async with get_session()() as db:
            result = await db.execute(
                select(PlanningConversation).where(PlanningConversation.id == conversation_id)
            )
            return result.scalar_one_or_none()

    @staticmethod
    async def get_active(
        project_id: str | None = None,
        sprint_id: str | None = None,
    ) -> PlanningConversation | None:
        """Get the active conversation for a sprint, or else for a project.

        The sprint association wins when both are given.
        """
        if not project_id and not sprint_id:
            return None

        query = select(PlanningConversation).where(PlanningConversation.status == "active")
        if sprint_id:
            query = query.where(PlanningConversation.sprint_id == sprint_id)
        else:
            query = query.where(PlanningConversation.project_id == project_id)
        query = query.order_by(PlanningConversation.created_at.desc()).limit(1)

        async with get_session()() as db:
            result = await db.execute(query)
            return result.scalar_one_or_none()

    @staticmethod
    async def add_message(
        conversation_id: str,
        role: str,
        content: str,
        recommendations: dict | None = None,
        created_at: datetime | None = None,
    ) -> PlanningMessage:
        """Append a message to a conversation."""
        async with get_session()() as db:
            message = PlanningMessage(
                id=str(uuid.uuid4()),
                conversation_id=conversation_id,
                role=role,
                content=content,
                recommendations=recommendations,
                created_at=created_at or utcnow(),
            )
            db.add(message)
            await db.commit()
            await db.refresh(message)
            return message

    @staticmethod
    async def list_messages(conversation_id: str) -> list[PlanningMessage]:
        """Get all messages of a conversation in chronological order."""
        async with get_session()() as db:
            result = await db.execute(
                select(PlanningMessage)
                .where(PlanningMessage.conversation_id == conversation_id)
                .order_by(PlanningMessage.created_at.asc())
            )
            return list(result.scalars().all())

    @staticmethod
    async def mark_approved(conversation_id: str) -> bool:
        """Mark a conversation approved. Returns False if it does not exist."""
        async with get_session()() as db:
            result = await db.execute(
                update(PlanningConversation)
                .where(PlanningConversation.id == conversation_id)
                .values(status="approved", completed_at=utcnow())
            )
            await db.commit()
            return result.rowcount > 0


# =============================================================================
# Entity lookups
# =============================================================================


class EntityRepository:
    """Existence checks and lookups for projects, sprints and tasks."""

    @staticmethod
    async def find_id(entity_type: EntityType, identifier: str) -> str | None:
        """Return the local id of an entity matched by id or source id."""
        model = _ENTITY_MODELS.get(entity_type)
        if model is None:
            raise ValueError(f"Unknown entity type: {entity_type}")

        async with get_session()() as db:
            result = await db.execute(
                select(model.id)
                .where(or_(model.id == identifier, model.source_id == identifier))
                .limit(1)
            )
            return result.scalar_one_or_none()

    @staticmethod
    async def resolve_repository_url(
        project_id: str | None = None,
        sprint_id: str | None = None,
    ) -> str | None:
        """Find the repository URL for a project, or for the project owning a sprint."""
        async with get_session()() as db:
            if not project_id and sprint_id:
                result = await db.execute(select(Sprint.project_id).where(Sprint.id == sprint_id))
                project_id = result.scalar_one_or_none()

            if not project_id:
                return None

            result = await db.execute(
                select(Project.repository_url).where(Project.id == project_id)
            )
            return result.scalar_one_or_none()
