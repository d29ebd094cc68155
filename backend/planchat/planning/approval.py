"""Approval of planning recommendations.

The backend owns entity creation: approving forwards the backend session id
to ``/planning/approve``, marks the local conversation approved, then checks
that the created project, sprints and tasks are visible locally.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from planchat.config import settings
from planchat.planning.errors import ApprovalError
from planchat.planning.models import ApproveRequest, BackendApproveResponse
from planchat.planning.verification import VerificationSummary, verify_entities
from planchat.repositories import ConversationRepository, EntityType

logger = logging.getLogger(__name__)


class ApprovalResult(BaseModel):
    """Outcome of an approval, as returned by ``POST /api/planning/approve``."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str | None = None
    project_id: str | None = Field(default=None, alias="projectId")
    sprint_ids: list[str] = Field(default_factory=list, alias="sprintIds")
    task_ids: list[str] = Field(default_factory=list, alias="taskIds")
    verification: VerificationSummary | None = None


class ApprovalFinalizer:
    """Calls the backend approval endpoint and verifies what it created.

    Usage:
        finalizer = ApprovalFinalizer()
        result = await finalizer.finalize(ApproveRequest(conversationId="modal-123"))
        if result.verification and not result.verification.verified:
            logger.warning("Created but not yet visible")
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        verify: bool = True,
        verification_options: dict | None = None,
    ) -> None:
        self._client = client
        self.base_url = (base_url if base_url is not None else settings.planning_api_url).rstrip("/")
        self.verify = verify
        self.verification_options = verification_options or {}

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
                yield client

    async def finalize(self, request: ApproveRequest) -> ApprovalResult:
        """Approve the recommendation of a backend session.

        Raises:
            ApprovalError: If the request is invalid, the backend call fails,
                or the backend reports ``success: false``.
        """
        if not self.base_url:
            logger.error("Planning API URL is not configured")
            raise ApprovalError("Server configuration error: planning API URL not set", status_code=500)

        if not request.conversation_id:
            raise ApprovalError(
                "Missing required field: conversationId (backend session ID)",
                status_code=400,
            )

        body = {
            "conversationId": request.conversation_id,
            "projectId": request.project_id,
            "sprintId": request.sprint_id,
            "modifications": request.modifications,
        }
        if request.recommendation is not None:
            body["recommendation"] = request.recommendation

        try:
            async with self._http() as client:
                response = await client.post(f"{self.base_url}/planning/approve", json=body)
        except httpx.HTTPError as e:
            logger.error(f"Approve request failed: {e}")
            raise ApprovalError("Failed to reach planning service", status_code=502, detail=str(e)) from e

        if response.is_error:
            logger.error(
                f"Backend approve error: {response.status_code} {response.text[:200]}",
                extra={"status_code": response.status_code},
            )
            raise ApprovalError(
                "Failed to approve recommendation",
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            result = BackendApproveResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ApprovalError("Invalid approval response", status_code=502, detail=str(e)) from e

        if not result.success:
            raise ApprovalError(result.error or "Approval failed", status_code=500, detail=result.message)

        if request.supabase_conversation_id:
            # Entities already exist upstream; the local status update is best effort
            try:
                await ConversationRepository.mark_approved(request.supabase_conversation_id)
            except SQLAlchemyError as e:
                logger.warning(
                    f"Could not mark conversation {request.supabase_conversation_id} approved: {e}",
                    extra={"conversation_id": request.supabase_conversation_id},
                )

        project_id = result.project_id or request.project_id
        verification = None
        if self.verify:
            entities = self._created_entities(result)
            if entities:
                verification = await verify_entities(entities, **self.verification_options)
                if not verification.verified:
                    logger.warning(
                        f"Approval created {verification.total} entities, "
                        f"{verification.total - verification.successful} not yet visible"
                    )

        logger.info(
            f"Approved planning session {request.conversation_id}",
            extra={"backend_conversation_id": request.conversation_id},
        )
        return ApprovalResult(
            success=True,
            message=result.message or "Recommendation approved and entities created",
            project_id=project_id,
            sprint_ids=result.sprint_ids,
            task_ids=result.task_ids,
            verification=verification,
        )

    @staticmethod
    def _created_entities(result: BackendApproveResponse) -> list[tuple[EntityType, str]]:
        entities: list[tuple[EntityType, str]] = []
        if result.project_id:
            entities.append(("projects", result.project_id))
        entities.extend(("sprints", sprint_id) for sprint_id in result.sprint_ids)
        entities.extend(("tasks", task_id) for task_id in result.task_ids)
        return entities
