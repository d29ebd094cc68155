"""Planning relay endpoints.

Forwards chat messages to the planning backend and passes its event stream
through with any content encoding removed; approval is delegated to the
approval finalizer.
"""

import logging

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from starlette.background import BackgroundTask

from planchat.config import settings
from planchat.planning.approval import ApprovalFinalizer
from planchat.planning.errors import ApprovalError
from planchat.planning.models import ApproveRequest, ChatRequest
from planchat.repositories import EntityRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# Rate limiter for the chat relay
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable proxy buffering (nginx)
}


def get_planning_client(request: Request) -> httpx.AsyncClient:
    """Shared client for backend calls, created on first use."""
    client = getattr(request.app.state, "planning_client", None)
    if client is None:
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout, read=settings.stream_timeout)
        )
        request.app.state.planning_client = client
    return client


def _error(message: str, status_code: int, details: str | None = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(content, status_code=status_code)


@router.post("/planning")
@limiter.limit(settings.rate_limit_chat)
async def planning_chat(
    request: Request,
    chat_request: ChatRequest,
    client: httpx.AsyncClient = Depends(get_planning_client),
):
    """Relay a planning message and stream the backend's events back."""
    if not chat_request.message:
        return _error("Message is required", 400)

    if not settings.planning_api_url:
        logger.error("PLANCHAT_PLANNING_API_URL is not configured")
        return _error("Server configuration error", 500)

    payload = chat_request.to_payload()
    try:
        repository_url = await EntityRepository.resolve_repository_url(
            project_id=chat_request.project_id,
            sprint_id=chat_request.sprint_id,
        )
    except SQLAlchemyError as e:
        logger.warning(f"Could not resolve repository URL: {e}")
        repository_url = None
    if repository_url:
        payload["repositoryUrl"] = repository_url

    try:
        upstream = await client.send(
            client.build_request("POST", f"{settings.planning_api_url}/planning/chat", json=payload),
            stream=True,
        )
    except httpx.HTTPError as e:
        logger.error(f"Error reaching planning service: {e}")
        return _error("Failed to process request", 502, str(e))

    if upstream.is_error:
        error_text = (await upstream.aread()).decode("utf-8", errors="replace")
        await upstream.aclose()
        logger.error(
            f"Planning service error: {error_text[:200]}",
            extra={"status_code": upstream.status_code},
        )
        return _error("Failed to connect to planning service", upstream.status_code, error_text)

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(upstream.aclose),
    )


@router.post("/planning/approve")
async def approve_planning(
    approve_request: ApproveRequest,
    client: httpx.AsyncClient = Depends(get_planning_client),
):
    """Approve the current recommendation of a backend planning session."""
    finalizer = ApprovalFinalizer(client=client)
    try:
        result = await finalizer.finalize(approve_request)
    except ApprovalError as e:
        return _error(str(e), e.status_code or 500, e.detail)

    return result.model_dump(by_alias=True)
