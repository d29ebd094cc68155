"""End-to-end planning flow: controller -> relay app -> fake planning backend."""

import httpx
import pytest
import pytest_asyncio

from planchat.api.planning import get_planning_client, limiter
from planchat.database import Project, Sprint, Task
from planchat.main import app
from planchat.planning.controller import PlanningChatController
from planchat.planning.errors import SessionExpiredError
from planchat.repositories import ConversationRepository
from tests.fakes import FakeBackend, sse


@pytest_asyncio.fixture
async def flow(planning_settings, test_db, monkeypatch):
    """A controller talking to the real relay app, which talks to a fake backend."""
    monkeypatch.setattr(limiter, "enabled", False)
    backend = FakeBackend()
    upstream = backend.client()
    app.dependency_overrides[get_planning_client] = lambda: upstream

    relay = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    controller = PlanningChatController(
        project_id="proj-1",
        client=relay,
        base_url="http://testserver",
        readiness_fallback_delay=0,
        phase_clear_delay=0,
    )

    yield controller, backend, test_db

    await controller.aclose()
    await relay.aclose()
    await upstream.aclose()
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_plan_and_approve(flow):
    """A full turn streams through the relay and approval verifies what was created."""
    controller, backend, test_db = flow
    conversation = await ConversationRepository.create(project_id="proj-1", conversation_id="conv-1")
    assert await controller.load_history() is True
    assert controller.conversation_id == conversation.id

    backend.queue_stream([
        sse({"conversation_id": "modal-1", "phase": "starting"}),
        sse({"phase": "analyzing", "message": "analyzing"}, {"content": "Two sprints: "}),
        sse({"content": "auth, then billing."}),
        sse({
            "recommendations": {
                "sprints": [
                    {"name": "Auth", "tasks": [{"title": "Login form", "estimatedComplexity": "low"}]},
                    {"name": "Billing", "tasks": [{"title": "Stripe checkout"}]},
                ]
            },
            "ready_for_approval": True,
            "done": True,
        }),
    ])

    await controller.send_message("Plan auth and billing")

    assert controller.backend_conversation_id == "modal-1"
    assert controller.messages[-1].content == "Two sprints: auth, then billing."
    assert controller.current_recommendation.shape == "sprints"
    assert controller.current_recommendation.sprints[0].tasks[0].estimated_complexity == "low"
    assert controller.is_ready_for_approval is True

    async with test_db() as db:
        db.add(Project(id="proj-1", name="Web"))
        db.add(Sprint(id="sprint-a", project_id="proj-1", name="Auth", source_id="ext-a"))
        db.add(Sprint(id="sprint-b", project_id="proj-1", name="Billing", source_id="ext-b"))
        db.add(Task(id="task-a", sprint_id="sprint-a", title="Login form"))
        await db.commit()

    backend.queue_json({
        "success": True,
        "project_id": "proj-1",
        "sprint_ids": ["ext-a", "ext-b"],
        "task_ids": ["task-a"],
    })

    result = await controller.approve_recommendation()

    approve_body = backend.bodies()[1]
    assert approve_body["conversationId"] == "modal-1"
    assert approve_body["recommendation"]["sprints"][0]["tasks"][0]["estimatedComplexity"] == "low"
    assert result.success is True
    assert result.project_id == "proj-1"
    assert result.verification.verified is True
    assert result.verification.total == 4

    stored = await ConversationRepository.get(conversation.id)
    assert stored.status == "approved"


@pytest.mark.asyncio
async def test_expired_session_recovers(flow):
    """A 404 from the backend clears the session and the next send starts fresh."""
    controller, backend, _ = flow

    backend.queue_stream(sse({"conversation_id": "modal-1", "content": "hello"}))
    await controller.send_message("first")

    backend.queue(httpx.Response(404, text="conversation not found"))
    with pytest.raises(SessionExpiredError) as exc_info:
        await controller.send_message("second")
    assert exc_info.value.detail == "conversation not found"
    assert controller.backend_conversation_id is None

    backend.queue_stream(sse({"conversation_id": "modal-2", "content": "welcome back"}))
    await controller.send_message("third")

    bodies = backend.bodies()
    assert [b["conversationId"] for b in bodies] == [None, "modal-1", None]
    assert controller.backend_conversation_id == "modal-2"
    assert controller.messages[-1].content == "welcome back"
