import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from .api import get_router, status_code_for
from .conftest import FakeResearchAdapter
from .session import SessionManager


def slide_args(title):
    return {
        "title": title,
        "content": f"{title} content",
        "backgroundImageDescription": "mountains",
        "spokenNarration": f"Now {title}",
    }


@pytest.fixture
def manager(make_session):
    return SessionManager(session_factory=make_session)


@pytest.fixture
def client(manager):
    app = FastAPI()
    app.include_router(get_router(manager))
    with TestClient(app) as client:
        yield client


def create(client, session_id="deck"):
    response = client.post("/copilot/sessions", json={"session_id": session_id})
    assert response.status_code == 200
    return response.json()


def test_status_code_for_handler_errors_uses_cause():
    assert status_code_for({"code": "validation_error"}) == 422
    assert status_code_for({"code": "handler_error", "cause": {"code": "invariant_violation"}}) == 409
    assert status_code_for({"code": "handler_error", "cause": {"code": "RuntimeError"}}) == 500


def test_create_session_returns_context(client):
    body = create(client)

    assert body["sessionId"] == "deck"
    assert body["created"] is True
    assert body["currentIndex"] == 0
    assert set(body["context"]) == {"all slides", "current slide"}


def test_list_actions(client):
    create(client)

    actions = client.get("/copilot/sessions/deck/actions").json()["actions"]

    research = next(a for a in actions if a["name"] == "research")
    assert research["arguments"][0]["minLength"] == 5


def test_invoke_action(client):
    create(client)

    response = client.post(
        "/copilot/sessions/deck/actions", json={"name": "appendSlide", "arguments": slide_args("Intro")}
    )

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["result"]["index"] == 1
    context = client.get("/copilot/sessions/deck/context").json()["context"]
    assert "Intro content" in context["all slides"]


def test_invoke_action_failures_map_to_status_codes(client):
    create(client)

    invalid = client.post("/copilot/sessions/deck/actions", json={"name": "research", "arguments": {"topic": "ai"}})
    unknown = client.post("/copilot/sessions/deck/actions", json={"name": "shout"})
    last_slide = client.post("/copilot/sessions/deck/actions", json={"name": "deleteSlide"})

    assert invalid.status_code == 422
    assert invalid.json()["error"]["problems"][0]["argument"] == "topic"
    assert unknown.status_code == 404
    assert last_slide.status_code == 409
    assert last_slide.json()["ok"] is False


def test_existing_session_is_reported_and_topic_conflicts_rejected(client):
    first = client.post("/copilot/sessions", json={"session_id": "deck", "presentation_topic": "Solar energy"})
    again = client.post("/copilot/sessions", json={"session_id": "deck"})
    conflict = client.post("/copilot/sessions", json={"session_id": "deck", "presentation_topic": "Wind energy"})

    assert first.json()["created"] is True
    assert again.status_code == 200
    assert again.json()["created"] is False
    assert again.json()["presentationTopic"] == "Solar energy"
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["code"] == "session_conflict"


def test_unknown_session(client):
    response = client.get("/copilot/sessions/missing/context")

    assert response.status_code == 404


def test_generation_is_single_flight(make_session):
    adapter = FakeResearchAdapter(block=True)
    manager = SessionManager(session_factory=lambda session_id, **kwargs: make_session(
        session_id, research_adapter=adapter, **kwargs
    ))
    app = FastAPI()
    app.include_router(get_router(manager))

    with TestClient(app) as client:
        create(client)

        first = client.post("/copilot/sessions/deck/generate", json={"topic": "Solar panel basics"})
        second = client.post("/copilot/sessions/deck/generate", json={"topic": "Solar panel basics"})
        status = client.get("/copilot/sessions/deck/generate").json()
        closed = client.delete("/copilot/sessions/deck")

    assert first.status_code == 200
    assert first.json()["state"] == "running"
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "already_running"
    assert status["state"] == "running"
    assert closed.json() == {"sessionId": "deck", "closed": True}
    assert len(manager) == 0


def test_generation_completes_and_is_acknowledged(client, manager):
    create(client)

    started = client.post("/copilot/sessions/deck/generate")
    # the fake backends finish without blocking, so the next request observes the outcome
    for _ in range(20):
        status = client.get("/copilot/sessions/deck/generate").json()
        if status["state"] != "running":
            break
        time.sleep(0.01)

    assert started.status_code == 200
    assert status["state"] == "succeeded"
    acknowledged = client.post("/copilot/sessions/deck/generate/ack").json()
    assert acknowledged["state"] == "succeeded"
    assert client.get("/copilot/sessions/deck/generate").json()["state"] == "idle"
    assert len(manager.get("deck").document) == 2


def test_health():
    from .api_server import app

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
