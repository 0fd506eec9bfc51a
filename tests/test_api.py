from typing import Any

import pytest
from fastapi.testclient import TestClient

import dialogrouter.core.api as api_module
from dialogrouter.core.runtime import Runtime
from dialogrouter.utils.env_cfg import load_message_env

MESSAGES = load_message_env()


@pytest.fixture(autouse=True)
def _patch_runtime(monkeypatch: pytest.MonkeyPatch, runtime: Runtime) -> Runtime:
    """
    Point the API at the test runtime.

    Args:
        monkeypatch (pytest.MonkeyPatch): The monkeypatch fixture.
        runtime (Runtime): The runtime fixture.

    Returns:
        Runtime: The patched runtime.
    """
    monkeypatch.setattr(api_module, "runtime", runtime)
    return runtime


@pytest.fixture
def client() -> TestClient:
    return TestClient(api_module.app)


def _post(client: TestClient, text: str | None = None, **extra: Any) -> dict[str, Any]:
    body = {"conversation_id": "api-1", "text": text, **extra}
    resp = client.post("/api/messages", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _texts(payload: dict[str, Any]) -> list[str]:
    return [a["text"] for a in payload["activities"] if a["type"] == "message"]


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_messages_returns_replies(client: TestClient) -> None:
    payload = _post(client, "schedule a meeting")

    assert _texts(payload) == ["What should the meeting be called?"]
    assert payload["activities"][0]["recipient_id"] == "user"
    assert payload["activities"][0]["conversation_id"] == "api-1"


def test_messages_accepts_events(client: TestClient) -> None:
    _post(client, "schedule a meeting")

    payload = _post(client, type="event", name="custom/ping")

    assert [a["type"] for a in payload["activities"]] == ["trace"]


def test_messages_requires_conversation_id(client: TestClient) -> None:
    resp = client.post("/api/messages", json={"conversation_id": "  ", "text": "hi"})

    assert resp.status_code == 400


def test_messages_failure(
    monkeypatch: pytest.MonkeyPatch, client: TestClient, runtime: Runtime
) -> None:
    def raiser(_activity) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(runtime.dispatcher, "handle_turn", raiser)

    resp = client.post("/api/messages", json={"conversation_id": "api-1", "text": "hi"})

    assert resp.status_code == 500
    assert resp.json()["detail"] == "boom"


def test_timeout_unknown_conversation(client: TestClient) -> None:
    resp = client.post("/api/timeout", json={"conversation_id": "never-seen"})

    assert resp.status_code == 404


def test_timeout_flow(client: TestClient) -> None:
    _post(client, "schedule a meeting")

    resp = client.post("/api/timeout", json={"conversation_id": "api-1"})
    assert resp.json() == {"ok": True, "conversation_id": "api-1"}

    outbox = client.get("/conversations/api-1/outbox").json()
    assert _texts(outbox) == [MESSAGES.timeout_message]
    assert client.get("/conversations/api-1/outbox").json() == {"activities": []}

    state = client.get("/conversations/api-1/state").json()
    assert state["dialog_stack"] == []
    assert state["router_state"] == "idle"


def test_conversation_state(client: TestClient) -> None:
    _post(client, "schedule a meeting")

    state = client.get("/conversations/api-1/state").json()

    assert state["router_state"] == "in_skill"
    assert [f["id"] for f in state["dialog_stack"]] == ["calendar_skill"]
    assert state["skill_context"]["active_skill_instance_id"]
    assert state["reference"]["user_id"] == "user"


def test_conversation_state_unknown(client: TestClient) -> None:
    assert client.get("/conversations/missing/state").status_code == 404


def test_list_and_delete_conversations(client: TestClient) -> None:
    _post(client, "hello")

    listed = client.get("/conversations/list").json()["conversations"]
    assert [c["id"] for c in listed] == ["api-1"]

    assert client.delete("/conversations/api-1").json() == {"ok": True}
    assert client.get("/conversations/list").json() == {"conversations": []}
    assert client.delete("/conversations/api-1").json() == {"ok": False}


def test_delete_discards_pending_outbox(client: TestClient, runtime: Runtime) -> None:
    _post(client, "schedule a meeting")
    client.post("/api/timeout", json={"conversation_id": "api-1"})
    assert "api-1" in runtime.adapter._outbox

    assert client.delete("/conversations/api-1").json() == {"ok": True}

    assert "api-1" not in runtime.adapter._outbox
    assert "api-1" not in runtime.store.locks._locks
