import pytest
from fastapi.testclient import TestClient

from ChatApp.app import app
from ChatApp.auth import get_current_user_id
from ChatApp.database import get_db
from ChatApp.errors import GatewayError
from ChatApp.subapps import chat_routes


@pytest.fixture
def api(session_factory):
    def _db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user_id] = lambda: "auth0|alice"
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def generated(monkeypatch):
    calls = []

    async def _generate_text(prompt, history):
        calls.append(("text", prompt, history))
        return "Hi there"

    async def _generate_image(prompt, history):
        calls.append(("image", prompt, history))
        return "![image](data:image/png;base64,AAA)"

    monkeypatch.setattr(chat_routes, "generate_text", _generate_text)
    monkeypatch.setattr(chat_routes, "generate_image", _generate_image)
    return calls


def test_chat_returns_generated_text(api, generated):
    response = api.post(
        "/api/chat",
        json={"prompt": "Hello", "history": [{"role": "user", "content": "earlier", "query": "earlier"}]},
    )

    assert response.status_code == 200
    assert response.json() == {"text": "Hi there"}
    kind, prompt, history = generated[0]
    assert (kind, prompt) == ("text", "Hello")
    assert history[0].query == "earlier"


@pytest.mark.parametrize("path", ["/api/chat", "/api/image"])
@pytest.mark.parametrize("body", [{}, {"prompt": ""}, {"prompt": "   ", "history": []}])
def test_missing_prompt_is_400(api, generated, path, body):
    response = api.post(path, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Prompt is required"}
    assert generated == []


def test_generation_failure_is_500(api, monkeypatch):
    async def _boom(prompt, history):
        raise GatewayError("quota exceeded")

    monkeypatch.setattr(chat_routes, "generate_text", _boom)
    monkeypatch.setattr(chat_routes, "generate_image", _boom)

    assert api.post("/api/chat", json={"prompt": "x"}).json() == {"error": "Failed to generate response"}
    response = api.post("/api/image", json={"prompt": "x"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate image"}


def test_image_returns_generated_text(api, generated):
    response = api.post("/api/image", json={"prompt": "a cat"})

    assert response.status_code == 200
    assert response.json()["text"].startswith("![image]")
    assert generated[0][0] == "image"


def test_session_lifecycle(api):
    assert api.get("/api/sessions").json() == {"sessions": []}

    created = api.post("/api/sessions")
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    assert created.json()["user_id"] == "auth0|alice"

    for query, datatext in [("Hello", "Hi there"), ("echo", "echo")]:
        response = api.post(f"/api/sessions/{session_id}/exchanges", json={"query": query, "datatext": datatext})
        assert response.status_code == 201

    exchanges = api.get(f"/api/sessions/{session_id}/exchanges").json()
    assert [(e["query"], e["datatext"]) for e in exchanges] == [("Hello", "Hi there"), ("echo", "echo")]

    messages = api.get(f"/api/sessions/{session_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [("user", "Hello"), ("assistant", "Hi there"), ("user", "echo")]


def test_sessions_are_listed_newest_first(api):
    first = api.post("/api/sessions").json()["session_id"]
    second = api.post("/api/sessions").json()["session_id"]

    listed = [s["session_id"] for s in api.get("/api/sessions").json()["sessions"]]

    assert listed == [second, first]


def test_other_users_sessions_are_hidden(api):
    session_id = api.post("/api/sessions").json()["session_id"]
    app.dependency_overrides[get_current_user_id] = lambda: "auth0|mallory"

    assert api.get("/api/sessions").json() == {"sessions": []}
    assert api.get(f"/api/sessions/{session_id}/exchanges").status_code == 404
    assert api.get(f"/api/sessions/{session_id}/messages").status_code == 404
    response = api.post(f"/api/sessions/{session_id}/exchanges", json={"query": "q", "datatext": "a"})
    assert response.status_code == 404


def test_status_reports_store_and_gateway(api, monkeypatch):
    monkeypatch.delenv("CHAT_PROVIDER", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    assert api.get("/api/status").json() == {"store": True, "gateway": True}

    monkeypatch.delenv("GEMINI_API_KEY")
    assert api.get("/api/status").json() == {"store": True, "gateway": False}


def test_status_poll_does_not_log_missing_key(api, monkeypatch, caplog):
    monkeypatch.delenv("CHAT_PROVIDER", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with caplog.at_level("ERROR"):
        api.get("/api/status")
        api.get("/api/status")

    assert not [r for r in caplog.records if "GEMINI_API_KEY" in r.getMessage()]


@pytest.mark.parametrize("path", ["/api/chat", "/api/image"])
@pytest.mark.parametrize("body", [{"prompt": 123}, {"prompt": ["Hello"]}])
def test_non_string_prompt_is_400_with_error_body(api, generated, path, body):
    response = api.post(path, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Prompt is required"}
    assert generated == []


def test_null_history_is_treated_as_empty(api, generated):
    response = api.post("/api/chat", json={"prompt": "Hello", "history": None})

    assert response.status_code == 200
    assert generated[0][2] == []


def test_malformed_history_is_400_with_error_body(api, generated):
    response = api.post("/api/image", json={"prompt": "Hello", "history": "nope"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_session_routes_keep_default_validation_response(api):
    session_id = api.post("/api/sessions").json()["session_id"]

    response = api.post(f"/api/sessions/{session_id}/exchanges", json={"datatext": "no query"})

    assert response.status_code == 422
    assert "detail" in response.json()


def test_session_routes_require_a_token(session_factory, monkeypatch):
    monkeypatch.setenv("AUTH_JWKS_URL", "https://tenant.example.com/.well-known/jwks.json")
    app.dependency_overrides.clear()
    with TestClient(app) as client:
        response = client.get("/api/sessions")
        assert response.status_code == 401

        response = client.get("/api/sessions", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
