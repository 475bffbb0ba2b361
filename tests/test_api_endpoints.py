"""Integration tests for the session, conversation, generation and refinement endpoints."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock, AsyncMock, patch
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

GENERATED = "print('hi')\n---REQUIREMENTS---\nrequests==2.0"


def llm_response(text):
    from services.llm_client import LLMResponse
    return LLMResponse(text=text, tokens_input=100, tokens_output=20, latency_ms=500,
                       model_used="llama-3.3-70b-versatile")


def exhausted():
    from services.llm_client import LLMError, ExhaustedRetriesError
    return ExhaustedRetriesError(LLMError(code="TIMEOUT_ERROR", message="Request timed out.", details={}), 5)


@pytest.fixture
def completion_client():
    """Completion client whose replies each test scripts."""
    client = Mock()
    client.complete = AsyncMock(return_value=llm_response("What should the bot do on /start?"))
    return client


@pytest.fixture
def client(completion_client):
    """Create a test client with a mocked completion client."""
    # Import after path is set
    from main import app
    import main
    from services.session_store import SessionStore

    # Mock the startup event to avoid creating a real Groq client
    with patch('main.startup_event'):
        main.init_services(completion_client, SessionStore(idle_timeout=0))
        yield TestClient(app)


@pytest.fixture
def model_id():
    from config import AVAILABLE_MODELS
    return AVAILABLE_MODELS[0]


@pytest.fixture
def session_id(client, model_id):
    response = client.post("/sessions", json={"model_id": model_id, "api_key": "gsk_test_key"})
    assert response.status_code == 201
    return response.json()["session_id"]


@pytest.fixture
def generated_session(client, session_id, completion_client):
    """Session that has completed one exchange and a generation."""
    client.post(f"/sessions/{session_id}/messages", json={"content": "A bot that says hi"})
    completion_client.complete.return_value = llm_response(GENERATED)
    response = client.post(f"/sessions/{session_id}/generate")
    assert response.status_code == 200
    return session_id


def assert_redirect(response, to="model_selection"):
    assert response.status_code == 409
    error = response.json()["detail"]["error"]
    assert error["code"] == "PRECONDITION_MISSING"
    assert error["redirect_to"] == to


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_models(client, model_id):
    response = client.get("/models")
    assert response.status_code == 200
    ids = [m["id"] for m in response.json()]
    assert model_id in ids


def test_list_models_display_fields(client):
    with patch('main.AVAILABLE_MODELS', ["llama-3.3-70b-versatile", "custom/model"]), \
            patch('main.DEFAULT_MODEL', "llama-3.3-70b-versatile"):
        models = client.get("/models").json()

    assert models[0] == {
        "id": "llama-3.3-70b-versatile",
        "name": "Llama 3.3 70B",
        "provider": "Meta",
        "description": "Advanced reasoning capabilities",
        "default": True,
    }
    assert models[1] == {
        "id": "custom/model",
        "name": "custom/model",
        "provider": "",
        "description": "",
        "default": False,
    }


def test_create_session(client, model_id):
    response = client.post("/sessions", json={"model_id": model_id, "api_key": "gsk_test_key"})

    assert response.status_code == 201
    data = response.json()
    assert data["session_id"].startswith("sess_")
    assert data["model_id"] == model_id
    assert "api_key" not in data


def test_create_session_unknown_model(client):
    response = client.post("/sessions", json={"model_id": "not-a-model", "api_key": "gsk_test_key"})
    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "UNKNOWN_MODEL"


@pytest.mark.parametrize("api_key", ["", "   "])
def test_create_session_blank_key(client, model_id, api_key):
    response = client.post("/sessions", json={"model_id": model_id, "api_key": api_key})
    assert response.status_code == 422


def test_replacing_session_discards_old(client, model_id, session_id):
    response = client.post(
        "/sessions",
        json={"model_id": model_id, "api_key": "gsk_other_key", "replaces": session_id}
    )

    assert response.status_code == 201
    assert_redirect(client.get(f"/sessions/{session_id}/transcript"))


def test_sessions_hold_and_release_credential(completion_client, model_id):
    """Test the default store ties the SDK client lifetime to its sessions."""
    from main import app
    import main

    with patch('main.startup_event'):
        main.init_services(completion_client)
        api = TestClient(app)

        session_id = api.post("/sessions", json={"model_id": model_id, "api_key": "gsk_test_key"}).json()["session_id"]
        completion_client.acquire.assert_called_once_with("gsk_test_key")
        completion_client.release.assert_not_called()

        api.delete(f"/sessions/{session_id}")
        completion_client.release.assert_called_once_with("gsk_test_key")


def test_stage_guard_endpoint(client, session_id):
    chat = client.get(f"/sessions/{session_id}/stages/chat").json()
    assert chat == {"requested": "chat", "stage": "chat", "redirected": False}

    editor = client.get(f"/sessions/{session_id}/stages/code_editor").json()
    assert editor == {"requested": "code_editor", "stage": "model_selection", "redirected": True}

    unknown = client.get("/sessions/sess_unknown/stages/chat").json()
    assert unknown["stage"] == "model_selection"


def test_transcript_is_seeded(client, session_id):
    response = client.get(f"/sessions/{session_id}/transcript")

    assert response.status_code == 200
    turns = response.json()["turns"]
    assert len(turns) == 1
    assert turns[0]["sender"] == "assistant"


def test_chat_requires_session(client):
    assert_redirect(client.post("/sessions/sess_unknown/messages", json={"content": "hi"}))


def test_send_message(client, session_id):
    response = client.post(f"/sessions/{session_id}/messages", json={"content": "A reminder bot"})

    assert response.status_code == 200
    data = response.json()
    assert data["failed"] is False
    assert data["reply"]["sender"] == "assistant"
    assert data["reply"]["content"] == "What should the bot do on /start?"

    turns = client.get(f"/sessions/{session_id}/transcript").json()["turns"]
    assert [t["sender"] for t in turns] == ["assistant", "user", "assistant"]


def test_send_message_failure_is_absorbed(client, session_id, completion_client):
    completion_client.complete.side_effect = exhausted()

    response = client.post(f"/sessions/{session_id}/messages", json={"content": "A reminder bot"})

    assert response.status_code == 200
    assert response.json()["failed"] is True
    assert "several tries" in response.json()["reply"]["content"]


def test_send_empty_message(client, session_id, completion_client):
    response = client.post(f"/sessions/{session_id}/messages", json={"content": "   "})

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "EMPTY_MESSAGE"
    completion_client.complete.assert_not_awaited()


def test_generate_scenario(client, session_id, completion_client):
    """Test one exchange then generation commits the parsed pair."""
    client.post(f"/sessions/{session_id}/messages", json={"content": "A bot that says hi"})
    completion_client.complete.return_value = llm_response(GENERATED)

    response = client.post(f"/sessions/{session_id}/generate")

    assert response.status_code == 200
    data = response.json()
    assert data["canonical"] == {"source": "print('hi')", "manifest": "requests==2.0"}
    assert data["current"] == data["canonical"]
    assert data["editing"] is False

    transcript = client.get(f"/sessions/{session_id}/transcript").json()
    assert transcript["frozen"] is True
    assert len(transcript["turns"]) == 3


def test_generate_needs_an_exchange(client, session_id, completion_client):
    response = client.post(f"/sessions/{session_id}/generate")

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INSUFFICIENT_TRANSCRIPT"
    completion_client.complete.assert_not_awaited()


def test_generate_missing_separator(client, session_id, completion_client):
    client.post(f"/sessions/{session_id}/messages", json={"content": "A bot that says hi"})
    completion_client.complete.return_value = llm_response("print('hi')")

    response = client.post(f"/sessions/{session_id}/generate")

    assert response.status_code == 502
    assert response.json()["detail"]["error"]["code"] == "MISSING_SEPARATOR"
    assert_redirect(client.get(f"/sessions/{session_id}/artifacts"))


def test_generate_exhausted(client, session_id, completion_client):
    client.post(f"/sessions/{session_id}/messages", json={"content": "A bot that says hi"})
    completion_client.complete.side_effect = exhausted()

    response = client.post(f"/sessions/{session_id}/generate")

    assert response.status_code == 503
    assert response.json()["detail"]["error"]["code"] == "EXHAUSTED_RETRIES"


def test_code_editor_requires_artifacts(client, session_id):
    assert_redirect(client.get(f"/sessions/{session_id}/artifacts"))
    assert_redirect(client.post(f"/sessions/{session_id}/refine", json={"mode": "discuss", "content": "hi"}))
    assert_redirect(client.get(f"/sessions/{session_id}/artifacts/source"))


def test_messages_after_generation_rejected(client, generated_session):
    response = client.post(f"/sessions/{generated_session}/messages", json={"content": "one more"})

    assert response.status_code == 409
    assert response.json()["detail"]["error"]["code"] == "TRANSCRIPT_FROZEN"


def test_downloads_are_byte_identical(client, generated_session):
    source = client.get(f"/sessions/{generated_session}/artifacts/source")
    manifest = client.get(f"/sessions/{generated_session}/artifacts/manifest")

    assert source.status_code == 200
    assert source.content == "print('hi')".encode("utf-8")
    assert 'filename="telegram_bot.py"' in source.headers["content-disposition"]
    assert manifest.content == b"requests==2.0"
    assert 'filename="requirements.txt"' in manifest.headers["content-disposition"]


def test_refine_modify(client, generated_session, completion_client):
    completion_client.complete.return_value = llm_response(
        "print('hello')\n---REQUIREMENTS---\nrequests==2.31.0"
    )

    response = client.post(
        f"/sessions/{generated_session}/refine",
        json={"mode": "modify", "content": "Say hello instead"}
    )

    assert response.status_code == 200
    artifacts = response.json()["artifacts"]
    assert artifacts["editing"] is True
    assert artifacts["current"] == {"source": "print('hello')", "manifest": "requests==2.31.0"}
    assert artifacts["canonical"] == {"source": "print('hi')", "manifest": "requests==2.0"}

    source = client.get(f"/sessions/{generated_session}/artifacts/source")
    assert source.content == b"print('hello')"


def test_refine_modify_failure_leaves_artifacts(client, generated_session, completion_client):
    before = client.get(f"/sessions/{generated_session}/artifacts").json()
    completion_client.complete.side_effect = exhausted()

    response = client.post(
        f"/sessions/{generated_session}/refine",
        json={"mode": "modify", "content": "Say hello instead"}
    )

    assert response.status_code == 503
    assert client.get(f"/sessions/{generated_session}/artifacts").json() == before


def test_refine_modify_invalid_format(client, generated_session, completion_client):
    completion_client.complete.return_value = llm_response("print('hello')")

    response = client.post(
        f"/sessions/{generated_session}/refine",
        json={"mode": "modify", "content": "Say hello instead"}
    )

    assert response.status_code == 502
    assert response.json()["detail"]["error"]["code"] == "MISSING_SEPARATOR"


def test_refine_discuss(client, generated_session, completion_client):
    completion_client.complete.return_value = llm_response("It prints hi when run.")
    before = client.get(f"/sessions/{generated_session}/artifacts").json()

    response = client.post(
        f"/sessions/{generated_session}/refine",
        json={"mode": "discuss", "content": "What does it do?"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "discuss"
    assert data["artifacts"] is None
    assert data["reply"]["content"] == "It prints hi when run."
    assert client.get(f"/sessions/{generated_session}/artifacts").json() == before

    discussion = client.get(f"/sessions/{generated_session}/discussion").json()
    assert [t["sender"] for t in discussion["turns"]] == ["user", "assistant"]


def test_refine_unknown_mode(client, generated_session):
    response = client.post(
        f"/sessions/{generated_session}/refine",
        json={"mode": "rewrite", "content": "x"}
    )
    assert response.status_code == 422


def test_overlay_edit_commit_and_discard(client, generated_session):
    edited = client.put(
        f"/sessions/{generated_session}/artifacts/overlay",
        json={"source": "print('edited')", "manifest": "httpx"}
    ).json()
    assert edited["editing"] is True
    assert edited["current"]["source"] == "print('edited')"

    discarded = client.delete(f"/sessions/{generated_session}/artifacts/overlay").json()
    assert discarded["editing"] is False
    assert discarded["current"]["source"] == "print('hi')"

    client.put(
        f"/sessions/{generated_session}/artifacts/overlay",
        json={"source": "print('edited')", "manifest": "httpx"}
    )
    committed = client.post(f"/sessions/{generated_session}/artifacts/commit").json()
    assert committed["editing"] is False
    assert committed["canonical"] == {"source": "print('edited')", "manifest": "httpx"}


def test_end_session(client, generated_session):
    response = client.delete(f"/sessions/{generated_session}")

    assert response.status_code == 204
    assert_redirect(client.get(f"/sessions/{generated_session}/artifacts"))
    assert client.get(f"/sessions/{generated_session}/stages/code_editor").json()["redirected"] is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
