"""
Integration tests for the HTTP endpoints.

Runs the FastAPI app against the in-memory ledger and a mocked OpenAI
client.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from transcribomatic import __version__
from transcribomatic.core.errors import UpstreamServiceError
from transcribomatic.core.tokens import (
    DEFAULT_MODEL,
    TRANSCRIPTION_MODEL,
    TokenContext,
    issue_token,
    sign_model_name,
)
from transcribomatic.sdk import RealtimeOpenAI, SessionToken
from transcribomatic.server import create_app
from transcribomatic.services import build_services
from transcribomatic.storage.memory import InMemoryLedgerRepository
from transcribomatic.storage.models import UsageAction

from conftest import NOW, SECRET

MANAGE_TOKEN = issue_token("user1", TokenContext.MANAGE, SECRET)
USER_TOKEN = issue_token("user1", TokenContext.USER, SECRET)


@pytest.fixture
def openai_client():
    client = Mock(spec=RealtimeOpenAI)
    client.create_realtime_session.return_value = SessionToken("ek_rt", "realtime", 60, NOW)
    client.create_transcription_session.return_value = SessionToken(
        "ek_tr", "transcription", 60, NOW
    )
    client.generate_image.return_value = b"\xff\xd8jpeg"
    return client


@pytest.fixture
def services(app_config, memory_repository, openai_client, clock):
    return build_services(
        app_config,
        repository=memory_repository,
        openai_client=openai_client,
        clock=clock,
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


@pytest.fixture
def provisioned(client):
    """Client for which user1 already exists."""
    assert client.get("/manage", params={"token": MANAGE_TOKEN}).status_code == 200
    return client


def _actions(repository, action):
    return [e.details for e in repository.events if e.action == action]


def _spend_over_limit(client):
    response = client.post("/session", json={
        "mode": "log_usage",
        "token": USER_TOKEN,
        "usage": {"output_token_details": {"audio_tokens": 30_000}},
    })
    assert response.status_code == 200


class TestHealth:
    """Test service endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_unknown_route(self, client):
        """Verify framework errors use the common error body."""
        response = client.get("/nope")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Not Found"
        assert isinstance(body["timestamp"], int)

    def test_lifespan_initializes_schema(self, services):
        """Verify the schema is created on startup."""
        services.repository = Mock(wraps=services.repository)
        with TestClient(create_app(services=services)) as client:
            assert client.get("/health").status_code == 200
        services.repository.initialize_schema.assert_called_once()

    def test_cors(self, client):
        response = client.get("/health", headers={"Origin": "https://client.example"})
        assert response.headers["access-control-allow-origin"] == "*"


class TestManage:
    """Test the management endpoint."""

    def test_missing_token(self, client):
        response = client.get("/manage")
        assert response.status_code == 400
        assert response.json()["error"] == "Token required"

    def test_user_token_rejected(self, client, memory_repository):
        response = client.get("/manage", params={"token": USER_TOKEN})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"
        assert memory_repository.users == {}

    def test_first_access_creates_user(self, client):
        """Verify the first access provisions the account and returns the user URL."""
        response = client.get("/manage", params={"token": MANAGE_TOKEN})
        assert response.status_code == 200
        body = response.json()
        assert body["created"] is True
        assert body["uniqueId"] == "user1"
        assert body["userToken"] == USER_TOKEN
        assert body["userUrl"].startswith("https://example.com/app/?token=user1%3A")
        assert body["config"] == {
            "showTranscription": True,
            "showParalanguage": True,
            "showImage": True,
        }

        second = client.get("/manage", params={"token": MANAGE_TOKEN}).json()
        assert second["created"] is False

    def test_update_settings(self, provisioned, memory_repository):
        """Verify omitted flags are saved as unchecked."""
        response = provisioned.post("/manage", json={
            "token": MANAGE_TOKEN,
            "showTranscription": True,
        })
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Configuration saved successfully!",
            "config": {
                "showTranscription": True,
                "showParalanguage": False,
                "showImage": False,
            },
        }
        assert memory_repository.get_user("user1").show_image is False

    def test_weekly_report(self, provisioned):
        """Verify the management view reports weekly cost and words."""
        provisioned.post("/session", json={
            "mode": "log_usage",
            "token": USER_TOKEN,
            "usage": {"input_token_details": {"audio_tokens": 1000}},
            "wordCount": 12,
        })
        body = provisioned.get("/manage", params={"token": MANAGE_TOKEN}).json()
        assert body["weeklyCost"]["audioInputCost"] == pytest.approx(0.04)
        assert body["weeklyWords"]["totalWords"] == 12

    def test_manage_works_over_limit(self, provisioned):
        """Verify management tokens are never spend-limited."""
        _spend_over_limit(provisioned)
        assert provisioned.get("/manage", params={"token": MANAGE_TOKEN}).status_code == 200


class TestLogin:
    """Test ?mode=login."""

    def test_login(self, provisioned, memory_repository):
        response = provisioned.get("/session", params={"mode": "login", "token": USER_TOKEN})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "config": {
                "showTranscription": True,
                "showParalanguage": True,
                "showImage": True,
            },
        }
        assert _actions(memory_repository, UsageAction.LOGIN) == [""]

    def test_login_unknown_user(self, client):
        response = client.get("/session", params={"mode": "login", "token": USER_TOKEN})
        assert response.status_code == 404
        assert response.json()["error"] == "User not found or disabled"

    def test_login_manage_token(self, provisioned):
        response = provisioned.get("/session", params={"mode": "login", "token": MANAGE_TOKEN})
        assert response.status_code == 401

    def test_login_over_limit(self, provisioned):
        """Verify over-cap users are refused with the limit message."""
        _spend_over_limit(provisioned)

        response = provisioned.get("/session", params={"mode": "login", "token": USER_TOKEN})
        assert response.status_code == 429
        body = response.json()
        assert body["success"] is False
        assert body["error"] == (
            "Weekly cost limit of $2.00 exceeded. Current spend: $2.4000"
        )

    def test_limit_lifts_after_a_week(self, provisioned, clock):
        """Verify the sliding window releases the user."""
        _spend_over_limit(provisioned)
        clock.advance(7 * 24 * 60 * 60 + 1)

        response = provisioned.get("/session", params={"mode": "login", "token": USER_TOKEN})
        assert response.status_code == 200


class TestLogUsage:
    """Test the log_usage POST."""

    def test_log_usage(self, client, memory_repository):
        response = client.post("/session", json={
            "mode": "log_usage",
            "token": USER_TOKEN,
            "usage": {"total_tokens": 50},
            "wordCount": 7,
        })
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert memory_repository.token_records[0].usage.total_tokens == 50
        assert _actions(memory_repository, UsageAction.TRANSCRIPTION) == ["7"]

    def test_missing_usage(self, client):
        response = client.post("/session", json={"mode": "log_usage", "token": USER_TOKEN})
        assert response.status_code == 400
        assert response.json()["error"] == "Usage data required"

    def test_missing_token(self, client):
        response = client.post("/session", json={"mode": "log_usage", "usage": {"a": 1}})
        assert response.status_code == 400
        assert response.json()["error"] == "Token required"

    def test_invalid_token(self, client):
        response = client.post("/session", json={
            "mode": "log_usage",
            "token": "user1:bad",
            "usage": {"total_tokens": 1},
        })
        assert response.status_code == 401

    def test_non_integer_word_count(self, client, memory_repository):
        """Test a badly typed field gets the standard error body."""
        response = client.post("/session", json={
            "mode": "log_usage",
            "token": USER_TOKEN,
            "usage": {"total_tokens": 1},
            "wordCount": "many",
        })
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("Invalid request: wordCount")
        assert isinstance(body["timestamp"], int)
        assert memory_repository.token_records == []

    def test_malformed_json(self, client):
        response = client.post(
            "/session",
            content=b'{"mode": "log_usage",',
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_huge_token_count(self, client, memory_repository):
        """Test a count too large for an integer is stored as 0."""
        body = (f'{{"mode": "log_usage", "token": "{USER_TOKEN}", '
                f'"usage": {{"total_tokens": 1e400, "input_tokens": 3}}}}')
        response = client.post(
            "/session",
            content=body.encode(),
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 200
        usage = memory_repository.token_records[0].usage
        assert usage.total_tokens == 0
        assert usage.input_tokens == 3


class TestSession:
    """Test ephemeral session creation."""

    def test_default_model(self, client, openai_client):
        response = client.get("/session")
        assert response.status_code == 200
        assert response.json() == {
            "session_token": "ek_rt",
            "session_type": "realtime",
            "expires_in": 60,
            "generated_at": NOW,
        }
        openai_client.create_realtime_session.assert_called_once_with(DEFAULT_MODEL)

    def test_signed_model(self, client, openai_client):
        signed = sign_model_name("gpt-4o-mini-realtime-preview", SECRET)
        response = client.post("/session", json={"model": signed})
        assert response.status_code == 200
        openai_client.create_realtime_session.assert_called_once_with(
            "gpt-4o-mini-realtime-preview"
        )

    def test_transcription_model(self, client, openai_client):
        """Verify the transcription model opens a transcription session."""
        signed = sign_model_name(TRANSCRIPTION_MODEL, SECRET)
        response = client.get("/session", params={"model": signed})
        assert response.status_code == 200
        assert response.json()["session_type"] == "transcription"
        openai_client.create_realtime_session.assert_not_called()

    def test_post_without_body(self, client, openai_client):
        assert client.post("/session").status_code == 200
        openai_client.create_realtime_session.assert_called_once_with(DEFAULT_MODEL)

    def test_invalid_signed_model(self, client, openai_client):
        response = client.get("/session", params={"model": "gpt-4o-realtime-preview.bad"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid signed model"
        openai_client.create_realtime_session.assert_not_called()

    def test_upstream_failure(self, client, openai_client):
        openai_client.create_realtime_session.side_effect = UpstreamServiceError(
            "OpenAI API error (HTTP 401): Incorrect API key provided", upstream_status=401
        )
        response = client.get("/session")
        assert response.status_code == 500
        assert response.json()["error"] == "OpenAI API error (HTTP 401): Incorrect API key provided"

    def test_unexpected_error(self, services, openai_client):
        """Verify unhandled errors become a generic 500."""
        openai_client.create_realtime_session.side_effect = RuntimeError("boom")
        client = TestClient(create_app(services=services), raise_server_exceptions=False)

        response = client.get("/session")
        assert response.status_code == 500
        assert response.json()["error"] == "Internal Server Error"


class TestGenerateImage:
    """Test pictogram generation."""

    def test_generate_image(self, provisioned, openai_client, memory_repository):
        """Verify the JPEG is returned and billed as a picture event."""
        response = provisioned.get("/generate_image",
                                   params={"token": USER_TOKEN, "description": " a cat "})
        assert response.status_code == 200
        assert response.content == b"\xff\xd8jpeg"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["cache-control"] == "max-age=3600"
        openai_client.generate_image.assert_called_once_with("a cat")
        assert _actions(memory_repository, UsageAction.PICTURE) == ["a cat"]

    def test_post(self, provisioned):
        response = provisioned.post("/generate_image",
                                    json={"token": USER_TOKEN, "description": "a dog"})
        assert response.status_code == 200

    def test_missing_description(self, provisioned, openai_client):
        response = provisioned.get("/generate_image", params={"token": USER_TOKEN})
        assert response.status_code == 400
        assert response.json()["error"] == "Description parameter is required"
        openai_client.generate_image.assert_not_called()

    def test_images_disabled(self, provisioned, openai_client):
        provisioned.post("/manage", json={"token": MANAGE_TOKEN, "showTranscription": True})
        response = provisioned.get("/generate_image",
                                   params={"token": USER_TOKEN, "description": "a cat"})
        assert response.status_code == 403
        openai_client.generate_image.assert_not_called()

    def test_failed_generation_is_not_billed(self, provisioned, openai_client, memory_repository):
        openai_client.generate_image.side_effect = UpstreamServiceError("No image data in response")
        response = provisioned.get("/generate_image",
                                   params={"token": USER_TOKEN, "description": "a cat"})
        assert response.status_code == 500
        assert _actions(memory_repository, UsageAction.PICTURE) == []

    def test_over_limit(self, provisioned, openai_client):
        _spend_over_limit(provisioned)
        response = provisioned.get("/generate_image",
                                   params={"token": USER_TOKEN, "description": "a cat"})
        assert response.status_code == 429
        openai_client.generate_image.assert_not_called()
