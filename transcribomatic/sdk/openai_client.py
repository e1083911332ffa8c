"""
OpenAI client wrapper.

Creates ephemeral realtime/transcription sessions and generates pictograms.
Calls are made once: retries are disabled and any failure is surfaced as
an UpstreamServiceError.
"""

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI, OpenAIError

from ..core.errors import UpstreamServiceError
from ..core.tokens import TRANSCRIPTION_MODEL

REALTIME_HEADERS = {"OpenAI-Beta": "realtime=v1"}
SESSION_EXPIRES_IN = 60

IMAGE_MODEL = "gpt-image-1"
IMAGE_PROMPT_PREFIX = (
    "DO NOT INCLUDE ANY TEXT. Simple black and white PICTOGRAM to convey the message: "
)

TRANSCRIPTION_SESSION = {
    "input_audio_format": "pcm16",
    "input_audio_transcription": {
        "model": TRANSCRIPTION_MODEL,
        "language": "en",
        "prompt": "Transcribe speech accurately, including proper punctuation and capitalization.",
    },
    "turn_detection": {
        "type": "server_vad",
        "threshold": 0.6,
        "prefix_padding_ms": 300,
        "silence_duration_ms": 800,
    },
}


@dataclass(frozen=True)
class SessionToken:
    """Ephemeral client secret handed to the browser."""
    value: str
    session_type: str
    expires_in: int
    generated_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_token": self.value,
            "session_type": self.session_type,
            "expires_in": self.expires_in,
            "generated_at": self.generated_at,
        }


def _error_message(error: APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return error.message or "Unknown API error"


class RealtimeOpenAI:
    """Thin wrapper over the OpenAI SDK for the three proxied calls."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        organization: Optional[str] = None,
        project: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI API key (the SDK falls back to OPENAI_API_KEY)
            organization: Optional OpenAI-Organization header value
            project: Optional OpenAI-Project header value
            timeout: Request timeout in seconds
            client: Pre-built SDK client, mainly for tests
        """
        self.api_key = api_key
        self.organization = organization
        self.project = project
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> OpenAI:
        """SDK client, built on first use and reused afterwards."""
        if self._client is None:
            try:
                self._client = OpenAI(
                    api_key=self.api_key,
                    organization=self.organization,
                    project=self.project,
                    timeout=self.timeout,
                    max_retries=0,
                )
            except OpenAIError as e:
                raise UpstreamServiceError(f"OpenAI client not configured: {e}") from e
        return self._client

    def _post_session(self, path: str, body: Dict[str, Any], session_type: str) -> SessionToken:
        try:
            response = self.client.post(
                path,
                body=body,
                cast_to=httpx.Response,
                options={"headers": REALTIME_HEADERS},
            )
        except APIStatusError as e:
            raise UpstreamServiceError(
                f"OpenAI API error (HTTP {e.status_code}): {_error_message(e)}",
                upstream_status=e.status_code,
            ) from e
        except APIConnectionError as e:
            raise UpstreamServiceError(f"OpenAI connection error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamServiceError(
                f"Invalid JSON response from {path}", upstream_status=response.status_code
            ) from e

        secret = data.get("client_secret") if isinstance(data, dict) else None
        value = secret.get("value") if isinstance(secret, dict) else None
        if not value:
            raise UpstreamServiceError(
                f"No client_secret found in {session_type} session response",
                upstream_status=response.status_code,
            )

        return SessionToken(
            value=value,
            session_type=session_type,
            expires_in=SESSION_EXPIRES_IN,
            generated_at=int(time.time()),
        )

    def create_realtime_session(self, model: str) -> SessionToken:
        """Create a realtime voice session for an allow-listed model."""
        return self._post_session(
            "/realtime/sessions",
            {"model": model, "voice": "alloy"},
            session_type="realtime",
        )

    def create_transcription_session(self) -> SessionToken:
        return self._post_session(
            "/realtime/transcription_sessions",
            TRANSCRIPTION_SESSION,
            session_type="transcription",
        )

    def generate_image(self, description: str) -> bytes:
        """Generate a low-quality JPEG pictogram illustrating ``description``.

        Returns:
            Raw JPEG bytes

        Raises:
            UpstreamServiceError: If the call fails or returns no image
        """
        try:
            result = self.client.images.generate(
                model=IMAGE_MODEL,
                prompt=IMAGE_PROMPT_PREFIX + description,
                quality="low",
                output_compression=50,
                output_format="jpeg",
                n=1,
                size="1024x1024",
            )
        except APIStatusError as e:
            raise UpstreamServiceError(
                f"OpenAI API error (HTTP {e.status_code}): {_error_message(e)}",
                upstream_status=e.status_code,
            ) from e
        except APIConnectionError as e:
            raise UpstreamServiceError(f"OpenAI connection error: {e}") from e

        data = getattr(result, "data", None) or []
        b64_json = getattr(data[0], "b64_json", None) if data else None
        if not b64_json:
            raise UpstreamServiceError("No image data in response")

        try:
            return base64.b64decode(b64_json)
        except (binascii.Error, ValueError) as e:
            raise UpstreamServiceError("Invalid image data in response") from e
