"""
Capability tokens and signed model names.

A token is ``unique_id:signature`` where the signature is a hex
HMAC-SHA256 of the unique id keyed with ``secret + context``. Because the
context salts the key, a "manage" token never validates as a "user" token
and vice versa.

Model names are signed the same way with the bare secret and joined with a
dot: ``model.signature``.
"""

import hashlib
import hmac
import math
import secrets
from enum import Enum
from typing import Optional, Union

TOKEN_SEPARATOR = ":"
MODEL_SEPARATOR = "."

DEFAULT_MODEL = "gpt-4o-realtime-preview"
TRANSCRIPTION_MODEL = "gpt-4o-transcribe"

ALLOWED_MODELS = frozenset({
    "gpt-4o-mini-realtime-preview",
    "gpt-4o-realtime-preview-2024-10-01",
    "gpt-4o-realtime-preview-2024-12-17",
    "gpt-4o-realtime-preview",
    "gpt-4o-transcribe",
})


class TokenContext(str, Enum):
    """Scopes a token can be issued for."""
    USER = "user"      # session capability, spend-limited
    MANAGE = "manage"  # account configuration, never spend-limited


def generate_unique_id(length: int = 10) -> str:
    """Generate a random URL-safe identifier of exactly ``length`` chars."""
    if length <= 0:
        raise ValueError("length must be > 0")
    return secrets.token_urlsafe(math.ceil(length * 3 / 4) + 1)[:length]


def _hmac_hex(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _same_signature(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def sign(value: str, context: Union[TokenContext, str], secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``value`` under a context-salted key."""
    context = context.value if isinstance(context, TokenContext) else context
    return _hmac_hex(secret + context, value)


def issue_token(unique_id: str, context: Union[TokenContext, str], secret: str) -> str:
    """Build a ``unique_id:signature`` token for the given context."""
    return f"{unique_id}{TOKEN_SEPARATOR}{sign(unique_id, context, secret)}"


def decode_token(
    token: Optional[str],
    context: Union[TokenContext, str],
    secret: str
) -> Optional[str]:
    """Verify a token and return its unique id.

    Args:
        token: Token presented by the caller, possibly malformed
        context: Context the token must have been issued for
        secret: Signing secret

    Returns:
        The unique id, or None when the token is empty, does not have
        exactly two parts, or carries a wrong signature. Never raises for
        bad input.
    """
    if not token or not isinstance(token, str):
        return None

    parts = token.split(TOKEN_SEPARATOR)
    if len(parts) != 2:
        return None

    unique_id, provided = parts
    if not _same_signature(sign(unique_id, context, secret), provided):
        return None
    return unique_id


def sign_model_name(model: str, secret: str) -> str:
    """Sign an allow-listed model name as ``model.signature``.

    Raises:
        ValueError: If the model is not allow-listed
    """
    if model not in ALLOWED_MODELS:
        raise ValueError(f"Model not allowed: {model}")
    return f"{model}{MODEL_SEPARATOR}{_hmac_hex(secret, model)}"


def verify_model_name(signed_model: Optional[str], secret: str) -> Optional[str]:
    """Return the model name when the signature is valid and the model allowed."""
    if not signed_model or not isinstance(signed_model, str):
        return None

    parts = signed_model.split(MODEL_SEPARATOR)
    if len(parts) != 2:
        return None

    model, provided = parts
    if not _same_signature(_hmac_hex(secret, model), provided):
        return None

    # Signature alone is not enough, the allow-list is checked on every call
    if model not in ALLOWED_MODELS:
        return None
    return model
