"""
Error taxonomy for the proxy.

Every failure that ends a request carries the HTTP status it maps to.
"""

from decimal import Decimal
from typing import Optional


class ProxyError(Exception):
    """Base class for request-terminating failures."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class TokenRequired(ProxyError):
    status_code = 400

    def __init__(self, message: str = "Token required"):
        super().__init__(message)


class InvalidToken(ProxyError):
    """Raised for any malformed or wrongly signed token.

    The message never reveals which part of the token failed.
    """
    status_code = 401

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class WeeklyLimitExceeded(ProxyError):
    """Raised when a user token's trailing 7-day spend reached the cap."""
    status_code = 429

    def __init__(self, spend: Decimal, cap: Decimal):
        super().__init__(format_limit_message(spend, cap))
        self.spend = spend
        self.cap = cap


class UserNotFound(ProxyError):
    status_code = 404

    def __init__(self, message: str = "User not found or disabled"):
        super().__init__(message)


class FeatureDisabled(ProxyError):
    status_code = 403


class BadRequest(ProxyError):
    status_code = 400


class LedgerWriteError(ProxyError):
    status_code = 500


class UpstreamServiceError(ProxyError):
    """Raised when the OpenAI API call fails.

    ``upstream_status`` is the HTTP status returned by OpenAI, or None when
    no response was received. The proxy itself always answers with 500.
    """

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


def format_limit_message(spend: Decimal, cap: Decimal) -> str:
    return (
        f"Weekly cost limit of ${cap:.2f} exceeded. "
        f"Current spend: ${spend:.4f}"
    )
