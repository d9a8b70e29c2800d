"""
Error taxonomy for the developer gateway.

Every error carries a stable machine-readable ``code`` and the HTTP status it
maps to. Messages are user-facing and must never contain credential material.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for the developer gateway."""

    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **extra: Any,
    ):
        self.message = message or self.default_message
        self.headers = headers or {}
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the error envelope used by every response."""
        payload = {"code": self.code, "message": self.message}
        payload.update(self.extra)
        return {"error": payload}


# Authentication


class MissingCredentials(GatewayError):
    code = "missing_credentials"
    status_code = 401
    default_message = (
        "API key and secret are required. Include X-API-Key and X-API-Secret headers."
    )


class MalformedCredential(GatewayError):
    """Key or secret failed format validation; the store was not touched."""

    code = "invalid_format"
    status_code = 401
    default_message = "API key must start with pk_live_ or pk_test_ and secret with sk_live_ or sk_test_"


class InvalidKey(GatewayError):
    code = "invalid_key"
    status_code = 401
    default_message = "API key not found or invalid"


class InvalidSecret(GatewayError):
    code = "invalid_secret"
    status_code = 401
    default_message = "API secret does not match"


class AccountInactive(GatewayError):
    code = "account_inactive"
    status_code = 403
    default_message = "Your API access has been disabled. Contact support."


class InvalidSession(GatewayError):
    code = "invalid_session"
    status_code = 401
    default_message = "Invalid or expired session token"


class AdminRequired(GatewayError):
    code = "admin_required"
    status_code = 403
    default_message = "Administrator privileges required"


# Metering


class QuotaExceeded(GatewayError):
    code = "quota_exceeded"
    status_code = 429
    default_message = "Monthly quota exceeded"


class RateLimited(GatewayError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many requests"


# Lifecycle


class LimitExceeded(GatewayError):
    code = "limit_exceeded"
    status_code = 400
    default_message = "Maximum API keys per user reached. Delete unused keys to create new ones."


class NotFound(GatewayError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ValidationFailed(GatewayError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class InvalidTimeRange(ValidationFailed):
    code = "invalid_time_range"
    default_message = "Unsupported time range"


# Infrastructure


class StoreUnavailable(GatewayError):
    """Backing store unreachable or timed out. Auth and quota treat it as deny."""

    code = "store_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please retry"
