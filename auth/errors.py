"""
auth/errors.py -- Typed error taxonomy for the auth service.

The service raises these; api/main.py maps each one to a stable machine code
and HTTP status via AuthError.code / AuthError.status_code. Nothing in auth/
knows about HTTP beyond those two class attributes.

TokenError is deliberately not an AuthError. The codec raises InvalidToken /
ExpiredToken internally and the service collapses them (to Unauthenticated or
to a negative session check) before anything reaches the transport.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors surfaced at the service boundary."""

    code = "auth_error"
    status_code = 400
    default_message = "Authentication error."

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        self.message = message or self.default_message
        # Internal cause for logging. Never rendered to clients.
        self.reason = reason
        super().__init__(self.message)


class Conflict(AuthError):
    code = "conflict"
    status_code = 409
    default_message = "User with this email already exists"


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "User not found"


class Unauthorized(AuthError):
    """Bad credentials."""

    code = "unauthorized"
    status_code = 401
    default_message = "Invalid password"


class Unauthenticated(AuthError):
    """No valid session claim on a request that needs one."""

    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "Insufficient role."


class InvalidOrExpired(AuthError):
    """Reset ticket unknown, already used, or past expiry -- never says which."""

    code = "invalid_or_expired"
    status_code = 400
    default_message = "Invalid or expired reset token"


class ServerError(AuthError):
    """Data-integrity fault, e.g. a user row without a password hash."""

    code = "server_error"
    status_code = 500
    default_message = "User account is not properly configured"


class BadRequest(AuthError):
    """Input failed shape validation. fields holds per-field messages."""

    code = "bad_request"
    status_code = 400
    default_message = "Invalid request."

    def __init__(self, message: str | None = None, *, fields: list[dict] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


# ---------------------------------------------------------------------------
# Token codec internals
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Raised by TokenCodec.verify(). Collapsed before reaching the transport."""


class InvalidToken(TokenError):
    """Malformed, wrong signature, missing claims, or no secret configured."""


class ExpiredToken(TokenError):
    """Signature valid but the embedded expiry has passed."""
