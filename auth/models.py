"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, service and routes do the work.

Layer rule: no imports from api/, notify/, or core/.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

# Reset tickets are not configurable: one hour from issuance.
RESET_TICKET_TTL = timedelta(hours=1)
DEFAULT_TOKEN_TTL = timedelta(days=30)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """Fixed-width ISO 8601 in UTC so stored timestamps sort as strings."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass
class User:
    """An identity record.

    hashed_password is None for a "pending" account (created without a usable
    password, e.g. mid-invite). Such a user cannot log in; the service treats
    the missing hash as a data-integrity fault rather than bad credentials.

    created_at is an ISO 8601 UTC string set by the store on insert.
    """

    email: str
    role: Role = Role.USER
    id: str | None = None
    hashed_password: str | None = None
    created_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.hashed_password is not None


@dataclass
class ResetTicket:
    """A single-use, expiring password reset capability.

    token is a bearer secret: anyone holding it can set the owner's password
    until expires_at, exactly once.
    """

    token: str
    user_id: str
    expires_at: str  # ISO 8601 UTC
    used: bool = False
    id: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Claim:
    """The identity carried inside a signed token.

    token_id (the JWT "jti") is unique per issued token. Nothing consults it
    today; a revocation denylist would key on it.
    """

    user_id: str
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class AuthConfig:
    """Everything the token codec and auth service need from configuration.

    Built once from core.config.Settings at startup (see from_settings) and
    passed in at construction. Tests build it directly with a fixed secret
    and a frozen clock.
    """

    secret: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    reset_ttl: timedelta = RESET_TICKET_TTL
    clock: Callable[[], datetime] = field(default=utc_now)

    @classmethod
    def from_settings(cls, settings) -> AuthConfig:
        return cls(
            secret=settings.jwt_secret,
            token_ttl=timedelta(seconds=settings.token_ttl_seconds),
        )


@dataclass
class AuthResult:
    """What register, login, complete-reset and impersonation hand back."""

    user: User
    token: str


@dataclass
class SessionCheck:
    """Outcome of verify-session.

    reason is for logs only ("ok", "invalid_token", "expired_token",
    "user_missing"). Callers outside the service only see is_authed.
    """

    is_authed: bool
    reason: str
    user: User | None = None
    token: str | None = None
