"""
auth/service.py -- Auth service: register, login, session check, password reset,
role gate, and admin impersonation.

The service is transport-agnostic. It raises auth.errors types and returns
auth.models dataclasses; api/ turns both into HTTP. All configuration comes in
through the constructor (AuthConfig), including the clock.

Blocking work: every method that hashes or verifies a password spends real
CPU time in bcrypt. The API layer calls these from sync route handlers, which
FastAPI runs in its worker thread pool, so the event loop is never blocked.

Collapsed failures: verify_session() and complete_reset() hide *why* they
failed from callers. The cause is still worked out and logged (SessionCheck
.reason, InvalidOrExpired.reason) so operators can tell expiry from forgery.

Notifications are sent only after the relevant write has committed, through
the Mailer, and never affect the outcome of the operation.

Layer rule: no imports from api/ or notify/ (Mailer is a type-only import).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    Conflict,
    ExpiredToken,
    Forbidden,
    InvalidOrExpired,
    InvalidToken,
    NotFound,
    ServerError,
    Unauthenticated,
    Unauthorized,
)
from auth.models import AuthConfig, AuthResult, Claim, ResetTicket, Role, SessionCheck, User, isoformat_utc
from auth.store import UserStore
from auth.tokens import TokenCodec, burn_password_check, generate_reset_token, hash_password, verify_password

if TYPE_CHECKING:
    from notify.mailer import Mailer

logger = logging.getLogger("starter.auth")


# ---------------------------------------------------------------------------
# Role gate
# ---------------------------------------------------------------------------


def role_gate(required: Role, claim: Claim | None, message: str | None = None) -> Claim:
    """Admit claim if it exists and carries the required role.

    Raises Unauthenticated when there is no claim and Forbidden when the role
    does not match. Pure check, no side effects.
    """
    if claim is None:
        raise Unauthenticated()
    if claim.role != required:
        raise Forbidden(message)
    return claim


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    """Orchestrates the store, token codec, password hashing and mailer.

    Usage:
        service = AuthService(store, TokenCodec(config), config, mailer)
        result = service.register("a@x.com", "pw1")
        service.verify_session(result.token).is_authed   # True
    """

    def __init__(
        self,
        store: UserStore,
        codec: TokenCodec,
        config: AuthConfig,
        mailer: Mailer | None = None,
    ) -> None:
        self.store = store
        self.codec = codec
        self.config = config
        self.mailer = mailer

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> AuthResult:
        """Create a USER account and sign a token for it.

        Raises Conflict if the email is taken -- checked up front and again by
        the UNIQUE constraint, which catches the concurrent-registration race.
        """
        if self.store.get_by_email(email) is not None:
            raise Conflict()
        hashed = hash_password(password)
        try:
            user = self.store.create_user(
                User(email=email, role=Role.USER, hashed_password=hashed, created_at=self._now_iso())
            )
        except IntegrityError:
            raise Conflict() from None
        logger.info("Registered user %s", user.id)

        token = self.codec.issue(user)
        self._notify("welcome", lambda m: m.send_welcome(user.email))
        self._notify("new user", lambda m: m.notify_new_user(user.email))
        return AuthResult(user=user, token=token)

    def login(self, email: str, password: str) -> AuthResult:
        """Check credentials and sign a fresh token.

        Raises:
            NotFound:     no user with this email.
            ServerError:  the user has no password hash (pending account).
            Unauthorized: wrong password.
        """
        user = self.store.get_by_email(email)
        if user is None:
            # Same bcrypt cost as a real check so timing does not give it away.
            burn_password_check(password)
            logger.info("Login failed: unknown email")
            raise NotFound()
        if not user.hashed_password:
            logger.error("User %s has no password hash; refusing login", user.id)
            raise ServerError()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed for user %s: bad password", user.id)
            raise Unauthorized()
        logger.info("User %s logged in", user.id)
        return AuthResult(user=user, token=self.codec.issue(user))

    def verify_session(self, token: str) -> SessionCheck:
        """Re-validate a token held by a client and refresh it.

        Never raises. Every failure, whatever the cause, comes back as a
        negative SessionCheck; only its reason (logged here) says why.
        """
        try:
            claim = self.codec.verify(token)
        except ExpiredToken:
            return self._session_denied("expired_token")
        except InvalidToken:
            return self._session_denied("invalid_token")

        try:
            user = self.store.get_by_id(claim.user_id)
        except SQLAlchemyError:
            logger.exception("Session check could not load user %s", claim.user_id)
            return self._session_denied("lookup_failed")
        if user is None:
            return self._session_denied("user_missing")
        return SessionCheck(is_authed=True, reason="ok", user=user, token=self.codec.issue(user))

    def request_reset(self, email: str) -> None:
        """Create a reset ticket for email, if it belongs to a user, and mail it.

        Returns nothing either way. Callers must answer identically whether or
        not the email is registered.
        """
        user = self.store.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for an unregistered email")
            return
        now = self.config.clock()
        code = generate_reset_token()
        self.store.create_reset_ticket(
            ResetTicket(
                token=code,
                user_id=user.id,
                expires_at=isoformat_utc(now + self.config.reset_ttl),
                created_at=isoformat_utc(now),
            )
        )
        logger.info("Reset ticket issued for user %s", user.id)
        self._notify("password reset", lambda m: m.send_password_reset(email, code))

    def complete_reset(self, ticket_token: str, new_password: str) -> AuthResult:
        """Redeem a reset ticket: set the new password and burn the ticket.

        Both writes happen in one transaction (UserStore.redeem_reset_ticket).
        Raises InvalidOrExpired for an unknown, used or expired ticket.
        """
        now = self.config.clock()
        hashed = hash_password(new_password)
        user_id = self.store.redeem_reset_ticket(ticket_token, hashed, isoformat_utc(now))
        if user_id is None:
            reason = self._classify_ticket(ticket_token, now)
            logger.info("Password reset rejected (%s)", reason)
            raise InvalidOrExpired(reason=reason)

        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        logger.info("Password reset completed for user %s", user.id)
        return AuthResult(user=user, token=self.codec.issue(user))

    def current_user(self, claim: Claim) -> User:
        """Load the user a claim refers to. Raises NotFound if it is gone."""
        user = self.store.get_by_id(claim.user_id)
        if user is None:
            raise NotFound()
        return user

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def impersonate(self, target_user_id: str, claim: Claim | None) -> AuthResult:
        """Sign a token carrying another user's identity. ADMIN only.

        No audit record is written for impersonation. Production deployments
        should persist one here (who, as whom, when).
        """
        admin = role_gate(Role.ADMIN, claim, "Only admins can use this feature")
        user = self.store.get_by_id(target_user_id)
        if user is None:
            raise NotFound()
        logger.info("Admin %s signed in as user %s", admin.user_id, user.id)
        return AuthResult(user=user, token=self.codec.issue(user))

    def ensure_user(self, email: str, password: str, role: Role = Role.USER) -> tuple[User, bool]:
        """Create the user if the email is free. Returns (user, created).

        Used by the seed commands; an existing account is left untouched.
        """
        existing = self.store.get_by_email(email)
        if existing is not None:
            return existing, False
        user = self.store.create_user(
            User(email=email, role=role, hashed_password=hash_password(password), created_at=self._now_iso())
        )
        logger.info("Seeded %s user %s", user.role.value, user.email)
        return user, True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now_iso(self) -> str:
        return isoformat_utc(self.config.clock())

    def _session_denied(self, reason: str) -> SessionCheck:
        logger.info("Session check failed (%s)", reason)
        return SessionCheck(is_authed=False, reason=reason)

    def _classify_ticket(self, ticket_token: str, now) -> str:
        ticket = self.store.get_reset_ticket(ticket_token)
        if ticket is None:
            return "unknown"
        if ticket.used:
            return "used"
        if ticket.expires_at <= isoformat_utc(now):
            return "expired"
        return "not_redeemable"

    def _notify(self, kind: str, send) -> None:
        if self.mailer is None:
            return
        try:
            send(self.mailer)
        except Exception:
            logger.exception("Could not dispatch %s notification", kind)
