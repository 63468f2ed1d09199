"""
auth/tokens.py -- JWT codec, password hashing, and reset token utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id), email, role, iat,
       exp and a random jti. The codec takes its secret, default TTL and clock
       from an AuthConfig at construction -- nothing here reads settings at
       import time, so tests can pin both the secret and "now".

       Expiry is checked against the injected clock rather than jose's own
       wall-clock check (verify_exp is switched off and re-done below). This
       is also how InvalidToken and ExpiredToken are told apart.

       No secret configured: issue() still signs (with a placeholder) so the
       app keeps working end to end, but verify() rejects every token with
       InvalidToken. Nothing crashes; nothing authenticates.

  Passwords: bcrypt directly, cost 10. _DUMMY_HASH enables timing
       equalization in AuthService.login() so response time does not reveal
       whether an email is registered.

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy.

Layer rule: no imports from api/, notify/, or core/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken
from auth.models import AuthConfig, Claim, Role, User

logger = logging.getLogger("starter.auth")

_ALGORITHM = "HS256"
_PLACEHOLDER_SECRET = "MISSING_JWT_SECRET"
_BCRYPT_ROUNDS = 10
# bcrypt only reads the first 72 bytes; newer releases raise instead of truncating.
_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Only the first 72 UTF-8 bytes take part, here and in verify_password, so a
    longer password (the API accepts up to 255 characters) hashes and verifies
    consistently.
    """
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Fails closed: a missing or malformed digest is simply False.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("starter_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification's worth of time and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Reset tokens
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# JWT codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Encode and verify signed, expiring identity claims.

    Usage:
        codec = TokenCodec(AuthConfig(secret="..." * 32))
        token = codec.issue(user)
        claim = codec.verify(token)   # raises InvalidToken / ExpiredToken
    """

    def __init__(self, config: AuthConfig) -> None:
        self._config = config
        self.configured = bool(config.secret)
        self._secret = config.secret or _PLACEHOLDER_SECRET
        if not self.configured:
            logger.warning("TokenCodec running without a signing secret; every token will be rejected")

    def issue(self, user: User, ttl: timedelta | None = None) -> str:
        """Sign a token for user. ttl defaults to the configured token TTL."""
        now = self._config.clock()
        expires = now + (ttl if ttl is not None else self._config.token_ttl)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": Role(user.role).value,
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Claim:
        """Check signature and expiry and return the embedded Claim.

        Raises:
            InvalidToken: bad signature, malformed token, missing or bad
                          claims, or no secret configured.
            ExpiredToken: signature is fine but exp is in the past.
        """
        if not self.configured:
            raise InvalidToken("no signing secret configured")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidToken(str(exc)) from exc

        try:
            claim = Claim(
                user_id=str(payload["sub"]),
                email=str(payload["email"]),
                role=Role(payload["role"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), timezone.utc),
                token_id=str(payload["jti"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken(f"malformed claims: {exc}") from exc

        if self._config.clock() > claim.expires_at:
            raise ExpiredToken(f"token expired at {claim.expires_at.isoformat()}")
        return claim
