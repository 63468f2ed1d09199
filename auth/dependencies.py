"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Auth transport: Authorization: Bearer <token>. Nothing else is consulted.

try_get_claim() is the soft variant: a missing, malformed, expired or forged
token yields None (logged, never raised). Public operations use it.
require_claim() wraps it and raises Unauthenticated if there is no claim.
require_role() builds a dependency that also runs the role gate.

The raised errors are auth.errors types; api/main.py renders them.

Layer rule: no imports from api/ or notify/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request

from auth.errors import TokenError, Unauthenticated
from auth.models import Claim, Role
from auth.service import role_gate

logger = logging.getLogger("starter.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_claim(request: Request) -> Claim | None:
    """Decode the bearer token on the request. Returns None on any failure."""
    token = _bearer_token(request)
    if not token:
        return None
    try:
        return request.app.state.auth_service.codec.verify(token)
    except TokenError as e:
        logger.warning("Ignoring bearer token on %s: %s", request.url.path, e)
        return None


def require_claim(request: Request) -> Claim:
    """Require authentication. Raises Unauthenticated if the request has no valid token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claim: Claim = Depends(require_claim)): ...
    """
    claim = try_get_claim(request)
    if claim is None:
        raise Unauthenticated()
    return claim


def require_role(required: Role, message: str | None = None) -> Callable[[Request], Claim]:
    """Return a dependency that admits only claims with the required role.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(claim: Claim = Depends(require_role(Role.ADMIN))): ...
    """

    def dependency(request: Request) -> Claim:
        return role_gate(required, try_get_claim(request), message)

    return dependency
