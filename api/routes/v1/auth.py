"""
api/routes/v1/auth.py -- RPC-style authentication and user endpoints.

Mounted under /trpc. One path per operation, named after the operation:
  POST /trpc/register               -- create USER account; returns {user, token}
  POST /trpc/login                  -- password login; returns {user, token}
  POST /trpc/verifyLocalToken       -- re-check a cached token; never errors
  POST /trpc/requestPasswordReset   -- always {success: true}
  POST /trpc/resetPassword          -- redeem reset ticket; returns {user, token}
  GET  /trpc/me                     -- current user (requires auth)
  GET  /trpc/listAllUsers           -- every user, oldest first (admin only)
  POST /trpc/adminLoginAs           -- token for another user (admin only)
  GET  /trpc/getEmailTemplates      -- rendered email previews (admin only)

Handlers are plain def, not async def: FastAPI runs them in its thread pool,
which keeps bcrypt off the event loop.

Responses that carry a token set Cache-Control: no-store.

Errors are raised as auth.errors types and rendered by api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AuthResponse,
    CredentialsRequest,
    EmailTemplateResponse,
    LoginAsRequest,
    PasswordResetRequest,
    ResetPasswordRequest,
    SessionResponse,
    SuccessResponse,
    UserResponse,
    VerifyTokenRequest,
)
from auth.dependencies import require_claim, require_role, try_get_claim
from auth.models import AuthResult, Claim, Role
from auth.service import AuthService

# Auth policy:
# - register, login, verifyLocalToken,
#   requestPasswordReset, resetPassword:  public
# - me:                                   requires auth (require_claim)
# - listAllUsers, getEmailTemplates:      requires ADMIN (require_role)
# - adminLoginAs:                         requires ADMIN (AuthService.impersonate runs the gate)
router = APIRouter()

_admin_list_users = require_role(Role.ADMIN, "Only admins can list all users")
_admin_email_templates = require_role(Role.ADMIN, "Only admins can view email templates")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _auth_response(response: Response, result: AuthResult) -> AuthResponse:
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(user=UserResponse.from_user(result.user), token=result.token)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=AuthResponse)
def register(request: Request, response: Response, body: CredentialsRequest) -> AuthResponse:
    """Create a USER account. 409 conflict if the email is already registered."""
    result = _service(request).register(body.email, body.password)
    return _auth_response(response, result)


@router.post("/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: CredentialsRequest) -> AuthResponse:
    """Authenticate with email and password.

    404 for an unknown email, 401 for a wrong password, 500 for an account
    without a password hash.
    """
    result = _service(request).login(body.email, body.password)
    return _auth_response(response, result)


@router.post("/verifyLocalToken", response_model=SessionResponse)
def verify_local_token(request: Request, response: Response, body: VerifyTokenRequest) -> SessionResponse:
    """Report whether a client-held token is still good, refreshing it if so.

    Always 200. Expired, forged and orphaned tokens all look the same here:
    {isAuthed: false, user: null, token: null}.
    """
    check = _service(request).verify_session(body.token)
    response.headers["Cache-Control"] = "no-store"
    if not check.is_authed:
        return SessionResponse(is_authed=False)
    return SessionResponse(is_authed=True, user=UserResponse.from_user(check.user), token=check.token)


@router.post("/requestPasswordReset", response_model=SuccessResponse)
def request_password_reset(request: Request, body: PasswordResetRequest) -> SuccessResponse:
    """Start the forgot-password flow. Same answer whether or not the email exists."""
    _service(request).request_reset(body.email)
    return SuccessResponse()


@router.post("/resetPassword", response_model=AuthResponse)
def reset_password(request: Request, response: Response, body: ResetPasswordRequest) -> AuthResponse:
    """Set a new password with a reset ticket. 400 invalid_or_expired if it cannot be redeemed."""
    result = _service(request).complete_reset(body.token, body.password)
    return _auth_response(response, result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
def me(request: Request, claim: Claim = Depends(require_claim)) -> UserResponse:
    """Return the current user as stored (not as remembered by the token)."""
    return UserResponse.from_user(_service(request).current_user(claim))


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/listAllUsers", response_model=list[UserResponse])
def list_all_users(request: Request, claim: Claim = Depends(_admin_list_users)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).list_users()]


@router.post("/adminLoginAs", response_model=AuthResponse)
def admin_login_as(request: Request, response: Response, body: LoginAsRequest) -> AuthResponse:
    """Issue a token for another user. The role gate runs inside the service."""
    result = _service(request).impersonate(body.user_id, try_get_claim(request))
    return _auth_response(response, result)


@router.get("/getEmailTemplates", response_model=list[EmailTemplateResponse])
def get_email_templates(
    request: Request,
    agency_logo: Optional[str] = Query(default=None, alias="agencyLogo", max_length=2048),
    agency_name: Optional[str] = Query(default=None, alias="agencyName", max_length=255),
    claim: Claim = Depends(_admin_email_templates),
) -> list[EmailTemplateResponse]:
    """Render each user-facing email with sample data for the admin preview page."""
    renderer = request.app.state.mailer.renderer
    return [EmailTemplateResponse(**t) for t in renderer.previews(agency_logo, agency_name)]
