"""
API request and response models for the auth RPC endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (createdAt, isAuthed, userId) to match the SPA
client; Python attribute names stay snake_case via alias_generator.
"""

import re
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Shape check only. Emails are stored and compared exactly as submitted, so
# no normalization (case folding, IDN) happens here.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)

_Password = Annotated[str, Field(min_length=1, max_length=255)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _EmailInput(_CamelModel):
    email: str = Field(max_length=255)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not _EMAIL_RE.fullmatch(value):
            raise ValueError("Invalid email address")
        return value


class CredentialsRequest(_EmailInput):
    """Request body for register and login."""

    password: _Password


class PasswordResetRequest(_EmailInput):
    """Request body for requestPasswordReset."""


class VerifyTokenRequest(_CamelModel):
    token: str


class ResetPasswordRequest(_CamelModel):
    token: str = Field(min_length=1, max_length=128)
    password: _Password


class LoginAsRequest(_CamelModel):
    user_id: str = Field(min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    """Public user shape. The password hash never leaves the service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    email: str
    role: Role
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, role=user.role, created_at=user.created_at or "")


class AuthResponse(_CamelModel):
    user: UserResponse
    token: str


class SessionResponse(_CamelModel):
    is_authed: bool
    user: Optional[UserResponse] = None
    token: Optional[str] = None


class SuccessResponse(_CamelModel):
    success: bool = True


class EmailTemplateResponse(_CamelModel):
    name: str
    params: str
    html: str


class FieldError(BaseModel):
    field: str
    message: str


class ErrorDetail(BaseModel):
    """Inner error object. detail and fields are optional context."""

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[list[FieldError]] = None


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all exception handlers."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]

