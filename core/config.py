"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead, and hand the
values that auth/ needs to it explicitly (see auth.models.AuthConfig).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field rules that run after every field
      is resolved -- JWT_SECRET policy and the environment-dependent log level.

Secret policy:
  A missing JWT_SECRET is NOT a startup failure. The process boots, logs a
  warning, and the token codec refuses to verify anything. Registration and
  login still hand out tokens, they just never authenticate a later request.

  A JWT_SECRET shorter than 32 chars is rejected outright. HS256 relies on key
  entropy -- a short key weakens every token the server signs.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or notify/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("starter.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'starter_auth.db'}"

ENVIRONMENTS = ("development", "staging", "production", "testing", "ci")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "development"
    # Empty string means "not configured". Tokens still get issued but the
    # codec rejects every one of them on the way back in.
    jwt_secret: str = ""
    log_level: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # 30 days. Reset tickets have a fixed one hour lifetime (auth.models).
    token_ttl_seconds: int = 30 * 24 * 60 * 60

    database_url: str = _DEFAULT_DB_URL

    # Seed account; also the recipient of admin notifications.
    admin_email: str = ""
    admin_password: str = ""

    # ------------------------------------------------------------------
    # Client / email
    # ------------------------------------------------------------------

    app_name: str = "SaaS Starter"
    app_url: str = "http://localhost:5173"
    cors_origins: list[str] = ["http://localhost:5173"]

    email_domain: str = "example.com"
    resend_api_key: str = ""
    email_output_dir: str = "test-emails"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("environment")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        env = value.strip().lower()
        if env not in ENVIRONMENTS:
            raise ValueError(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}, got {value!r}.")
        return env

    @model_validator(mode="after")
    def validate_secret_and_logging(self) -> "Settings":
        """Apply the JWT_SECRET policy and resolve the default log level.

        Missing secret: warn and continue (degraded mode, see module docstring).
        Short secret: ValueError -- refuse to sign anything with a weak key.
        LOG_LEVEL unset: WARNING in deployed environments, DEBUG elsewhere.
        """
        if not self.jwt_secret:
            logger.warning("JWT_SECRET is not configured. Issued tokens will fail verification.")
        elif len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if not self.log_level:
            self.log_level = "WARNING" if self.is_deployed else "DEBUG"
        self.log_level = self.log_level.upper()
        return self

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def is_deployed(self) -> bool:
        return self.environment in ("staging", "production")

    @property
    def destructive_ops_allowed(self) -> bool:
        """True where wiping the database is acceptable (never production)."""
        return self.environment in ("development", "staging", "testing", "ci")

    @property
    def writes_email_to_disk(self) -> bool:
        return self.environment in ("testing", "ci")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton.

    lru_cache ensures Settings() is only instantiated once per process.
    Tests that need different settings build Settings(...) directly instead.
    """
    return Settings()
