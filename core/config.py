"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
directly. The core auth classes (AuthEngine, TokenIssuer, SessionRegistry) never
call get_settings() themselves: they receive a Settings instance through their
constructors, so tests can build one with fixed secrets and short work factors.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call. Only the application edge (api/main.py, api/limiter.py) uses it.

  @model_validator(mode="after"): cross-field validation after all fields are
      resolved. Enforces the signing-secret policy described below.

Security notes:
  Two signing secrets. JWT_SECRET signs access tokens, JWT_REFRESH_SECRET signs
  refresh tokens. They must differ: a leaked access secret must not let an
  attacker mint refresh tokens.

  Secrets shorter than 32 chars are rejected. In production mode (DEBUG not
  set) a missing secret is a hard startup failure; in dev mode a random one is
  generated with a warning.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tenantauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'tenantauth.db'}"

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be built in tests without a
    real .env file. Field names map to upper-case env vars (jwt_secret ->
    JWT_SECRET).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    # Empty string is the "not configured" sentinel; the validator either
    # generates a dev secret or raises.
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""

    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Sessions and passwords
    # ------------------------------------------------------------------

    # Absolute lifetime of a refresh lineage. Rotation never extends it.
    session_absolute_ttl_seconds: int = 7 * 24 * 3600
    password_reset_ttl_seconds: int = 30 * 60
    bcrypt_rounds: int = 12
    revoke_sessions_on_password_reset: bool = True

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    starter_plan: str = "FREE"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy.

        Dev mode (DEBUG=true): missing secrets are generated at random. Tokens
            will not survive a restart, which is fine for local work.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject short secrets and reject a shared secret for the
            two token categories.
        """
        for name in ("jwt_secret", "jwt_refresh_secret"):
            if getattr(self, name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Issued tokens will not survive a restart.", name.upper())
        if len(self.jwt_secret) < _MIN_SECRET_LENGTH or len(self.jwt_refresh_secret) < _MIN_SECRET_LENGTH:
            raise ValueError(f"JWT secrets must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different.")
        if self.access_token_ttl_seconds <= 0 or self.refresh_token_ttl_seconds <= 0:
            raise ValueError("Token TTLs must be positive.")
        if self.session_absolute_ttl_seconds <= 0:
            raise ValueError("SESSION_ABSOLUTE_TTL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() if you need to inject different
    environment variables.
    """
    return Settings()
