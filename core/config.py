"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenRotor happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Complex fields (AUTH_USERS,
      ADMIN_USERNAMES, CORS_ORIGINS) are parsed from JSON.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Dev mode generates a signing key with a warning,
      production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Access token
  signatures and refresh token fingerprints both rely on key entropy.

  The refresh token lifetime defaults to 7 days. The access token lifetime
  defaults to 15 minutes. Access tokens are stateless and cannot
  be revoked before they expire.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokenrotor.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (as long as DEBUG=true).
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    jwt_issuer: str = "tokenrotor"
    jwt_audience: str = "tokenrotor-clients"
    access_token_expire_minutes: float = Field(default=15, gt=0)
    refresh_token_expire_days: float = Field(default=7, gt=0)

    # ------------------------------------------------------------------
    # Refresh store
    # ------------------------------------------------------------------

    refresh_store_stripes: int = Field(default=16, ge=1)
    purge_interval_seconds: int = Field(default=3600, gt=0)

    # ------------------------------------------------------------------
    # Users (upstream password check)
    # ------------------------------------------------------------------

    # username -> bcrypt hash. Generate hashes with `python main.py hash-password`.
    auth_users: dict[str, str] = Field(default_factory=dict)
    # Usernames allowed to call POST /auth/revoke-all.
    admin_usernames: list[str] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost"])

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Access tokens and refresh tokens will not survive restart --
            acceptable for local dev (refresh state is in memory anyway).

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
