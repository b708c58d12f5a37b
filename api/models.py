"""
API request and response models for TokenRotor REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import CredentialPair

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # bcrypt only looks at the first 72 bytes.
    password: str = Field(min_length=1, max_length=72)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and /logout."""

    # Generated tokens are 43 chars; the cap just bounds HMAC input.
    refresh_token: str = Field(min_length=1, max_length=512)


class RevokeRequest(BaseModel):
    """Request body for POST /api/v1/auth/revoke-all."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Credential pair returned by login and refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password

    @classmethod
    def from_pair(cls, pair: CredentialPair) -> TokenResponse:
        return cls(
            access_token=pair.access.token,
            refresh_token=pair.refresh_token,
            access_token_expires_at=pair.access_token_expires_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class RevokeResponse(BaseModel):
    """Response for POST /api/v1/auth/revoke-all."""

    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    username: str
    token_id: str
    expires_at: datetime


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
