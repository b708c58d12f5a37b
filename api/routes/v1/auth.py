"""
api/routes/v1/auth.py -- Credential lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/login       -- password login; returns a credential pair
  POST /api/v1/auth/refresh     -- exchange a refresh token for a new pair
  POST /api/v1/auth/logout      -- invalidate one refresh token (requires auth)
  POST /api/v1/auth/revoke-all  -- invalidate all of a user's refresh tokens (admin)
  GET  /api/v1/auth/me          -- current identity (requires auth)

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  UserDirectory.authenticate() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries tokens.
  /refresh and /logout return the same invalid_refresh_token error for
  unknown, expired, used and revoked tokens.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    LoginRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RevokeRequest,
    RevokeResponse,
    TokenResponse,
)
from auth.dependencies import get_current_credential, require_admin
from auth.exceptions import InvalidRefreshToken
from auth.manager import CredentialManager
from auth.models import AccessCredential, CredentialPair
from auth.users import UserDirectory

logger = logging.getLogger("tokenrotor.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:       public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/refresh:     public -- the access token may already be expired
# - POST /api/v1/auth/logout:      requires auth (get_current_credential)
# - POST /api/v1/auth/revoke-all:  requires admin (require_admin)
# - GET  /api/v1/auth/me:          requires auth (get_current_credential)
router = APIRouter()

_INVALID_REFRESH = {"code": "invalid_refresh_token", "message": "Invalid refresh token."}


def _token_response(pair: CredentialPair) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse.from_pair(pair).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a new credential pair.

    Returns the same generic error for wrong username and wrong password
    ("bad_credentials") to avoid leaking username existence information.
    """
    users: UserDirectory = request.app.state.users
    manager: CredentialManager = request.app.state.manager

    identity = users.authenticate(body.username, body.password)
    if identity is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    pair = manager.login(identity)
    logger.info("Issued credentials for %s", identity)
    return _token_response(pair)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Rotate a refresh token. The submitted token is unusable afterwards."""
    manager: CredentialManager = request.app.state.manager
    try:
        pair = manager.rotate(body.refresh_token)
    except InvalidRefreshToken:
        raise HTTPException(status_code=401, detail=_INVALID_REFRESH)
    return _token_response(pair)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: RefreshRequest,
    credential: AccessCredential = Depends(get_current_credential),
) -> MessageResponse:
    """Invalidate the given refresh token. No replacement is issued.

    The access token stays valid until it expires; clients should discard it.
    """
    manager: CredentialManager = request.app.state.manager
    try:
        manager.logout(body.refresh_token)
    except InvalidRefreshToken:
        raise HTTPException(status_code=401, detail=_INVALID_REFRESH)
    logger.info("Logged out a session for %s", credential.subject)
    return MessageResponse(message="Logged out.")


@router.post("/auth/revoke-all", response_model=RevokeResponse)
def revoke_all(
    request: Request,
    body: RevokeRequest,
    admin: AccessCredential = Depends(require_admin),
) -> RevokeResponse:
    """Force-logout every session of a user. Idempotent."""
    manager: CredentialManager = request.app.state.manager
    revoked = manager.revoke_all(body.username)
    logger.info("%s revoked all sessions of %s", admin.subject, body.username)
    return RevokeResponse(
        message=f"All sessions of {body.username} have been revoked.",
        revoked=revoked,
    )


@router.get("/auth/me", response_model=MeResponse)
async def me(credential: AccessCredential = Depends(get_current_credential)) -> MeResponse:
    """Return identity information for the bearer of the access token."""
    return MeResponse(
        username=credential.subject,
        token_id=credential.token_id,
        expires_at=credential.expires_at,
    )
