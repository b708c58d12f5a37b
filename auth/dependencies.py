"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as "Authorization: Bearer <token>". Verification is
purely cryptographic (signature + exp); no store lookup is involved.

try_get_current_credential() is the soft variant (returns None on failure).
get_current_credential() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_credential() and raises HTTP 403 unless
the subject is listed in ADMIN_USERNAMES (app.state.admins).

Layer rule: no imports from core/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.exceptions import InvalidCredential
from auth.manager import CredentialManager
from auth.models import AccessCredential


def try_get_current_credential(request: Request) -> AccessCredential | None:
    """Return the verified access credential for the request, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    manager: CredentialManager = request.app.state.manager
    try:
        return manager.verify_access(auth_header[7:])
    except InvalidCredential:
        return None


def get_current_credential(request: Request) -> AccessCredential:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(cred: AccessCredential = Depends(get_current_credential)): ...
    """
    credential = try_get_current_credential(request)
    if credential is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credential


def require_admin(request: Request) -> AccessCredential:
    """Require an admin subject. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    credential = get_current_credential(request)
    if credential.subject not in request.app.state.admins:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return credential
