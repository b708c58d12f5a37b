"""
auth/tokens.py -- Access token signing and refresh token generation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub, jti, iat, exp and, when
       configured, iss and aud. verify() raises InvalidCredential on any
       failure -- the route layer turns that into a 401. Expiry is checked a
       second time against our own clock so a token whose exp equals "now"
       is already invalid (jose only rejects exp < now). The signature
       segment must be canonical base64url before jose sees it.

  Refresh tokens: secrets.token_urlsafe(32) gives 256 bits of entropy --
       brute-force is computationally infeasible. The refresh store is keyed
       by HMAC-SHA256(SECRET_KEY, raw_token) so a memory dump of the store
       does not yield usable tokens, and lookup stays O(1).

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is
the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.exceptions import InvalidCredential
from auth.models import AccessCredential

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tokenrotor.auth.tokens")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "jti", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _has_canonical_signature(token: str) -> bool:
    """True if the signature segment is the exact base64url encoding of its bytes.

    jose decodes leniently: the spare low bits of the last character are
    ignored, so several spellings of one signature would all verify.
    """
    if not isinstance(token, str) or token.count(".") != 2:
        return False
    segment = token.rsplit(".", 1)[1]
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") == segment


def generate_refresh_token() -> str:
    """Return a new opaque refresh token (43 url-safe chars, 256 bits)."""
    return secrets.token_urlsafe(32)


class TokenSigner:
    """Stateless issuer and verifier of signed access tokens.

    Usage:
        signer = TokenSigner(secret, issuer="tokenrotor", audience="clients",
                             ttl=timedelta(minutes=15))
        credential = signer.issue("alice")
        signer.verify(credential.token).subject   # "alice"

    clock is injectable so tests can mint tokens in the past.
    """

    def __init__(
        self,
        secret: str,
        issuer: str = "",
        audience: str = "",
        ttl: timedelta = timedelta(minutes=15),
        algorithm: str = _ALGORITHM,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("secret must not be empty")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self.ttl = ttl
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenSigner:
        return cls(
            secret=settings.secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            ttl=timedelta(minutes=settings.access_token_expire_minutes),
        )

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def issue(self, identity: str) -> AccessCredential:
        """Sign a new access token for identity, valid for self.ttl."""
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self.ttl
        claims = {
            "sub": identity,
            "jti": uuid.uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if self._issuer:
            claims["iss"] = self._issuer
        if self._audience:
            claims["aud"] = self._audience
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return AccessCredential(
            token=token,
            subject=identity,
            token_id=claims["jti"],
            issued_at=issued_at,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            claims=claims,
        )

    def verify(self, token: str) -> AccessCredential:
        """Check signature, structure, issuer/audience and expiry.

        Raises InvalidCredential on any failure. The underlying reason is
        logged at DEBUG only; callers get one generic error.
        """
        if not _has_canonical_signature(token):
            logger.debug("Access token rejected: malformed signature segment")
            raise InvalidCredential()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience or None,
                issuer=self._issuer or None,
            )
        except (JWTError, AttributeError, TypeError, ValueError) as exc:
            logger.debug("Access token rejected: %s", exc)
            raise InvalidCredential() from exc

        if any(name not in payload for name in _REQUIRED_CLAIMS):
            raise InvalidCredential()
        # jose only checks aud when the token carries one.
        if self._audience and "aud" not in payload:
            raise InvalidCredential()
        if not isinstance(payload["sub"], str) or not payload["sub"]:
            raise InvalidCredential()
        if payload["exp"] <= self._clock().timestamp():
            raise InvalidCredential("Access token expired.")

        return AccessCredential(
            token=token,
            subject=payload["sub"],
            token_id=str(payload["jti"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            claims=payload,
        )

    # ------------------------------------------------------------------
    # Refresh token fingerprints
    # ------------------------------------------------------------------

    def fingerprint(self, refresh_token: str) -> str:
        """Return HMAC-SHA256(secret, refresh_token) as a hex string.

        Deterministic, so the store can look the token up by fingerprint
        without ever holding the raw value.
        """
        return hmac.new(
            self._secret.encode(),
            refresh_token.encode(),
            hashlib.sha256,
        ).hexdigest()
