"""
auth/manager.py -- Credential lifecycle: login, rotate, logout, revoke.

Pattern: Facade / Service. CredentialManager is the only entry point the
route layer uses. It drives TokenSigner (stateless) and a RefreshStore
(the only shared mutable state) and never caches refresh ownership itself.

Refresh token states:
  Active -> Rotated   rotate() consumed it and issued a brand-new pair
  Active -> Revoked   logout() or revoke_all() deleted it
  Active -> Expired   its TTL elapsed (passive, enforced by the store)
All three are terminal. A rotation never resurrects the old value.

Single use comes from RefreshStore.take(): lookup and delete happen in one
critical section, so two concurrent rotate() calls on the same value cannot
both find it.

logout() uses invalidate(), which only deletes. It never mints a new pair,
so logging out leaves nothing valid behind.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from auth.exceptions import InvalidRefreshToken
from auth.models import AccessCredential, CredentialPair
from auth.store import InMemoryRefreshStore, RefreshStore
from auth.tokens import TokenSigner, generate_refresh_token

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tokenrotor.auth")

DEFAULT_REFRESH_TTL = timedelta(days=7)


class CredentialManager:
    """Issue, rotate and revoke access/refresh credential pairs.

    Usage:
        manager = CredentialManager(TokenSigner(secret), InMemoryRefreshStore())
        pair = manager.login("alice")
        pair = manager.rotate(pair.refresh_token)
        manager.logout(pair.refresh_token)
    """

    def __init__(
        self,
        signer: TokenSigner,
        store: RefreshStore,
        refresh_ttl: timedelta = DEFAULT_REFRESH_TTL,
    ) -> None:
        if refresh_ttl <= timedelta(0):
            raise ValueError("refresh_ttl must be positive")
        self.signer = signer
        self.store = store
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialManager:
        return cls(
            signer=TokenSigner.from_settings(settings),
            store=InMemoryRefreshStore(stripes=settings.refresh_store_stripes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def login(self, identity: str) -> CredentialPair:
        """Issue a fresh pair for an already-authenticated identity."""
        if not isinstance(identity, str) or not identity:
            raise ValueError("identity must be a non-empty string")
        access = self.signer.issue(identity)
        refresh_token = generate_refresh_token()
        self.store.put(
            self.signer.fingerprint(refresh_token),
            identity,
            self.refresh_ttl.total_seconds(),
        )
        return CredentialPair(access=access, refresh_token=refresh_token)

    def rotate(self, refresh_token: str) -> CredentialPair:
        """Exchange a refresh token for a new pair. The old token is consumed.

        Raises InvalidRefreshToken if the token is unknown, expired, already
        rotated, or revoked -- the caller cannot tell which.
        """
        owner = self.store.take(self.signer.fingerprint(refresh_token))
        if owner is None:
            logger.info("Refresh token rejected")
            raise InvalidRefreshToken()
        pair = self.login(owner)
        logger.info("Rotated refresh token for %s", owner)
        return pair

    def logout(self, refresh_token: str) -> None:
        """Invalidate one refresh token without issuing anything new."""
        if not self.store.invalidate(self.signer.fingerprint(refresh_token)):
            raise InvalidRefreshToken()

    def revoke_all(self, identity: str) -> int:
        """Invalidate every outstanding refresh token of identity.

        Idempotent: returns 0 when nothing was active.
        """
        revoked = self.store.revoke_all(identity)
        logger.info("Revoked %d refresh tokens for %s", revoked, identity)
        return revoked

    def verify_access(self, token: str) -> AccessCredential:
        return self.signer.verify(token)

    def purge_expired(self) -> int:
        return self.store.purge_expired()
