"""
auth/models.py -- Domain dataclasses for credential entities.

Pattern: Data class (pure data container, no business logic). The signer,
store and manager do the work; these types only carry shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class AccessCredential:
    """A signed, self-contained access token plus its decoded claims.

    Never stored server-side. Validity is decided by TokenSigner.verify()
    from the signature and the exp claim alone.
    """

    token: str  # serialized JWT
    subject: str  # identity the token was issued to ("sub")
    token_id: str  # "jti", unique per issuance
    issued_at: datetime
    expires_at: datetime
    claims: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RefreshRecord:
    """Server-side state held for one refresh token.

    expires_at is measured on the store's clock (time.monotonic by default),
    not wall time, so it is only meaningful to the store that created it.
    """

    owner: str
    expires_at: float


@dataclass(frozen=True)
class CredentialPair:
    """What login and rotate hand back to the caller.

    refresh_token is the raw value. It is returned exactly once; the store
    only keeps its fingerprint.
    """

    access: AccessCredential
    refresh_token: str

    @property
    def access_token_expires_at(self) -> datetime:
        return self.access.expires_at

    def to_dict(self) -> dict:
        return {
            "access_token": self.access.token,
            "refresh_token": self.refresh_token,
            "access_token_expires_at": self.access.expires_at.isoformat(),
        }
