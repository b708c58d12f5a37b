"""
auth/exceptions.py -- Error taxonomy for the credential lifecycle.

InvalidRefreshToken deliberately carries no detail. "Never issued",
"expired", "already rotated" and "revoked" all raise the same exception with
the same message so callers cannot enumerate refresh token state.

Layer rule: no imports from api/ or core/.
"""


class CredentialError(Exception):
    """Base class for credential lifecycle failures."""


class InvalidCredential(CredentialError):
    """An access token failed signature, structure, or expiry checks."""

    def __init__(self, message: str = "Invalid access token.") -> None:
        super().__init__(message)


class InvalidRefreshToken(CredentialError):
    """A refresh token is unknown, expired, already used, or revoked."""

    def __init__(self) -> None:
        super().__init__("Invalid refresh token.")
