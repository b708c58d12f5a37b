"""
auth/users.py -- Upstream username/password check.

The credential manager trusts whatever identity it is handed; this module is
the thin check in front of POST /auth/login that decides who gets one. Users
live in memory, loaded from the AUTH_USERS setting (username -> bcrypt hash).

Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
enables timing equalization in authenticate() so response time does not
reveal whether a username exists.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger("tokenrotor.auth.users")


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt rejects inputs over 72 bytes. The login request model caps
    passwords at 72 characters; multi-byte input past 72 bytes simply fails
    verification.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in config, or an over-long password.
        return False


# Computed once at import so the first login attempt is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("tokenrotor_timing_dummy")


class UserDirectory:
    """Read-only map of usernames to bcrypt hashes.

    Usage:
        users = UserDirectory({"alice": hash_password("s3cret")})
        users.authenticate("alice", "s3cret")   # "alice"
        users.authenticate("alice", "wrong")    # None
    """

    def __init__(self, users: dict[str, str] | None = None) -> None:
        self._users = dict(users or {})

    def __contains__(self, username: str) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)

    def authenticate(self, username: str, password: str) -> str | None:
        """Return the username on success, None on any failure.

        Always runs bcrypt whether or not the user exists:
        - Unknown username: bcrypt runs against _DUMMY_HASH
        - Wrong password: bcrypt runs against the real hash
        """
        hashed = self._users.get(username)
        if hashed is None:
            verify_password(password, _DUMMY_HASH)
            return None
        if not verify_password(password, hashed):
            logger.info("Failed password check for %s", username)
            return None
        return username
