"""
auth/store.py -- In-memory refresh token store.

Pattern: Repository. CredentialManager only talks to the RefreshStore
protocol; InMemoryRefreshStore is the single-process implementation. A
distributed backend (Redis, a transactional table) can replace it as long as
take() stays atomic and revoke_all() stays owner-indexed.

Layout:
  Primary map   fingerprint -> RefreshRecord(owner, expires_at)
  Owner index   owner -> {fingerprint, ...}

Both maps are split into N stripes, each guarded by its own threading.Lock.
A key always hashes to the same stripe, so operations on unrelated keys
rarely contend.

Locking rules:
  - No method ever holds two stripe locks at the same time. The primary map
    is updated first, the owner index second, each under its own lock. There
    is no lock ordering to get wrong and no possibility of deadlock.
  - take() reads and deletes under a single lock acquisition. Two
    concurrent take() calls on the same value cannot both see the record.
  - The owner index may briefly contain fingerprints whose records are gone
    (taken, purged, or re-owned). revoke_all() re-checks ownership on the
    primary map before deleting, so stale index entries are harmless.

Consistency:
  A put() racing revoke_all() for the same owner may or may not be revoked:
  if revoke_all() pops the owner's index set between put()'s two steps, the
  new record survives. This is accepted (eventual, not linearizable).

Expiry is passive: take() treats an expired record as absent whether or not
purge_expired() has removed it yet. Times come from time.monotonic by
default so wall-clock adjustments never extend or cut a token's lifetime.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from auth.models import RefreshRecord

logger = logging.getLogger("tokenrotor.auth.store")

_DEFAULT_STRIPES = 16


class RefreshStore(Protocol):
    """Contract the credential manager relies on."""

    def put(self, value: str, owner: str, ttl_seconds: float) -> None: ...

    def take(self, value: str) -> str | None: ...

    def invalidate(self, value: str) -> bool: ...

    def revoke_all(self, owner: str) -> int: ...

    def purge_expired(self) -> int: ...


class _Stripe:
    __slots__ = ("lock", "data")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data: dict = {}


class InMemoryRefreshStore:
    """Thread-safe refresh token store with striped locking.

    Usage:
        store = InMemoryRefreshStore()
        store.put(fingerprint, "alice", ttl_seconds=7 * 86400)
        store.take(fingerprint)      # "alice"
        store.take(fingerprint)      # None -- single use
        store.revoke_all("alice")    # 0
    """

    def __init__(self, stripes: int = _DEFAULT_STRIPES, clock: Callable[[], float] = time.monotonic) -> None:
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._clock = clock
        self._records = [_Stripe() for _ in range(stripes)]
        self._owners = [_Stripe() for _ in range(stripes)]

    def _record_stripe(self, value: str) -> _Stripe:
        return self._records[hash(value) % len(self._records)]

    def _owner_stripe(self, owner: str) -> _Stripe:
        return self._owners[hash(owner) % len(self._owners)]

    # ------------------------------------------------------------------
    # Owner index
    # ------------------------------------------------------------------

    def _index_add(self, owner: str, value: str) -> None:
        stripe = self._owner_stripe(owner)
        with stripe.lock:
            stripe.data.setdefault(owner, set()).add(value)

    def _index_discard(self, owner: str, value: str) -> None:
        stripe = self._owner_stripe(owner)
        with stripe.lock:
            values = stripe.data.get(owner)
            if values is None:
                return
            values.discard(value)
            if not values:
                del stripe.data[owner]

    # ------------------------------------------------------------------
    # Single-key operations
    # ------------------------------------------------------------------

    def put(self, value: str, owner: str, ttl_seconds: float) -> None:
        """Insert or overwrite the record for value, expiring after ttl_seconds."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        record = RefreshRecord(owner=owner, expires_at=self._clock() + ttl_seconds)
        stripe = self._record_stripe(value)
        with stripe.lock:
            previous = stripe.data.get(value)
            stripe.data[value] = record
        if previous is not None and previous.owner != owner:
            self._index_discard(previous.owner, value)
        self._index_add(owner, value)

    def take(self, value: str) -> str | None:
        """Atomically look up and remove value. Returns the owner or None.

        None covers unknown, already taken, revoked and expired values alike.
        """
        stripe = self._record_stripe(value)
        with stripe.lock:
            record = stripe.data.pop(value, None)
        if record is None:
            return None
        self._index_discard(record.owner, value)
        if record.expires_at <= self._clock():
            return None
        return record.owner

    def invalidate(self, value: str) -> bool:
        """Delete value without issuing anything. True if a live record was removed."""
        return self.take(value) is not None

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def revoke_all(self, owner: str) -> int:
        """Remove every record owned by owner. Returns the number of live records removed."""
        owner_stripe = self._owner_stripe(owner)
        with owner_stripe.lock:
            values = owner_stripe.data.pop(owner, set())

        now = self._clock()
        revoked = 0
        for value in values:
            stripe = self._record_stripe(value)
            with stripe.lock:
                record = stripe.data.get(value)
                # Re-owned by a later put(); that record belongs to someone else.
                if record is None or record.owner != owner:
                    continue
                del stripe.data[value]
            if record.expires_at > now:
                revoked += 1
        return revoked

    def purge_expired(self) -> int:
        """Physically remove expired records. Returns the number removed.

        Also drops owner index entries whose record is gone, which a take()
        landing between the two halves of a put() can leave behind.
        """
        now = self._clock()
        removed: list[tuple[str, RefreshRecord]] = []
        for stripe in self._records:
            with stripe.lock:
                expired = [(value, rec) for value, rec in stripe.data.items() if rec.expires_at <= now]
                for value, _rec in expired:
                    del stripe.data[value]
            removed.extend(expired)
        for value, rec in removed:
            self._index_discard(rec.owner, value)
        stale = self._prune_index()
        if removed:
            logger.info("Purged %d expired refresh tokens", len(removed))
        if stale:
            logger.debug("Dropped %d stale owner index entries", stale)
        return len(removed)

    def _owns(self, owner: str, value: str) -> bool:
        stripe = self._record_stripe(value)
        with stripe.lock:
            record = stripe.data.get(value)
        return record is not None and record.owner == owner

    def _prune_index(self) -> int:
        stale: list[tuple[str, str]] = []
        for stripe in self._owners:
            with stripe.lock:
                snapshot = [(owner, list(values)) for owner, values in stripe.data.items()]
            for owner, values in snapshot:
                stale.extend((owner, value) for value in values if not self._owns(owner, value))

        for owner, value in stale:
            self._index_discard(owner, value)
            # A put() may have rewritten the record after the check above.
            if self._owns(owner, value):
                self._index_add(owner, value)
        return len(stale)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def count(self, owner: str | None = None) -> int:
        """Return the number of live (unexpired) records, overall or for one owner."""
        now = self._clock()
        total = 0
        for stripe in self._records:
            with stripe.lock:
                total += sum(
                    1
                    for rec in stripe.data.values()
                    if rec.expires_at > now and (owner is None or rec.owner == owner)
                )
        return total

    def __len__(self) -> int:
        total = 0
        for stripe in self._records:
            with stripe.lock:
                total += len(stripe.data)
        return total
