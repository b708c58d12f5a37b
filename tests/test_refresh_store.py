"""Unit tests for auth/store.py -- InMemoryRefreshStore.

Covers:
- put()/take() single use
- passive expiry: expired records are absent to take() before any sweep
- revoke_all() by owner, isolation between owners, idempotence
- overwriting a value with a different owner moves it between owners
- purge_expired() and count()
- concurrent take() on one value: exactly one winner
- concurrent put()/take()/revoke_all() across owners stays consistent
- revoke_all() racing put()/take() on the same owner never double counts
- purge_expired() drops owner index entries whose record is gone
"""

import threading

import pytest

from auth.store import InMemoryRefreshStore

DAY = 86400


def _indexed(store: InMemoryRefreshStore, owner: str) -> set[str]:
    return set().union(*(s.data.get(owner, set()) for s in store._owners))


class TestSingleKey:
    def test_take_returns_owner_once(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        assert store.take("v1") == "alice"
        assert store.take("v1") is None

    def test_take_unknown_value(self, store: InMemoryRefreshStore) -> None:
        assert store.take("never-issued") is None

    def test_invalidate(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        assert store.invalidate("v1") is True
        assert store.invalidate("v1") is False
        assert store.take("v1") is None
        assert len(store) == 0

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_non_positive_ttl_rejected(self, store: InMemoryRefreshStore, ttl: float) -> None:
        with pytest.raises(ValueError):
            store.put("v1", "alice", ttl)

    def test_zero_stripes_rejected(self) -> None:
        with pytest.raises(ValueError):
            InMemoryRefreshStore(stripes=0)

    def test_overwrite_with_new_owner(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        store.put("v1", "bob", DAY)
        assert store.revoke_all("alice") == 0
        assert store.count("bob") == 1
        assert store.take("v1") == "bob"


class TestExpiry:
    def test_expired_record_is_absent_before_sweep(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("v1", "alice", 60)
        fake_clock.advance(60)
        assert len(store) == 1  # still physically present
        assert store.take("v1") is None
        assert len(store) == 0

    def test_record_valid_until_ttl_elapses(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("v1", "alice", 60)
        fake_clock.advance(59.9)
        assert store.take("v1") == "alice"

    def test_invalidate_expired_reports_false(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("v1", "alice", 60)
        fake_clock.advance(61)
        assert store.invalidate("v1") is False

    def test_purge_expired(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("short-1", "alice", 10)
        store.put("short-2", "bob", 10)
        store.put("long", "alice", DAY)
        fake_clock.advance(11)
        assert store.purge_expired() == 2
        assert len(store) == 1
        assert store.purge_expired() == 0
        assert store.take("long") == "alice"

    def test_count_ignores_expired(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("short", "alice", 10)
        store.put("long", "alice", DAY)
        store.put("other", "bob", DAY)
        fake_clock.advance(11)
        assert store.count() == 2
        assert store.count("alice") == 1
        assert store.count("nobody") == 0

    def test_purge_drops_index_entries_left_by_interleaved_take(
        self, store: InMemoryRefreshStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # Run a take() after put() has written the record but before it indexes it.
        index_add = store._index_add

        def add_after_take(owner: str, value: str) -> None:
            assert store.take(value) == owner
            index_add(owner, value)

        monkeypatch.setattr(store, "_index_add", add_after_take)
        store.put("v1", "alice", DAY)
        monkeypatch.undo()
        store.put("v2", "alice", DAY)
        assert _indexed(store, "alice") == {"v1", "v2"}

        assert store.purge_expired() == 0
        assert _indexed(store, "alice") == {"v2"}
        assert store.revoke_all("alice") == 1


class TestRevokeAll:
    def test_revokes_every_value_of_owner(self, store: InMemoryRefreshStore) -> None:
        for i in range(5):
            store.put(f"alice-{i}", "alice", DAY)
        store.put("bob-0", "bob", DAY)

        assert store.revoke_all("alice") == 5
        assert all(store.take(f"alice-{i}") is None for i in range(5))
        assert store.take("bob-0") == "bob"

    def test_unknown_owner_is_noop(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        assert store.revoke_all("nobody") == 0
        assert store.revoke_all("alice") == 1
        assert store.revoke_all("alice") == 0

    def test_already_taken_values_not_counted(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        store.put("v2", "alice", DAY)
        store.take("v1")
        assert store.revoke_all("alice") == 1

    def test_expired_values_removed_but_not_counted(self, store: InMemoryRefreshStore, fake_clock) -> None:
        store.put("short", "alice", 10)
        store.put("long", "alice", DAY)
        fake_clock.advance(11)
        assert store.revoke_all("alice") == 1
        assert len(store) == 0

    def test_new_values_after_revoke_are_valid(self, store: InMemoryRefreshStore) -> None:
        store.put("v1", "alice", DAY)
        store.revoke_all("alice")
        store.put("v2", "alice", DAY)
        assert store.take("v2") == "alice"


class TestConcurrency:
    def test_concurrent_take_has_single_winner(self) -> None:
        store = InMemoryRefreshStore()
        for _round in range(50):
            store.put("hot", "alice", DAY)
            results: list = []
            barrier = threading.Barrier(8)

            def worker() -> None:
                barrier.wait()
                results.append(store.take("hot"))

            threads = [threading.Thread(target=worker) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert results.count("alice") == 1
            assert results.count(None) == 7

    def test_mixed_operations_across_owners(self) -> None:
        store = InMemoryRefreshStore(stripes=4)
        owners = [f"user-{i}" for i in range(8)]
        errors: list[BaseException] = []

        def churn(owner: str) -> None:
            try:
                for i in range(200):
                    value = f"{owner}-{i}"
                    store.put(value, owner, DAY)
                    if i % 2 == 0:
                        assert store.take(value) == owner
            except BaseException as exc:  # surfaced via the errors list
                errors.append(exc)

        def revoker() -> None:
            try:
                for _ in range(50):
                    store.revoke_all("user-0")
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=churn, args=(o,)) for o in owners[1:]]
        threads.append(threading.Thread(target=revoker))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        # Odd-numbered values were never taken; revoking user-0 touches none of them.
        for owner in owners[1:]:
            assert store.count(owner) == 100
        assert store.revoke_all("user-3") == 100
        assert store.count() == 100 * 6

    def test_revoke_all_racing_same_owner(self) -> None:
        store = InMemoryRefreshStore(stripes=4)
        puts_per_thread = 300
        errors: list[BaseException] = []
        taken: list[int] = []
        revoked: list[int] = []
        done = threading.Event()

        def churn(worker: int) -> None:
            hits = 0
            try:
                for i in range(puts_per_thread):
                    value = f"x-{worker}-{i}"
                    store.put(value, "x", DAY)
                    if i % 2 == 0 and store.take(value) == "x":
                        hits += 1
            except BaseException as exc:  # surfaced via the errors list
                errors.append(exc)
            taken.append(hits)

        def revoker() -> None:
            total = 0
            try:
                while not done.is_set():
                    total += store.revoke_all("x")
            except BaseException as exc:
                errors.append(exc)
            revoked.append(total)

        workers = [threading.Thread(target=churn, args=(w,)) for w in range(4)]
        revoking = threading.Thread(target=revoker)
        revoking.start()
        for t in workers:
            t.start()
        for t in workers:
            t.join()
        done.set()
        revoking.join()

        assert errors == []
        assert sum(taken) + sum(revoked) <= 4 * puts_per_thread
        store.revoke_all("x")
        assert store.count("x") == 0
        assert _indexed(store, "x") == set()
