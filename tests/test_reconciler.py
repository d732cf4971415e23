"""
Tests for the reconciler.

Covers initialization, timestamp-based change detection, the active
window, truncation, retention and the end-to-end poll sequence.
"""

from datetime import timedelta

import pytest

from incident_relay.models import ChangeKind, ChangeSetKind
from incident_relay.reconciler import Reconciler
from incident_relay.store import SnapshotStore

from conftest import NOW, incident

WINDOW = timedelta(days=3)


@pytest.fixture
def store():
    return SnapshotStore()


@pytest.fixture
def reconciler(store):
    return Reconciler(store)


def _kinds(change_set):
    return {c.incident.id: c.kind for c in change_set.changes}


# ─── Initialization ───────────────────────────────────────────


class TestInitialization:
    def test_first_call_initializes(self, reconciler, store):
        a = incident("a")
        cs = reconciler.reconcile([a], NOW, max_incidents=5)
        assert cs.kind is ChangeSetKind.INITIALIZATION
        assert cs.incidents == [a]
        assert store.snapshot() == [a]

    def test_empty_initialization_is_reportable(self, reconciler):
        cs = reconciler.reconcile([], NOW, max_incidents=5)
        assert cs.is_initialization
        assert cs.should_notify
        assert len(cs) == 0

    def test_initializes_exactly_once(self, reconciler):
        first = reconciler.reconcile([], NOW, max_incidents=5)
        second = reconciler.reconcile([], NOW, max_incidents=5)
        third = reconciler.reconcile([], NOW, max_incidents=5)
        assert first.is_initialization
        assert second.kind is ChangeSetKind.DELTA
        assert third.kind is ChangeSetKind.DELTA
        assert not second.should_notify

    def test_initialization_keeps_old_incidents(self, reconciler, store):
        old = incident("old", created=NOW - timedelta(days=30))
        cs = reconciler.reconcile([old], NOW, max_incidents=5)
        assert cs.incidents == [old]
        assert store.get("old") == old

    def test_initialization_truncates(self, reconciler, store):
        batch = [incident(f"i{n}", created=NOW - timedelta(hours=n)) for n in range(4)]
        cs = reconciler.reconcile(batch, NOW, max_incidents=2)
        assert [i.id for i in cs.incidents] == ["i0", "i1"]
        assert len(store) == 2


# ─── Change detection ─────────────────────────────────────────


class TestChangeDetection:
    def test_new_incident(self, reconciler, store):
        reconciler.reconcile([], NOW, max_incidents=5)
        a = incident("a")
        cs = reconciler.reconcile([a], NOW, max_incidents=5)
        assert _kinds(cs) == {"a": ChangeKind.NEW}
        assert store.get("a") == a

    def test_updated_timestamp_is_update(self, reconciler, store):
        created = NOW - timedelta(hours=2)
        reconciler.reconcile([incident("a", created=created)], NOW, max_incidents=5)
        bumped = incident("a", created=created, updated=NOW)
        cs = reconciler.reconcile([bumped], NOW, max_incidents=5)
        assert _kinds(cs) == {"a": ChangeKind.UPDATED}
        assert store.get("a").updated_at == NOW

    def test_status_change_without_timestamp_is_unchanged(self, reconciler, store):
        created = NOW - timedelta(hours=2)
        reconciler.reconcile(
            [incident("a", created=created, status="investigating")], NOW, max_incidents=5
        )
        drifted = incident("a", created=created, status="resolved")
        cs = reconciler.reconcile([drifted], NOW, max_incidents=5)
        assert cs.changes == []
        # unchanged entries are still refreshed in full
        assert store.get("a").status == "resolved"

    def test_same_batch_twice(self, reconciler):
        reconciler.reconcile([], NOW, max_incidents=5)
        batch = [incident("a"), incident("b", created=NOW - timedelta(hours=2))]
        first = reconciler.reconcile(batch, NOW, max_incidents=5)
        second = reconciler.reconcile(batch, NOW, max_incidents=5)
        assert len(first) == 2
        assert len(second) == 0

    def test_change_order_follows_batch(self, reconciler):
        reconciler.reconcile([], NOW, max_incidents=5)
        batch = [
            incident("z", created=NOW - timedelta(minutes=1)),
            incident("a", created=NOW - timedelta(minutes=2)),
        ]
        cs = reconciler.reconcile(batch, NOW, max_incidents=5)
        assert [i.id for i in cs.incidents] == ["z", "a"]


# ─── Active window ────────────────────────────────────────────


class TestActiveWindow:
    def test_old_incident_not_inserted(self, reconciler, store):
        reconciler.reconcile([], NOW, max_incidents=5)
        old = incident("old", created=NOW - timedelta(days=4))
        cs = reconciler.reconcile([old], NOW, max_incidents=5, active_window=WINDOW)
        assert cs.changes == []
        assert store.get("old") is None

    def test_old_incident_not_refreshed(self, reconciler, store):
        created = NOW - timedelta(days=10)
        original = incident("old", created=created, status="investigating")
        reconciler.reconcile([original], NOW, max_incidents=5)
        changed = incident("old", created=created, updated=NOW, status="resolved")
        cs = reconciler.reconcile([changed], NOW, max_incidents=5, active_window=WINDOW)
        assert cs.changes == []
        assert store.get("old") == original

    def test_custom_window(self, reconciler):
        reconciler.reconcile([], NOW, max_incidents=5)
        inc = incident("a", created=NOW - timedelta(hours=30))
        cs = reconciler.reconcile([inc], NOW, max_incidents=5, active_window=timedelta(days=1))
        assert cs.changes == []


# ─── Truncation & retention ───────────────────────────────────


class TestTruncationAndRetention:
    def test_only_prefix_is_diffed(self, reconciler, store):
        reconciler.reconcile([], NOW, max_incidents=2)
        batch = [incident(f"i{n}", created=NOW - timedelta(hours=n)) for n in range(4)]
        cs = reconciler.reconcile(batch, NOW, max_incidents=2)
        assert [i.id for i in cs.incidents] == ["i0", "i1"]
        assert store.get("i2") is None
        assert store.get("i3") is None

    def test_store_never_exceeds_cap(self, reconciler, store):
        reconciler.reconcile([], NOW, max_incidents=3)
        for n in range(6):
            inc = incident(f"i{n}", created=NOW - timedelta(hours=10 - n))
            reconciler.reconcile([inc], NOW, max_incidents=3)
            assert len(store) <= 3
        assert [i.id for i in store.snapshot()] == ["i5", "i4", "i3"]

    def test_shorter_fetch_evicts_nothing(self, reconciler, store):
        batch = [incident("a"), incident("b", created=NOW - timedelta(hours=2))]
        reconciler.reconcile(batch, NOW, max_incidents=5)
        reconciler.reconcile(batch[:1], NOW, max_incidents=5)
        assert len(store) == 2

    def test_eviction_favors_newest_over_fetch(self, reconciler, store):
        # A newly seen but older incident loses to newer stored ones.
        newer = [incident(f"n{i}", created=NOW - timedelta(hours=i)) for i in range(2)]
        reconciler.reconcile(newer, NOW, max_incidents=2)
        older = incident("older", created=NOW - timedelta(hours=5))
        cs = reconciler.reconcile([older], NOW, max_incidents=2)
        assert _kinds(cs) == {"older": ChangeKind.NEW}
        assert store.get("older") is None
        assert len(store) == 2


# ─── End to end ───────────────────────────────────────────────


class TestEndToEnd:
    def test_poll_sequence(self, reconciler, store):
        t0 = NOW - timedelta(hours=5)
        t1 = NOW - timedelta(hours=1)

        a0 = incident("A", created=t0, updated=t0)
        cs = reconciler.reconcile([a0], NOW, max_incidents=5)
        assert cs.is_initialization
        assert cs.incidents == [a0]
        assert store.snapshot() == [a0]

        a1 = incident("A", created=t0, updated=t1)
        b = incident("B", created=t0 + timedelta(seconds=1))
        cs = reconciler.reconcile([b, a1], NOW, max_incidents=5)
        assert _kinds(cs) == {"A": ChangeKind.UPDATED, "B": ChangeKind.NEW}
        assert store.get("A").updated_at == t1
        assert store.get("B") == b

        cs = reconciler.reconcile([b, a1], NOW, max_incidents=5)
        assert cs.kind is ChangeSetKind.DELTA
        assert cs.changes == []
