"""
Tests for the Record Synchronizer

Runs reconciliations against the in-memory FakeRecordStore to cover the
guards, the create/update/delete matrix and write verification.
"""

from datetime import timedelta

import pytest

from src.failover.addressing import AddressFamily
from src.failover.errors import (
    CooldownError,
    ReconcileError,
    RecordNotFoundError,
    RecordStoreError,
    SourceMismatchError,
    WriteVerificationError,
)
from src.failover.synchronizer import LookupStatus, SyncAction, normalize_names

from tests.conftest import DOMAIN

A = AddressFamily.IPV4
AAAA = AddressFamily.IPV6
NAMES = ["@", "www", "*"]


@pytest.fixture
def a_records(store):
    return [
        store.add(DOMAIN, A, "10.0.0.11"),
        store.add(f"www.{DOMAIN}", A, "10.0.0.11"),
        store.add(f"*.{DOMAIN}", A, "10.0.0.11"),
    ]


# ── Loading ───────────────────────────────────────────────────────────────────

class TestLoad:

    def test_found(self, synchronizer, a_records):
        lookup = synchronizer.load(NAMES, A)

        assert lookup.status is LookupStatus.FOUND
        assert list(lookup.records) == NAMES
        assert lookup.anchor.id == a_records[0].id
        assert lookup.missing == []

    def test_not_found(self, synchronizer):
        lookup = synchronizer.load(NAMES, AAAA)

        assert lookup.status is LookupStatus.NOT_FOUND
        assert lookup.missing == NAMES

    def test_store_error(self, synchronizer, store, a_records):
        store.fail_on[("list", f"www.{DOMAIN}")] = RecordStoreError("403 Forbidden", status=403)
        lookup = synchronizer.load(NAMES, A)

        assert lookup.status is LookupStatus.ERROR
        assert "403 Forbidden" in str(lookup.error)

    def test_names_are_read_in_order(self, synchronizer, store, a_records):
        synchronizer.load(["www", "@", "*"], A)
        assert [fqdn for _, fqdn in store.calls] == [f"www.{DOMAIN}", DOMAIN, f"*.{DOMAIN}"]


class TestNormalizeNames:

    def test_duplicates_and_blanks_dropped(self):
        assert normalize_names(["@", " www ", "", "@", "www"]) == ["@", "www"]

    def test_anchor_required(self):
        with pytest.raises(ValueError, match="anchor"):
            normalize_names(["www"])


# ── IPv4 reconciliation ──────────────────────────────────────────────────────

class TestReconcileIPv4:

    def test_update_all_records(self, synchronizer, store, a_records):
        result = synchronizer.reconcile(NAMES, "10.0.0.11", "10.0.0.13", A)

        assert result.action is SyncAction.UPDATED
        assert result.names == NAMES
        assert set(store.contents(A).values()) == {"10.0.0.13"}

    def test_source_mismatch_aborts(self, synchronizer, store, a_records):
        with pytest.raises(SourceMismatchError) as exc:
            synchronizer.reconcile(NAMES, "10.0.0.12", "10.0.0.13", A)

        assert exc.value.actual == "10.0.0.11"
        assert "10.0.0.11" in str(exc.value)
        assert set(store.contents(A).values()) == {"10.0.0.11"}

    def test_empty_source_skips_check(self, synchronizer, store, a_records):
        result = synchronizer.reconcile(NAMES, "", "10.0.0.13", A)
        assert result.action is SyncAction.UPDATED

    def test_cooldown_blocks_recent_change(self, synchronizer, store, clock):
        store.add(DOMAIN, A, "10.0.0.11", modified=clock() - timedelta(minutes=9))

        with pytest.raises(CooldownError) as exc:
            synchronizer.reconcile(["@"], "10.0.0.11", "10.0.0.13", A)

        assert exc.value.remaining == timedelta(minutes=1)
        assert store.contents(A) == {DOMAIN: "10.0.0.11"}

    def test_cooldown_elapsed(self, synchronizer, store, clock):
        store.add(DOMAIN, A, "10.0.0.11", modified=clock() - timedelta(minutes=10))

        result = synchronizer.reconcile(["@"], "10.0.0.11", "10.0.0.13", A)
        assert result.action is SyncAction.UPDATED

    def test_anchor_gates_all_names(self, synchronizer, store, clock):
        # a fresh non-anchor record does not block the switch
        store.add(DOMAIN, A, "10.0.0.11", modified=clock() - timedelta(hours=2))
        store.add(f"www.{DOMAIN}", A, "10.0.0.11", modified=clock())

        result = synchronizer.reconcile(["@", "www"], "10.0.0.11", "10.0.0.13", A)
        assert result.names == ["@", "www"]

    def test_second_reconcile_hits_cooldown(self, synchronizer, store, a_records):
        synchronizer.reconcile(NAMES, "10.0.0.11", "10.0.0.13", A)
        updates = [c for c in store.calls if c[0] == "update"]

        with pytest.raises(CooldownError):
            synchronizer.reconcile(NAMES, "10.0.0.13", "10.0.0.13", A)

        assert [c for c in store.calls if c[0] == "update"] == updates

    def test_missing_a_records_is_an_error(self, synchronizer):
        with pytest.raises(RecordNotFoundError):
            synchronizer.reconcile(NAMES, "", "10.0.0.13", A)

    def test_partially_missing_a_records_is_an_error(self, synchronizer, store):
        store.add(DOMAIN, A, "10.0.0.11")
        with pytest.raises(RecordNotFoundError, match="www"):
            synchronizer.reconcile(["@", "www"], "10.0.0.11", "10.0.0.13", A)

    def test_store_error_propagates(self, synchronizer, store, a_records):
        store.fail_on[("list", DOMAIN)] = RecordStoreError("503 Service Unavailable", status=503)

        with pytest.raises(RecordStoreError, match="503"):
            synchronizer.reconcile(NAMES, "10.0.0.11", "10.0.0.13", A)

        assert set(store.contents(A).values()) == {"10.0.0.11"}


# ── IPv6 reconciliation ──────────────────────────────────────────────────────

class TestReconcileIPv6:

    def test_create_when_none_exist(self, synchronizer, store):
        result = synchronizer.reconcile(NAMES, "", "2001:db8::1", AAAA)

        assert result.action is SyncAction.CREATED
        assert store.contents(AAAA) == {
            DOMAIN: "2001:db8::1",
            f"www.{DOMAIN}": "2001:db8::1",
            f"*.{DOMAIN}": "2001:db8::1",
        }

    def test_noop_when_nothing_to_remove(self, synchronizer, store):
        result = synchronizer.reconcile(NAMES, "", "", AAAA)

        assert result.action is SyncAction.NOOP
        assert [op for op, _ in store.calls] == ["list", "list", "list"]

    def test_delete_ignores_cooldown(self, synchronizer, store, clock):
        store.add(DOMAIN, AAAA, "2001:db8::1", modified=clock())

        result = synchronizer.reconcile(["@"], "2001:db8::1", "", AAAA)

        assert result.action is SyncAction.DELETED
        assert store.contents(AAAA) == {}

    def test_source_not_checked_for_ipv6(self, synchronizer, store):
        store.add(DOMAIN, AAAA, "2001:db8::1")

        result = synchronizer.reconcile(["@"], "2001:db8::99", "2001:db8::2", AAAA)
        assert result.action is SyncAction.UPDATED

    def test_update_respects_cooldown(self, synchronizer, store, clock):
        store.add(DOMAIN, AAAA, "2001:db8::1", modified=clock() - timedelta(minutes=1))

        with pytest.raises(CooldownError):
            synchronizer.reconcile(["@"], "", "2001:db8::2", AAAA)

    def test_lifecycle_create_delete_create(self, synchronizer, store, clock):
        first = synchronizer.reconcile(NAMES, "", "2001:db8::1", AAAA)
        assert first.action is SyncAction.CREATED

        clock.advance(minutes=11)
        second = synchronizer.reconcile(NAMES, "2001:db8::1", "", AAAA)
        assert second.action is SyncAction.DELETED
        assert store.contents(AAAA) == {}

        third = synchronizer.reconcile(NAMES, "", "2001:db8::1", AAAA)
        assert third.action is SyncAction.CREATED
        assert len(store.contents(AAAA)) == 3
        assert not any(op == "update" for op, _ in store.calls)

    def test_partial_records_are_completed(self, synchronizer, store):
        store.add(DOMAIN, AAAA, "2001:db8::1")

        result = synchronizer.reconcile(["@", "www"], "", "2001:db8::2", AAAA)

        assert result.action is SyncAction.UPDATED
        assert result.names == ["@", "www"]
        assert store.contents(AAAA) == {
            DOMAIN: "2001:db8::2",
            f"www.{DOMAIN}": "2001:db8::2",
        }


# ── Write verification and partial failures ──────────────────────────────────

class TestWriteVerification:

    def test_update_echo_mismatch(self, synchronizer, store, a_records):
        store.echo_override = "10.0.0.11"

        with pytest.raises(ReconcileError) as exc:
            synchronizer.reconcile(NAMES, "10.0.0.11", "10.0.0.13", A)

        failures = exc.value.failures
        assert len(failures) == 3
        assert all(isinstance(f, WriteVerificationError) for f in failures)
        assert failures[0].actual == "10.0.0.11"

    def test_single_echo_mismatch_names_divergent_value(self, synchronizer, store):
        store.add(DOMAIN, A, "10.0.0.11")
        store.echo_override = "10.0.0.99"

        with pytest.raises(WriteVerificationError, match="10.0.0.99"):
            synchronizer.reconcile(["@"], "10.0.0.11", "10.0.0.13", A)

    def test_create_echo_mismatch(self, synchronizer, store):
        store.echo_override = "2001:db8::dead"

        with pytest.raises(WriteVerificationError) as exc:
            synchronizer.reconcile(["@"], "", "2001:db8::1", AAAA)

        assert exc.value.expected == "2001:db8::1"
        assert exc.value.actual == "2001:db8::dead"

    def test_echo_compared_by_address(self, synchronizer, store):
        store.echo_override = "2001:0db8::0001"

        result = synchronizer.reconcile(["@"], "", "2001:db8::1", AAAA)
        assert result.action is SyncAction.CREATED

    def test_failure_on_one_name_does_not_mask_others(self, synchronizer, store, a_records):
        store.fail_on[("update", f"www.{DOMAIN}")] = RecordStoreError("500 Internal Server Error", status=500)

        with pytest.raises(RecordStoreError, match="500"):
            synchronizer.reconcile(NAMES, "10.0.0.11", "10.0.0.13", A)

        # the remaining names were still attempted
        assert store.contents(A) == {
            DOMAIN: "10.0.0.13",
            f"www.{DOMAIN}": "10.0.0.11",
            f"*.{DOMAIN}": "10.0.0.13",
        }

    def test_delete_failure_surfaces(self, synchronizer, store):
        store.add(DOMAIN, AAAA, "2001:db8::1")
        store.fail_on[("delete", DOMAIN)] = RecordStoreError("403 Forbidden", status=403)

        with pytest.raises(RecordStoreError):
            synchronizer.reconcile(["@"], "", "", AAAA)
