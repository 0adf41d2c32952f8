"""
Tests for the snapshot codec and the import transaction manager.

Covers export, validation, the clear-then-write import, reference
remapping, idempotence, atomicity and the end-to-end restore scenarios.
"""

import sqlite3
from typing import Any, Dict

import pytest

from finance_tracker.backup.codec import export_snapshot, import_snapshot, validate_snapshot
from finance_tracker.backup.identity import hash_identifier
from finance_tracker.backup.reports import (
    STATUS_SUCCEEDED,
    STATUS_SUCCEEDED_WITH_ERRORS,
)
from finance_tracker.backup.schema import COLLECTIONS, FOREIGN_KEYS
from finance_tracker.database import LocalStore
from finance_tracker.errors import InvalidSnapshotError

# Same ids as the remote_snapshot fixture.
CLIENT_HEX = "65a1f0c2e4b0a1b2c3d4e5f6"
OTHER_CLIENT_HEX = "65a1f0c2e4b0a1b2c3d4e5f7"
LIST_HEX = "65a1f0c2e4b0a1b2c3d4e600"


def _all_records(store: LocalStore) -> Dict[str, Any]:
    return {name: store.list(name) for name in COLLECTIONS}


def _assert_references_resolve(store: LocalStore) -> None:
    for collection, references in FOREIGN_KEYS.items():
        for record in store.list(collection):
            for key, target in references.items():
                value = record.get(key)
                if value is not None:
                    assert store.get(target, value) is not None, (collection, record, key)


class TestExport:
    """Tests for export_snapshot."""

    def test_every_collection_present(self, store: LocalStore):
        snapshot = export_snapshot(store)
        for name in COLLECTIONS:
            assert snapshot[name] == []
        assert snapshot["exportedAt"].endswith("Z")

    def test_counts(self, populated_store: LocalStore):
        snapshot = export_snapshot(populated_store)
        assert len(snapshot["clients"]) == 3
        assert len(snapshot["income"]) == 5
        assert len(snapshot["expenses"]) == 2

    def test_records_carry_ids(self, populated_store: LocalStore):
        snapshot = export_snapshot(populated_store)
        assert [c["id"] for c in snapshot["clients"]] == [1, 2, 3]

    def test_store_only_read(self, populated_store: LocalStore):
        before = _all_records(populated_store)
        export_snapshot(populated_store)
        assert _all_records(populated_store) == before
        assert populated_store.get_meta("last_export") is None


class TestValidateSnapshot:
    """Tests for validate_snapshot."""

    @pytest.mark.parametrize("snapshot", [None, [], "backup", 3])
    def test_non_object_rejected(self, snapshot):
        with pytest.raises(InvalidSnapshotError):
            validate_snapshot(snapshot)

    def test_empty_object_rejected(self):
        with pytest.raises(InvalidSnapshotError):
            validate_snapshot({})

    def test_all_empty_arrays_rejected(self):
        with pytest.raises(InvalidSnapshotError):
            validate_snapshot({name: [] for name in COLLECTIONS})

    def test_unrecognized_members_only_rejected(self):
        with pytest.raises(InvalidSnapshotError, match="empty or invalid"):
            validate_snapshot({"users": [{"id": 1}], "exportedAt": "2024-01-01"})

    def test_non_list_member_ignored(self):
        with pytest.raises(InvalidSnapshotError):
            validate_snapshot({"clients": {"id": 1}})

    @pytest.mark.parametrize(
        "snapshot",
        [
            {"todos": [{"title": "x"}]},
            {"lists": [{"id": 1, "name": "Default"}]},
            {"savings": [{"id": 1}], "openingBalances": [{"id": 1, "period": "2024-01"}]},
        ],
    )
    def test_support_collections_alone_rejected(self, snapshot):
        with pytest.raises(InvalidSnapshotError):
            validate_snapshot(snapshot)

    @pytest.mark.parametrize("name", ["clients", "income", "expenses", "debts", "goals"])
    def test_any_data_collection_counts(self, name):
        snapshot = {name: [{"id": 1}], "todos": [{"title": "x"}]}
        assert validate_snapshot(snapshot) == snapshot


class TestImport:
    """Tests for import_snapshot."""

    def test_imports_every_record(self, store: LocalStore, sample_snapshot):
        report = import_snapshot(store, sample_snapshot)
        assert report.success
        assert report.status == STATUS_SUCCEEDED
        assert report.imported == 9
        assert store.count("clients") == 2
        assert store.count("expenses") == 2
        assert report.verified
        assert report.warnings == []

    def test_ids_honored(self, store: LocalStore, sample_snapshot):
        import_snapshot(store, sample_snapshot)
        assert [e["id"] for e in store.list("expenses")] == [10, 11]
        assert store.get("expenses", 11)["parentRecurringId"] == 10

    def test_replaces_existing_data(self, populated_store: LocalStore, sample_snapshot):
        import_snapshot(populated_store, sample_snapshot)
        assert populated_store.count("clients") == 2
        assert populated_store.count("income") == 2

    def test_absent_collections_cleared(self, populated_store: LocalStore):
        import_snapshot(populated_store, {"debts": [{"id": 1, "partyName": "Bank"}]})
        assert populated_store.count("clients") == 0
        assert populated_store.count("income") == 0
        assert populated_store.count("debts") == 1

    def test_records_last_import(self, store: LocalStore, sample_snapshot):
        import_snapshot(store, sample_snapshot)
        assert store.get_meta("last_import") is not None

    def test_store_assigned_ids_remap_references(self, store: LocalStore, sample_snapshot):
        report = import_snapshot(store, sample_snapshot, honor_ids=False)
        assert report.success
        expenses = store.list("expenses")
        assert [e["id"] for e in expenses] == [1, 2]
        child = next(e for e in expenses if e["isRecurring"] is False)
        parent = next(e for e in expenses if e["isRecurring"] is True)
        assert child["parentRecurringId"] == parent["id"]
        assert report.details["expenses"].remapped == 1
        _assert_references_resolve(store)

    @pytest.mark.parametrize(
        "collection, key",
        [("expectedIncome", "clientId"), ("openingBalances", None)],
    )
    def test_store_assigned_ids_overlapping_composite_keys(
        self, store: LocalStore, collection, key
    ):
        """Old ids that collide with new ones must not trip a composite key."""
        clients = [{"id": 10, "name": "A"}, {"id": 20, "name": "B"}, {"id": 1, "name": "C"}]
        if key:
            records = [
                {"id": 1, "clientId": 10, "period": "2024-01", "amount": 5},
                {"id": 2, "clientId": 1, "period": "2024-01", "amount": 7},
            ]
        else:
            records = [
                {"id": 1, "periodType": "monthly", "period": "2024-01", "amount": 5},
                {"id": 2, "periodType": "quarterly", "period": "2024-01", "amount": 7},
            ]
        report = import_snapshot(
            store, {"clients": clients, collection: records}, honor_ids=False
        )

        result = report.details[collection]
        assert report.status == STATUS_SUCCEEDED
        assert report.verified
        assert (result.imported, result.stored) == (2, 2)
        assert result.errors == []
        if key:
            new_ids = {c["name"]: c["id"] for c in store.list("clients")}
            by_amount = {r["amount"]: r[key] for r in store.list(collection)}
            assert by_amount == {5: new_ids["A"], 7: new_ids["C"]}
            assert result.remapped == 2
        _assert_references_resolve(store)

    def test_records_without_ids_get_fresh_ids(self, store: LocalStore):
        import_snapshot(store, {"clients": [{"name": "A"}, {"id": 1, "name": "B"}]})
        clients = {c["name"]: c["id"] for c in store.list("clients")}
        assert clients == {"B": 1, "A": 2}


class TestPerRecordErrors:
    """A failing record is reported and the batch continues."""

    def test_composite_key_violation(self, store: LocalStore):
        report = import_snapshot(
            store,
            {
                "clients": [{"id": 1, "name": "Acme"}],
                "openingBalances": [
                    {"id": 1, "periodType": "monthly", "period": "2024-08", "amount": 10},
                    {"id": 2, "periodType": "month", "period": "2024-08", "amount": 20},
                ],
            },
        )
        balances = report.details["openingBalances"]
        assert report.success
        assert report.status == STATUS_SUCCEEDED_WITH_ERRORS
        assert balances.imported == 1
        assert len(balances.errors) == 1
        assert balances.errors[0].id == 2
        assert store.count("openingBalances") == 1
        assert store.count("clients") == 1

    def test_count_mismatch_is_a_warning(self, store: LocalStore):
        """Two records sharing an id leave one row behind."""
        report = import_snapshot(
            store, {"clients": [{"id": 1, "name": "A"}, {"id": 1, "name": "B"}]}
        )
        clients = report.details["clients"]
        assert report.success
        assert not report.verified
        assert (clients.imported, clients.stored) == (2, 1)
        assert any(w.startswith("clients:") for w in report.warnings)

    def test_rejected_record_is_not_a_mismatch(self, store: LocalStore):
        report = import_snapshot(store, {"clients": ["oops", {"id": 1, "name": "Acme"}]})
        assert report.details["clients"].stored == 1
        assert report.verified
        assert not any("stored" in w for w in report.warnings)

    def test_non_object_record_rejected(self, store: LocalStore):
        report = import_snapshot(store, {"clients": ["oops", {"id": 1, "name": "Acme"}]})
        assert report.details["clients"].imported == 1
        assert report.details["clients"].attempted == 2
        assert len(report.details["clients"].errors) == 1

    def test_unserializable_value_rejected(self, store: LocalStore):
        report = import_snapshot(
            store,
            {"income": [{"id": 1, "amount": float("nan")}, {"id": 2, "amount": 10}]},
        )
        assert report.details["income"].imported == 1
        assert report.details["income"].errors[0].id == 1

    def test_wire_shape(self, store: LocalStore):
        report = import_snapshot(store, {"clients": ["oops", {"id": 1}]})
        data = report.to_dict()
        assert data["success"] is True
        assert data["summary"] == {"imported": 1, "errors": 1}
        assert set(data["details"]) == set(COLLECTIONS)
        assert data["details"]["clients"]["errors"][0]["error"]


class TestReferenceRemapping:
    """Tests for the post-insert reference pass."""

    def test_unresolved_reference_cleared_with_warning(self, store: LocalStore):
        report = import_snapshot(
            store,
            {
                "clients": [{"id": 1, "name": "Acme"}],
                "income": [{"id": 1, "clientId": 99, "amount": 5}],
            },
        )
        assert store.get("income", 1).get("clientId") is None
        assert report.details["income"].unresolved == 1
        assert any("clientId=99" in w for w in report.warnings)

    def test_orphan_todo_moves_to_default_list(self, store: LocalStore):
        import_snapshot(
            store,
            {
                "clients": [{"id": 1, "name": "Acme"}],
                "lists": [{"id": 3, "name": "Default"}],
                "todos": [{"id": 1, "listId": 42, "title": "x"}],
            },
        )
        assert store.get("todos", 1)["listId"] == 3

    def test_numeric_string_reference(self, store: LocalStore):
        import_snapshot(
            store,
            {
                "clients": [{"id": "7", "name": "Acme"}],
                "invoices": [{"id": 1, "clientId": "7", "invoiceNumber": "INV-001"}],
            },
        )
        assert store.get("invoices", 1)["clientId"] == 7

    def test_savings_transactions(self, store: LocalStore):
        import_snapshot(
            store,
            {
                "clients": [{"id": 1, "name": "Acme"}],
                "savings": [{"_id": "aa11", "name": "Gold"}],
                "savingsTransactions": [{"_id": "bb22", "savingsId": "aa11", "amount": 3}],
            },
        )
        transaction = store.list("savingsTransactions")[0]
        assert transaction["savingsId"] == hash_identifier("aa11")
        _assert_references_resolve(store)


class TestIdempotence:
    """Importing the same snapshot twice gives the same store."""

    def test_local_snapshot(self, store: LocalStore, sample_snapshot):
        import_snapshot(store, sample_snapshot)
        first = _all_records(store)
        import_snapshot(store, sample_snapshot)
        assert _all_records(store) == first

    def test_remote_snapshot(self, store: LocalStore, remote_snapshot):
        import_snapshot(store, remote_snapshot)
        first = _all_records(store)
        import_snapshot(store, remote_snapshot)
        assert _all_records(store) == first

    def test_store_assigned_ids(self, store: LocalStore, sample_snapshot):
        import_snapshot(store, sample_snapshot, honor_ids=False)
        first = _all_records(store)
        import_snapshot(store, sample_snapshot, honor_ids=False)
        assert _all_records(store) == first


class TestAtomicity:
    """An engine fault mid-import leaves the previous data in place."""

    def test_fault_after_clear_rolls_back(
        self, populated_store: LocalStore, sample_snapshot, monkeypatch
    ):
        before = _all_records(populated_store)
        original_put = populated_store.put

        def failing_put(collection, record):
            if collection == "todos":
                raise sqlite3.OperationalError("database disk image is malformed")
            return original_put(collection, record)

        monkeypatch.setattr(populated_store, "put", failing_put)
        with pytest.raises(sqlite3.OperationalError):
            import_snapshot(populated_store, sample_snapshot)

        assert _all_records(populated_store) == before
        assert not populated_store.connection.in_transaction

    def test_invalid_snapshot_leaves_store_untouched(self, populated_store: LocalStore):
        before = _all_records(populated_store)
        for snapshot in ({}, {name: [] for name in COLLECTIONS}, None):
            with pytest.raises(InvalidSnapshotError):
                import_snapshot(populated_store, snapshot)
        assert _all_records(populated_store) == before

    def test_lists_only_snapshot_keeps_clients(self, populated_store: LocalStore):
        before = _all_records(populated_store)
        with pytest.raises(InvalidSnapshotError):
            import_snapshot(populated_store, {"lists": [{"id": 9, "name": "Work"}]})
        assert _all_records(populated_store) == before
        assert populated_store.count("clients") == 3


class TestScenarios:
    """End-to-end restore scenarios."""

    def test_export_then_reimport(self, populated_store: LocalStore, tmp_path):
        snapshot = export_snapshot(populated_store)
        assert len(snapshot["clients"]) == 3
        assert len(snapshot["income"]) == 5
        assert len(snapshot["expenses"]) == 2

        with LocalStore(tmp_path / "restored.db") as restored:
            report = import_snapshot(restored, snapshot)
            assert report.status == STATUS_SUCCEEDED
            assert restored.counts() == populated_store.counts()
            child = restored.get("expenses", 2)
            assert child["parentRecurringId"] == 1
            assert restored.get("expenses", 1) is not None

    def test_hex_client_references(self, store: LocalStore, remote_snapshot):
        report = import_snapshot(store, remote_snapshot)
        assert report.success

        clients = {c["mongoId"]: c["id"] for c in store.list("clients")}
        assert clients[CLIENT_HEX] == hash_identifier(CLIENT_HEX)
        expenses = store.list("expenses")
        assert {e["clientId"] for e in expenses} == {
            clients[CLIENT_HEX],
            clients[OTHER_CLIENT_HEX],
        }
        assert store.list("todos")[0]["listId"] == hash_identifier(LIST_HEX)
        _assert_references_resolve(store)

    def test_remote_bookkeeping_stripped(self, store: LocalStore, remote_snapshot):
        import_snapshot(store, remote_snapshot)
        for client in store.list("clients"):
            assert "__v" not in client
            assert "userId" not in client
            assert "_id" not in client

    def test_goal_period_value(self, store: LocalStore):
        import_snapshot(
            store,
            {
                "goals": [
                    {
                        "id": 1,
                        "type": "income",
                        "period": "quarterly",
                        "createdAt": "2024-08-15T00:00:00Z",
                    }
                ]
            },
        )
        assert store.get("goals", 1)["periodValue"] == "2024-Q3"

    def test_opening_balance_period_type(self, store: LocalStore, remote_snapshot):
        import_snapshot(store, remote_snapshot)
        assert store.list("openingBalances")[0]["periodType"] == "monthly"
