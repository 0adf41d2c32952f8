"""
Snapshot codec: export the local store to a snapshot and import one back.

A snapshot is a plain JSON-compatible dict with one list per collection plus
an ``exportedAt`` timestamp::

    {"clients": [...], "income": [...], ..., "expectedIncome": [...],
     "exportedAt": "2024-08-15T10:00:00.000Z"}
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping

from finance_tracker.backup.importer import ImportTransactionManager
from finance_tracker.backup.reports import ImportReport, ItemError
from finance_tracker.backup.schema import COLLECTIONS, DATA_COLLECTIONS, IMPORT_ORDER
from finance_tracker.backup.transformers import transform
from finance_tracker.errors import InvalidSnapshotError
from finance_tracker.models import Record
from finance_tracker.utils import now_iso

if TYPE_CHECKING:
    from finance_tracker.database import LocalStore

logger = logging.getLogger(__name__)

EXPORTED_AT = "exportedAt"


def export_snapshot(store: "LocalStore") -> Dict[str, Any]:
    """
    Read every collection in full. The store is only read.

    Empty collections export as empty lists.

    Returns:
        Snapshot dict keyed by collection name, plus ``exportedAt``.
    """
    snapshot: Dict[str, Any] = {name: store.list(name) for name in COLLECTIONS}
    snapshot[EXPORTED_AT] = now_iso()

    total = sum(len(snapshot[name]) for name in COLLECTIONS)
    logger.info(f"Exported {total} records from {len(COLLECTIONS)} collections")
    return snapshot


def validate_snapshot(snapshot: Any) -> Dict[str, List[Any]]:
    """
    Check that a snapshot is an object carrying finance data.

    At least one of clients, income, expenses, debts or goals must be
    non-empty; lists, todos and the other collections alone do not make a
    usable backup. A member that is present but not a list is ignored with a
    warning.

    Returns:
        The recognized collection lists, keyed by collection name.

    Raises:
        InvalidSnapshotError: If snapshot is not a mapping, or has no data in
            any of the finance collections.
    """
    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshotError()

    collections: Dict[str, List[Any]] = {}
    for name in COLLECTIONS:
        value = snapshot.get(name)
        if value is None:
            continue
        if not isinstance(value, list):
            logger.warning(f"Ignoring {name}: expected a list, got {type(value).__name__}")
            continue
        collections[name] = value

    if not any(collections.get(name) for name in DATA_COLLECTIONS):
        raise InvalidSnapshotError()
    return collections


def import_snapshot(
    store: "LocalStore", snapshot: Any, *, honor_ids: bool = True
) -> ImportReport:
    """
    Replace the local store's contents with a snapshot.

    Validation happens before the store is touched. Collections the snapshot
    does not supply end up empty.

    Args:
        store: Open local store.
        snapshot: Parsed snapshot.
        honor_ids: Write records under their own ids (see
            ImportTransactionManager).

    Returns:
        ImportReport for the committed import.

    Raises:
        InvalidSnapshotError: If the snapshot is empty or invalid.
        sqlite3.Error: On an engine-level failure; nothing is committed.
    """
    collections = validate_snapshot(snapshot)

    batches: Dict[str, List[Record]] = {}
    rejected: Dict[str, List[ItemError]] = {}
    for name in IMPORT_ORDER:
        raw_records = collections.get(name)
        if not raw_records:
            continue
        records: List[Record] = []
        for raw in raw_records:
            try:
                records.append(transform(name, raw))
            except (TypeError, ValueError) as e:
                raw_id = raw.get("_id", raw.get("id")) if isinstance(raw, Mapping) else None
                rejected.setdefault(name, []).append(ItemError(error=str(e), id=raw_id))
                logger.debug(f"Rejected {name} record {raw_id}: {e}")
        batches[name] = records
        logger.debug(f"Transformed {len(records)}/{len(raw_records)} {name}")

    manager = ImportTransactionManager(store, honor_ids=honor_ids)
    return manager.execute(batches, rejected)
