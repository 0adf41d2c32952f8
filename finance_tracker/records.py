"""
Record operations on the local store.

Deleting a record can touch other collections. Those side effects are
explicit cascade rules, looked up by collection and run in the same
transaction as the delete:

    lists   → reassign the list's todos to the "Default" list, or delete
              them when there is no other Default list
    savings → delete the account's savings transactions
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from finance_tracker.backup.importer import DEFAULT_LIST_NAME
from finance_tracker.backup.schema import COLLECTIONS
from finance_tracker.database import LocalStore
from finance_tracker.utils import now_iso

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PATTERN = re.compile(r"INV-(\d+)")

# Collections whose records carry updatedAt.
_TIMESTAMPED = frozenset(
    {
        "goals",
        "invoices",
        "todos",
        "lists",
        "savings",
        "openingBalances",
        "expectedIncome",
    }
)

# (store, deleted record id) -> number of dependent records affected
CascadeRule = Callable[[LocalStore, int], int]


def reassign_todos_to_default(store: LocalStore, list_id: int) -> int:
    """Move a list's todos to the Default list, or delete them if there is none."""
    todos = store.find("todos", "listId", list_id)
    default = next(
        (lst for lst in store.find("lists", "name", DEFAULT_LIST_NAME) if lst["id"] != list_id),
        None,
    )

    if default is None:
        for todo in todos:
            store.delete("todos", todo["id"])
        logger.info(f"Deleted {len(todos)} todos of list {list_id} (no Default list)")
        return len(todos)

    for todo in todos:
        store.update("todos", todo["id"], {"listId": default["id"], "updatedAt": now_iso()})
    logger.info(f"Moved {len(todos)} todos from list {list_id} to Default list {default['id']}")
    return len(todos)


def delete_savings_transactions(store: LocalStore, savings_id: int) -> int:
    """Delete every transaction of a savings account."""
    transactions = store.find("savingsTransactions", "savingsId", savings_id)
    for transaction in transactions:
        store.delete("savingsTransactions", transaction["id"])
    logger.info(f"Deleted {len(transactions)} transactions of savings {savings_id}")
    return len(transactions)


CASCADE_RULES: Dict[str, List[CascadeRule]] = {
    "lists": [reassign_todos_to_default],
    "savings": [delete_savings_transactions],
}

CASCADE_TARGETS: Dict[str, Tuple[str, ...]] = {
    "lists": ("todos",),
    "savings": ("savingsTransactions",),
}


def delete_record(store: LocalStore, collection: str, record_id: int) -> bool:
    """
    Delete a record and apply its collection's cascade rules atomically.

    Returns:
        True if the record existed.
    """

    def work() -> bool:
        if store.get(collection, record_id) is None:
            return False
        for rule in CASCADE_RULES.get(collection, ()):
            rule(store, record_id)
        return store.delete(collection, record_id)

    return store.run_atomic([collection, *CASCADE_TARGETS.get(collection, ())], work)


def add_record(store: LocalStore, collection: str, record: Dict[str, Any]) -> int:
    """
    Add a record with a store-assigned id, stamping createdAt (and updatedAt
    for collections that track it).

    Returns:
        The new id.
    """
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")
    stamp = now_iso()
    doc = {key: value for key, value in record.items() if key != "id"}
    doc["createdAt"] = stamp
    if collection in _TIMESTAMPED:
        doc["updatedAt"] = stamp
    return store.add(collection, doc)


def next_invoice_number(store: LocalStore) -> str:
    """
    Next invoice number after the highest existing ``INV-nnn``.

    Examples:
        no invoices → "INV-001"; INV-007 and INV-012 present → "INV-013"
    """
    highest = 0
    for invoice in store.list("invoices"):
        match = INVOICE_NUMBER_PATTERN.search(str(invoice.get("invoiceNumber") or ""))
        if match:
            highest = max(highest, int(match.group(1)))
    return f"INV-{highest + 1:03d}"


def _upsert_by_key(
    store: LocalStore, collection: str, record: Dict[str, Any], keys: List[str]
) -> int:
    def work() -> int:
        candidates = store.find(collection, keys[0], record.get(keys[0]))
        existing: Optional[Dict[str, Any]] = next(
            (c for c in candidates if all(c.get(k) == record.get(k) for k in keys[1:])), None
        )
        if existing is None:
            return add_record(store, collection, record)
        changes = {k: v for k, v in record.items() if k not in ("id", "createdAt")}
        changes["updatedAt"] = now_iso()
        store.update(collection, existing["id"], changes)
        return existing["id"]

    return store.run_atomic([collection], work)


def upsert_opening_balance(store: LocalStore, record: Dict[str, Any]) -> int:
    """Set the opening balance for a (periodType, period), updating any existing one."""
    return _upsert_by_key(store, "openingBalances", record, ["periodType", "period"])


def upsert_expected_income(store: LocalStore, record: Dict[str, Any]) -> int:
    """Set a client's expected income for a period, updating any existing one."""
    return _upsert_by_key(store, "expectedIncome", record, ["clientId", "period"])
