"""
Schema definitions for the local store.

The local store keeps one table per entity collection. Each row is an integer
primary key plus the record document serialized as JSON. Foreign keys and
composite unique keys are enforced through expression indexes on the JSON
document, so the store never needs to know every optional field of a record.

Design Decisions:
    1. The row id is the record id; the document never stores it twice
    2. Plain INTEGER PRIMARY KEY: after a clear, store-assigned ids restart
       from max(id) + 1, so re-importing id-less records is repeatable
    3. Composite keys (openingBalances, expectedIncome) are UNIQUE indexes,
       so a duplicate surfaces as sqlite3.IntegrityError on write
    4. store_meta records the schema version and the last import/export
"""

import logging
import sqlite3
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# Schema version for migration tracking
SCHEMA_VERSION = "15"

# Snapshot key -> table name. Order is the snapshot's member order.
COLLECTIONS: Dict[str, str] = {
    "clients": "clients",
    "income": "income",
    "expenses": "expenses",
    "debts": "debts",
    "goals": "goals",
    "invoices": "invoices",
    "todos": "todos",
    "lists": "lists",
    "savings": "savings",
    "savingsTransactions": "savings_transactions",
    "openingBalances": "opening_balances",
    "expectedIncome": "expected_income",
}

# Referenced collections come before the collections that point at them.
IMPORT_ORDER: Tuple[str, ...] = (
    "lists",
    "clients",
    "savings",
    "expenses",
    "income",
    "debts",
    "goals",
    "invoices",
    "todos",
    "savingsTransactions",
    "openingBalances",
    "expectedIncome",
)

# Collection -> {foreign-key field: referenced collection}
FOREIGN_KEYS: Dict[str, Dict[str, str]] = {
    "income": {"clientId": "clients"},
    "expenses": {"clientId": "clients", "parentRecurringId": "expenses"},
    "invoices": {"clientId": "clients"},
    "todos": {"listId": "lists"},
    "savingsTransactions": {"savingsId": "savings"},
    "expectedIncome": {"clientId": "clients"},
}

# A backup must carry data in at least one of these to be importable.
DATA_COLLECTIONS: Tuple[str, ...] = ("clients", "income", "expenses", "debts", "goals")

# Collections whose ids other records point at.
REFERENCED_COLLECTIONS: Tuple[str, ...] = ("lists", "clients", "savings", "expenses")


def table_for(collection: str) -> str:
    """
    Resolve a snapshot collection name to its table name.

    Raises:
        ValueError: If the collection is unknown. Table names are interpolated
            into SQL, so only known names are accepted.
    """
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"Unknown collection: {collection!r}") from None


def _collection_table(table: str) -> str:
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY,
    doc TEXT NOT NULL CHECK (json_valid(doc))
);
"""


SCHEMA_DDL = (
    "".join(_collection_table(table) for table in COLLECTIONS.values())
    + """
-- =============================================================================
-- Foreign-key lookups
-- =============================================================================
-- Used by cascade rules and reference remapping.
--
CREATE INDEX IF NOT EXISTS idx_income_client
    ON income(json_extract(doc, '$.clientId'));

CREATE INDEX IF NOT EXISTS idx_expenses_client
    ON expenses(json_extract(doc, '$.clientId'));

CREATE INDEX IF NOT EXISTS idx_expenses_parent
    ON expenses(json_extract(doc, '$.parentRecurringId'));

CREATE INDEX IF NOT EXISTS idx_invoices_client
    ON invoices(json_extract(doc, '$.clientId'));

CREATE INDEX IF NOT EXISTS idx_todos_list
    ON todos(json_extract(doc, '$.listId'));

CREATE INDEX IF NOT EXISTS idx_lists_name
    ON lists(json_extract(doc, '$.name'));

CREATE INDEX IF NOT EXISTS idx_savings_transactions_savings
    ON savings_transactions(json_extract(doc, '$.savingsId'));

-- =============================================================================
-- Composite keys
-- =============================================================================
-- One opening balance per (periodType, period); one expectation per
-- (clientId, period).
--
CREATE UNIQUE INDEX IF NOT EXISTS uq_opening_balances_period
    ON opening_balances(json_extract(doc, '$.periodType'), json_extract(doc, '$.period'));

CREATE UNIQUE INDEX IF NOT EXISTS uq_expected_income_client_period
    ON expected_income(json_extract(doc, '$.clientId'), json_extract(doc, '$.period'));

-- =============================================================================
-- store_meta: key-value metadata
-- =============================================================================
-- Common keys:
--   - 'schema_version'
--   - 'last_import': timestamp of the last committed import
--   - 'last_export': timestamp of the last export
--
CREATE TABLE IF NOT EXISTS store_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

INSERT OR REPLACE INTO store_meta (key, value, updated_at)
VALUES ('schema_version', '{schema_version}', strftime('%Y-%m-%dT%H:%M:%SZ', 'now'));
""".format(
        schema_version=SCHEMA_VERSION
    )
)


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create the local store schema if it doesn't exist.

    Idempotent: every statement uses IF NOT EXISTS.

    Args:
        conn: Open connection to the local store.

    Raises:
        sqlite3.Error: If schema creation fails.
    """
    try:
        conn.executescript(SCHEMA_DDL)
        logger.debug(f"Schema created/verified (version {SCHEMA_VERSION})")
    except sqlite3.Error as e:
        logger.error(f"Schema creation failed: {e}")
        raise


def get_table_names(conn: sqlite3.Connection) -> List[str]:
    """Get all user table names in the store."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' "
        "AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    )
    return [row[0] for row in cursor.fetchall()]


def verify_schema(conn: sqlite3.Connection) -> bool:
    """
    Verify that every collection table and the metadata table exist.

    Returns:
        True if schema is valid, False otherwise.
    """
    required_tables = set(COLLECTIONS.values()) | {"store_meta"}
    return required_tables.issubset(set(get_table_names(conn)))
