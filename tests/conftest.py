"""
Pytest fixtures for finance tracker backup tests.

This module provides shared fixtures for testing the backup engine,
including local stores and sample snapshots.

Fixture Categories:
    1. Store fixtures (empty and populated local stores)
    2. Snapshot fixtures (local-export shape, remote-store shape)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - The remote-shaped snapshot uses 24-hex-digit ids like the remote store
"""

from pathlib import Path
from typing import Any, Dict, Iterator

import pytest

from finance_tracker.database import LocalStore


def pytest_configure(config):
    config.addinivalue_line("markers", "property: property-based tests using Hypothesis")


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "finance.db"


@pytest.fixture
def store(store_path: Path) -> Iterator[LocalStore]:
    """Open, empty local store backed by a temp file."""
    local = LocalStore(store_path)
    local.connect()
    yield local
    local.close()


@pytest.fixture
def populated_store(store: LocalStore) -> LocalStore:
    """
    Local store with 3 clients, 5 income records and 2 expenses.

    The second expense is an occurrence of the first (recurring) one.
    """
    for i, name in enumerate(["Acme", "Globex", "Initech"], start=1):
        store.put(
            "clients",
            {"id": i, "name": name, "currency": "EGP", "createdAt": f"2024-01-0{i}T00:00:00.000Z"},
        )
    for i in range(1, 6):
        store.put(
            "income",
            {
                "id": i,
                "clientId": (i % 3) + 1,
                "amount": 1000 * i,
                "currency": "EGP",
                "receivedDate": f"2024-0{i}-15",
            },
        )
    store.put(
        "expenses",
        {"id": 1, "amount": 250, "category": "software", "isRecurring": True, "parentRecurringId": None},
    )
    store.put(
        "expenses",
        {"id": 2, "amount": 250, "category": "software", "isRecurring": False, "parentRecurringId": 1},
    )
    store.put("lists", {"id": 1, "name": "Default", "color": "indigo"})
    return store


# =============================================================================
# Snapshot fixtures
# =============================================================================

CLIENT_HEX = "65a1f0c2e4b0a1b2c3d4e5f6"
OTHER_CLIENT_HEX = "65a1f0c2e4b0a1b2c3d4e5f7"
LIST_HEX = "65a1f0c2e4b0a1b2c3d4e600"


@pytest.fixture
def sample_snapshot() -> Dict[str, Any]:
    """Snapshot in the local export shape (integer ids)."""
    return {
        "clients": [
            {"id": 1, "name": "Acme", "paymentModel": "fixed", "fixedAmount": 5000},
            {"id": 2, "name": "Globex", "paymentModel": "percentage"},
        ],
        "income": [
            {"id": 1, "clientId": 1, "amount": 5000, "currency": "EGP"},
            {"id": 2, "clientId": 2, "amount": 1200, "currency": "USD"},
        ],
        "expenses": [
            {"id": 10, "amount": 99, "isRecurring": True, "parentRecurringId": None},
            {"id": 11, "amount": 99, "isRecurring": False, "parentRecurringId": 10},
        ],
        "debts": [],
        "goals": [
            {"id": 1, "type": "income", "targetAmount": 10000, "period": "monthly", "periodValue": "2024-08"}
        ],
        "invoices": [],
        "todos": [{"id": 1, "listId": 1, "title": "Send invoice"}],
        "lists": [{"id": 1, "name": "Default", "color": "indigo"}],
        "savings": [],
        "savingsTransactions": [],
        "openingBalances": [],
        "expectedIncome": [],
        "exportedAt": "2024-08-15T10:00:00.000Z",
    }


@pytest.fixture
def remote_snapshot() -> Dict[str, Any]:
    """Snapshot in the remote-store shape (hex ``_id`` values, bookkeeping fields)."""
    return {
        "clients": [
            {"_id": CLIENT_HEX, "name": "Acme", "userId": "u1", "__v": 0},
            {"_id": {"$oid": OTHER_CLIENT_HEX}, "name": "Globex", "__v": 3},
        ],
        "expenses": [
            {"_id": "65a1f0c2e4b0a1b2c3d4e501", "clientId": CLIENT_HEX, "amount": 40},
            {
                "_id": "65a1f0c2e4b0a1b2c3d4e502",
                "clientId": {"_id": OTHER_CLIENT_HEX, "name": "Globex"},
                "amount": 60,
            },
        ],
        "lists": [{"_id": LIST_HEX, "name": "Work"}],
        "todos": [{"_id": "65a1f0c2e4b0a1b2c3d4e601", "listId": LIST_HEX, "title": "Call"}],
        "goals": [
            {
                "_id": "65a1f0c2e4b0a1b2c3d4e701",
                "type": "income",
                "period": "quarterly",
                "createdAt": "2024-08-15T00:00:00Z",
            }
        ],
        "openingBalances": [
            {"_id": "65a1f0c2e4b0a1b2c3d4e801", "periodType": "month", "period": "2024-08", "amount": 100}
        ],
    }
