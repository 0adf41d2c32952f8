"""
Finance Tracker Backup - backup, restore and cloud migration for the finance tracker.

This package provides functionality to:
- Export the local store to JSON snapshots and restore them atomically
- Upload a snapshot to the remote store
- Wipe local or remote data behind a two-step confirmation
"""

__version__ = "0.1.0"

from finance_tracker.config import get_config, Config
from finance_tracker.database import LocalStore

__all__ = [
    "get_config",
    "Config",
    "LocalStore",
]
