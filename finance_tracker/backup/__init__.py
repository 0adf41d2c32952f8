"""
Backup, restore and migration engine for the finance tracker.

Moves the twelve entity collections between the local store, JSON backup
files and the remote store.

Architecture Overview:
    local store  ──export──→  snapshot  ──upload──→  remote store
                 ←─import───  (dict / backup file)

Key Design Decisions:
    1. Every foreign identifier is folded into a deterministic integer id
    2. Import is clear-then-write inside one transaction over all collections
    3. References are remapped after all collections are written
    4. Destructive operators take a two-step confirmation as a precondition
"""

from finance_tracker.backup.schema import COLLECTIONS, IMPORT_ORDER, SCHEMA_VERSION
from finance_tracker.backup.identity import normalize_id, hash_identifier
from finance_tracker.backup.transformers import (
    transform,
    transform_document,
    derive_period_value,
)
from finance_tracker.backup.reports import (
    ImportReport,
    MigrationReport,
    CollectionReport,
    ItemError,
)
from finance_tracker.backup.importer import ImportTransactionManager
from finance_tracker.backup.codec import export_snapshot, import_snapshot, validate_snapshot
from finance_tracker.backup.migration import MigrationClient, ClearResult
from finance_tracker.backup.wipe import (
    WipeConfirmation,
    WipeResult,
    wipe_local,
    wipe_remote,
)
from finance_tracker.backup.pipeline import run_export, run_import, run_upload, ExportResult

__all__ = [
    # Schema
    "COLLECTIONS",
    "IMPORT_ORDER",
    "SCHEMA_VERSION",
    # Identifiers
    "normalize_id",
    "hash_identifier",
    # Transformer
    "transform",
    "transform_document",
    "derive_period_value",
    # Reports
    "ImportReport",
    "MigrationReport",
    "CollectionReport",
    "ItemError",
    # Import
    "ImportTransactionManager",
    # Codec
    "export_snapshot",
    "import_snapshot",
    "validate_snapshot",
    # Migration
    "MigrationClient",
    "ClearResult",
    # Destructive operators
    "WipeConfirmation",
    "WipeResult",
    "wipe_local",
    "wipe_remote",
    # Pipeline
    "run_export",
    "run_import",
    "run_upload",
    "ExportResult",
]
