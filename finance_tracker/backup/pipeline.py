"""
Backup pipeline orchestration.

Entry points used by the command line and the service. Each one runs a whole
operation and returns a result object instead of raising for the expected
failure modes:

    run_export  - local store -> snapshot (-> backup file)
    run_import  - snapshot or backup file -> local store
    run_upload  - local store -> snapshot -> remote store

Import Steps:
    1. Read the backup file (when given a path)
    2. Validate the snapshot; an empty or invalid one fails before any write
    3. Transform every record and run the atomic clear-then-write import
    4. Verify per-collection counts after commit
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

import httpx

from finance_tracker.backup.codec import EXPORTED_AT, export_snapshot, import_snapshot
from finance_tracker.backup.migration import MigrationClient
from finance_tracker.backup.reports import (
    STATUS_FAILED,
    STATUS_SUCCEEDED,
    ImportReport,
    MigrationReport,
)
from finance_tracker.backup.schema import COLLECTIONS
from finance_tracker.errors import InvalidSnapshotError, MigrationError
from finance_tracker.snapshot import read_backup_file, write_backup_file

if TYPE_CHECKING:
    from finance_tracker.database import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Result of an export run."""

    success: bool
    counts: Dict[str, int] = field(default_factory=dict)
    snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False)
    backup_path: Optional[Path] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def status(self) -> str:
        return STATUS_SUCCEEDED if self.success else STATUS_FAILED

    def __str__(self) -> str:
        if not self.success:
            return f"Export FAILED: {self.error}"
        lines = [f"Export SUCCESS: {self.total} records ({self.duration_seconds:.2f}s)"]
        if self.backup_path:
            lines.append(f"  File: {self.backup_path}")
        for name, count in self.counts.items():
            lines.append(f"  {name}: {count}")
        return "\n".join(lines)


def run_export(store: "LocalStore", backups_dir: Optional[Path] = None) -> ExportResult:
    """
    Export the local store, optionally writing a backup file.

    Args:
        store: Open local store.
        backups_dir: Where to write the backup file. None keeps the snapshot
            in memory only.

    Returns:
        ExportResult with per-collection counts and the snapshot.
    """
    start_time = datetime.now()
    try:
        logger.info("Step 1: Reading collections...")
        snapshot = export_snapshot(store)

        backup_path = None
        if backups_dir is not None:
            logger.info("Step 2: Writing backup file...")
            backup_path = write_backup_file(snapshot, backups_dir)
    except (sqlite3.Error, OSError) as e:
        logger.error(f"Export failed: {e}")
        return ExportResult(
            success=False,
            error=str(e),
            duration_seconds=(datetime.now() - start_time).total_seconds(),
        )

    if backup_path is not None:
        _record_last_export(store, snapshot[EXPORTED_AT])

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"Export completed in {duration:.2f}s")
    return ExportResult(
        success=True,
        counts={name: len(snapshot[name]) for name in COLLECTIONS},
        snapshot=snapshot,
        backup_path=backup_path,
        duration_seconds=duration,
    )


def _record_last_export(store: "LocalStore", exported_at: str) -> None:
    # Bookkeeping only; the backup file is already written.
    try:
        store.set_meta("last_export", exported_at)
    except sqlite3.Error as e:
        logger.warning(f"Could not record last export time: {e}")


def run_import(
    store: "LocalStore",
    source: Union[Path, str, Dict[str, Any]],
    *,
    honor_ids: bool = True,
) -> ImportReport:
    """
    Import a snapshot into the local store.

    Args:
        store: Open local store.
        source: Parsed snapshot, or the path of a backup file.
        honor_ids: Write records under their own ids.

    Returns:
        ImportReport. A failed report means nothing was changed.
    """
    start_time = datetime.now()
    try:
        if isinstance(source, (str, Path)):
            logger.info(f"Reading backup file: {source}")
            snapshot: Any = read_backup_file(Path(source))
        else:
            snapshot = source
        report = import_snapshot(store, snapshot, honor_ids=honor_ids)
    except (InvalidSnapshotError, FileNotFoundError, sqlite3.Error) as e:
        logger.error(f"Import failed: {e}")
        return ImportReport(
            success=False,
            error=str(e),
            duration_seconds=(datetime.now() - start_time).total_seconds(),
        )

    logger.info(f"Import finished with status {report.status}")
    return report


def run_upload(store: "LocalStore", client: MigrationClient) -> MigrationReport:
    """
    Export the local store and upload it to the remote store.

    Collection data is only read.

    Returns:
        MigrationReport from the remote side, or a failed report carrying the
        transport or service error.
    """
    try:
        snapshot = export_snapshot(store)
        report = client.upload(snapshot)
    except (httpx.HTTPError, MigrationError, sqlite3.Error) as e:
        logger.error(f"Upload failed: {e}")
        return MigrationReport(success=False, error=str(e))

    logger.info(f"Upload finished with status {report.status}")
    return report
