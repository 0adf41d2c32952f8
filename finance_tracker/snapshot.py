"""
Backup file utilities.

Exported snapshots are written as pretty-printed JSON files with a timestamp
in the name, so the backups directory doubles as a history:

    backups/
        finance-backup_20240815_103045.json
        finance-backup_20240816_090000.json

A second backup within the same second gets a ``-1``, ``-2``, ... suffix.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from finance_tracker.errors import InvalidSnapshotError

logger = logging.getLogger(__name__)

BACKUP_STEM = "finance-backup"


@dataclass(frozen=True)
class BackupInfo:
    """Information about an existing backup file."""

    path: Path
    created_at: datetime
    sequence: int = 0

    @property
    def age_days(self) -> float:
        """Get the age of the backup in days."""
        delta = datetime.now() - self.created_at
        return delta.total_seconds() / (24 * 60 * 60)


# finance-backup_YYYYmmdd_HHMMSS[-N].json
_BACKUP_PATTERN = re.compile(r"^(.+)_(\d{8})_(\d{6})(?:-(\d+))?\.json$")


def _backup_filename(created_at: datetime, sequence: int = 0) -> str:
    ts = created_at.strftime("%Y%m%d_%H%M%S")
    suffix = f"-{sequence}" if sequence else ""
    return f"{BACKUP_STEM}_{ts}{suffix}.json"


def _parse_backup_filename(path: Path) -> Optional[BackupInfo]:
    """
    Parse a backup filename to extract its timestamp.

    Returns:
        BackupInfo if the filename matches, None otherwise.
    """
    match = _BACKUP_PATTERN.match(path.name)
    if not match or match.group(1) != BACKUP_STEM:
        return None
    try:
        created_at = datetime.strptime(f"{match.group(2)}_{match.group(3)}", "%Y%m%d_%H%M%S")
    except ValueError:
        return None
    return BackupInfo(path=path, created_at=created_at, sequence=int(match.group(4) or 0))


def write_backup_file(
    snapshot: Mapping[str, Any],
    backups_dir: Path,
    *,
    created_at: Optional[datetime] = None,
) -> Path:
    """
    Write a snapshot to a new timestamped file.

    Args:
        snapshot: Snapshot dict (see ``export_snapshot``).
        backups_dir: Directory for backup files; created if missing.
        created_at: Timestamp for the filename (default: now).

    Returns:
        Path of the written file.
    """
    backups_dir = Path(backups_dir).expanduser().resolve()
    backups_dir.mkdir(parents=True, exist_ok=True)
    created_at = created_at or datetime.now()

    sequence = 0
    path = backups_dir / _backup_filename(created_at)
    while path.exists():
        sequence += 1
        path = backups_dir / _backup_filename(created_at, sequence)

    path.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Backup written: {path}")
    return path


def read_backup_file(path: Path) -> Dict[str, Any]:
    """
    Read a backup file.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidSnapshotError: If the file is not a JSON object.
    """
    path = Path(path).expanduser()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidSnapshotError(f"Backup file is not valid JSON: {path.name} ({e})") from e
    if not isinstance(data, dict):
        raise InvalidSnapshotError(f"Backup file does not contain an object: {path.name}")
    logger.debug(f"Read backup file: {path}")
    return data


def list_backups(backups_dir: Path) -> List[BackupInfo]:
    """
    List backup files in a directory, newest first.

    Files that do not follow the backup naming pattern are ignored.
    """
    backups_dir = Path(backups_dir).expanduser().resolve()
    if not backups_dir.exists():
        return []

    backups: List[BackupInfo] = []
    for f in backups_dir.iterdir():
        if not f.is_file():
            continue
        info = _parse_backup_filename(f)
        if info:
            backups.append(info)

    backups.sort(key=lambda b: (b.created_at, b.sequence), reverse=True)
    return backups


def get_latest_backup(backups_dir: Path) -> Optional[BackupInfo]:
    """Get the most recent backup, or None if there are none."""
    backups = list_backups(backups_dir)
    return backups[0] if backups else None


def cleanup_old_backups(backups_dir: Path, keep_count: int = 10) -> List[Path]:
    """
    Remove old backups, keeping only the most recent ones.

    Returns:
        List of paths that were deleted.
    """
    deleted: List[Path] = []
    for backup in list_backups(backups_dir)[keep_count:]:
        try:
            backup.path.unlink()
            deleted.append(backup.path)
            logger.info(f"Deleted old backup: {backup.path.name}")
        except OSError as e:
            logger.warning(f"Failed to delete backup {backup.path}: {e}")
    return deleted
