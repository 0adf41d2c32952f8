"""
Structured results for import and migration.

Both the local import and the remote upload answer with the same per-collection
shape::

    {
        "success": true,
        "summary": {"imported": 12, "errors": 1},
        "details": {"clients": {"imported": 3, "errors": [{"id": 7, "error": "..."}]}, ...}
    }

``status`` distinguishes a clean run, a run with per-item errors, and a run
that failed before any mutation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from finance_tracker.backup.schema import COLLECTIONS
from finance_tracker.errors import MigrationError

STATUS_SUCCEEDED = "succeeded"
STATUS_SUCCEEDED_WITH_ERRORS = "succeeded_with_errors"
STATUS_FAILED = "failed"


@dataclass
class ItemError:
    """One record that could not be imported."""

    error: str
    id: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.error}
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass
class CollectionReport:
    """Outcome for one collection."""

    imported: int = 0
    errors: List[ItemError] = field(default_factory=list)
    # Local import bookkeeping; not part of the remote wire shape.
    attempted: int = 0
    stored: Optional[int] = None
    remapped: int = 0
    unresolved: int = 0

    @property
    def verified(self) -> bool:
        """True when the committed row count matches the imported count."""
        return self.stored is None or self.stored == self.imported

    def to_dict(self) -> Dict[str, Any]:
        return {"imported": self.imported, "errors": [e.to_dict() for e in self.errors]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CollectionReport":
        errors = [
            ItemError(error=str(item.get("error", "")), id=item.get("id"))
            for item in data.get("errors") or []
            if isinstance(item, Mapping)
        ]
        return cls(imported=int(data.get("imported") or 0), errors=errors)


def _status(success: bool, error_count: int) -> str:
    if not success:
        return STATUS_FAILED
    return STATUS_SUCCEEDED_WITH_ERRORS if error_count else STATUS_SUCCEEDED


@dataclass
class ImportReport:
    """Result of importing a snapshot into the local store."""

    success: bool
    details: Dict[str, CollectionReport] = field(
        default_factory=lambda: {name: CollectionReport() for name in COLLECTIONS}
    )
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def imported(self) -> int:
        return sum(report.imported for report in self.details.values())

    @property
    def error_count(self) -> int:
        return sum(len(report.errors) for report in self.details.values())

    @property
    def status(self) -> str:
        return _status(self.success, self.error_count)

    @property
    def verified(self) -> bool:
        return all(report.verified for report in self.details.values())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "summary": {"imported": self.imported, "errors": self.error_count},
            "details": {name: report.to_dict() for name, report in self.details.items()},
        }
        if self.error:
            data["error"] = self.error
        return data

    def __str__(self) -> str:
        if not self.success:
            return f"Import FAILED: {self.error}"
        lines = [f"Import {self.status.upper()} ({self.duration_seconds:.2f}s)"]
        for name, report in self.details.items():
            line = f"  {name}: {report.imported} imported"
            if report.errors:
                line += f", {len(report.errors)} errors"
            if report.unresolved:
                line += f", {report.unresolved} unresolved references"
            lines.append(line)
        lines.extend(f"  warning: {warning}" for warning in self.warnings)
        return "\n".join(lines)


@dataclass
class MigrationReport:
    """Import report returned by the remote store for an upload."""

    success: bool
    imported: int = 0
    error_count: int = 0
    details: Dict[str, CollectionReport] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def status(self) -> str:
        return _status(self.success, self.error_count)

    @classmethod
    def from_response(cls, payload: Any) -> "MigrationReport":
        """
        Parse the remote store's response body.

        Raises:
            MigrationError: If the payload has no summary/details structure.
        """
        if not isinstance(payload, Mapping):
            raise MigrationError(f"Unexpected migration response: {payload!r}")
        summary = payload.get("summary")
        details = payload.get("details")
        if not isinstance(summary, Mapping) or not isinstance(details, Mapping):
            raise MigrationError("Migration response is missing summary or details")

        return cls(
            success=bool(payload.get("success", True)),
            imported=int(summary.get("imported") or 0),
            error_count=int(summary.get("errors") or 0),
            details={
                name: CollectionReport.from_dict(value)
                for name, value in details.items()
                if isinstance(value, Mapping)
            },
            error=payload.get("error"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "summary": {"imported": self.imported, "errors": self.error_count},
            "details": {name: report.to_dict() for name, report in self.details.items()},
        }

    def __str__(self) -> str:
        if not self.success:
            return f"Upload FAILED: {self.error}"
        lines = [f"Upload {self.status.upper()}: {self.imported} imported, {self.error_count} errors"]
        for name, report in self.details.items():
            lines.append(f"  {name}: {report.imported} imported, {len(report.errors)} errors")
        return "\n".join(lines)
