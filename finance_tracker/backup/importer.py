"""
Import transaction manager.

Writes transformed records into the local store as one atomic unit spanning
all twelve collections.

Steps (inside one transaction):
    1. Clear every collection, whether or not the snapshot supplies it
    2. Write collections in dependency order. Each record's references to
       already-written collections (clientId / listId / savingsId) are
       rewritten through the id maps before the record itself is upserted,
       so composite unique keys only ever see final values; a failing
       record is counted and reported, the batch continues
    3. Remember pre-import id → written id for lists, clients, savings and
       expenses, keyed by both the record id and its foreign-store id
    4. Self-references (expenses.parentRecurringId) are remapped once their
       whole collection is written, rewriting only changed records

After commit:
    5. Re-count every collection and compare with the imported count; a
       mismatch is a logged warning on the report, not a failure

An engine-level error (anything other than a per-record write failure)
propagates out of the transaction, which rolls every collection back.
"""

import logging
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from finance_tracker.backup.identity import normalize_id
from finance_tracker.backup.reports import CollectionReport, ImportReport, ItemError
from finance_tracker.backup.schema import (
    COLLECTIONS,
    FOREIGN_KEYS,
    IMPORT_ORDER,
    REFERENCED_COLLECTIONS,
)
from finance_tracker.models import Record
from finance_tracker.utils import now_iso

if TYPE_CHECKING:
    from finance_tracker.database import LocalStore

logger = logging.getLogger(__name__)

# Failures that belong to one record rather than to the storage engine.
RECORD_WRITE_ERRORS = (sqlite3.IntegrityError, TypeError, ValueError, OverflowError)

DEFAULT_LIST_NAME = "Default"

IdMap = Dict[Any, int]


def resolve_reference(id_map: IdMap, value: Any) -> Optional[int]:
    """
    Look up a foreign-key value in an id map.

    Tries the raw value first (foreign-store id strings, pre-import ints), then
    its normalized form.

    Returns:
        The written id, or None if the referenced record was not imported.
    """
    if isinstance(value, (int, str)) and not isinstance(value, bool) and value in id_map:
        return id_map[value]
    normalized = normalize_id(value)
    if normalized is not None and normalized in id_map:
        return id_map[normalized]
    return None


def _display_id(record: Record) -> Any:
    return record.mongo_id if record.mongo_id is not None else record.id


class ImportTransactionManager:
    """
    Atomic clear-then-write importer for the local store.

    Args:
        store: Open local store.
        honor_ids: Write records under their own ids. When False every record
            gets a store-assigned id and references are remapped to match.
    """

    def __init__(self, store: "LocalStore", *, honor_ids: bool = True):
        self.store = store
        self.honor_ids = honor_ids

    def execute(
        self,
        batches: Mapping[str, Sequence[Record]],
        rejected: Optional[Mapping[str, Sequence[ItemError]]] = None,
    ) -> ImportReport:
        """
        Replace the store's contents with the given records.

        Args:
            batches: Transformed records per collection. Missing collections
                end up empty.
            rejected: Records the transformer could not convert, reported as
                per-item errors of their collection.

        Returns:
            ImportReport with per-collection counts, errors and warnings.

        Raises:
            sqlite3.Error: On an engine-level failure; nothing is committed.
        """
        start_time = datetime.now()
        report = ImportReport(success=True)
        for name, errors in (rejected or {}).items():
            report.details[name].errors.extend(errors)
            report.details[name].attempted += len(errors)

        id_maps: Dict[str, IdMap] = {name: {} for name in REFERENCED_COLLECTIONS}
        written: Dict[str, List[Record]] = {name: [] for name in COLLECTIONS}

        def work() -> None:
            cleared = sum(self.store.clear(name) for name in COLLECTIONS)
            logger.info(f"Cleared {cleared} existing records")

            for name in IMPORT_ORDER:
                self._write_collection(name, batches.get(name, ()), report, id_maps, written)

            self._remap_self_references(written, id_maps, report)
            self.store.set_meta("last_import", now_iso())

        self.store.run_atomic(COLLECTIONS, work)

        self._verify_counts(report)
        report.duration_seconds = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Import committed: {report.imported} records, {report.error_count} errors "
            f"in {report.duration_seconds:.2f}s"
        )
        return report

    def _write_collection(
        self,
        name: str,
        records: Sequence[Record],
        report: ImportReport,
        id_maps: Dict[str, IdMap],
        written: Dict[str, List[Record]],
    ) -> None:
        result = report.details[name]
        # References into collections written earlier; self-references wait.
        references = {
            key: target for key, target in FOREIGN_KEYS.get(name, {}).items() if target != name
        }
        default_list_id = _default_list_id(written)

        # Explicit ids first, so store-assigned ids cannot land on one of them.
        ordered = [r for r in records if r.id is not None] + [r for r in records if r.id is None]
        for record in ordered:
            result.attempted += 1
            changed = self._resolve_references(
                name, record, references, id_maps, default_list_id, report
            )
            try:
                new_id = self._write(name, record)
            except RECORD_WRITE_ERRORS as e:
                result.errors.append(ItemError(error=str(e), id=_display_id(record)))
                logger.debug(f"Failed to import {name} record {_display_id(record)}: {e}")
                continue

            result.imported += 1
            if changed:
                result.remapped += 1
            if name in id_maps:
                if record.id is not None:
                    id_maps[name][record.id] = new_id
                if record.mongo_id is not None:
                    id_maps[name][record.mongo_id] = new_id
            record.id = new_id
            written[name].append(record)

        if records:
            logger.info(f"Imported {result.imported}/{len(records)} {name}")

    def _write(self, name: str, record: Record) -> int:
        doc = record.to_document()
        if self.honor_ids and record.id is not None:
            return self.store.put(name, doc)
        doc.pop("id", None)
        return self.store.add(name, doc)

    def _resolve_references(
        self,
        name: str,
        record: Record,
        references: Mapping[str, str],
        id_maps: Dict[str, IdMap],
        default_list_id: Optional[int],
        report: ImportReport,
    ) -> bool:
        """
        Point a record's references at written ids.

        Returns:
            True if any reference changed.
        """
        result = report.details[name]
        changed = False
        for key, target in references.items():
            current = record.references()[key]
            if current is None:
                continue

            resolved = resolve_reference(id_maps[target], current)
            if resolved is None:
                result.unresolved += 1
                if name == "todos" and default_list_id is not None:
                    resolved = default_list_id
                message = (
                    f"{name} record {_display_id(record)}: {key}={current!r} not found in {target}"
                )
                report.warnings.append(message)
                logger.warning(message)

            if resolved != current:
                record.set_reference(key, resolved)
                changed = True
        return changed

    def _remap_self_references(
        self,
        written: Dict[str, List[Record]],
        id_maps: Dict[str, IdMap],
        report: ImportReport,
    ) -> None:
        for name, reference_targets in FOREIGN_KEYS.items():
            references = {key: t for key, t in reference_targets.items() if t == name}
            if not references:
                continue
            for record in written[name]:
                if self._resolve_references(name, record, references, id_maps, None, report):
                    self._rewrite(name, record, report.details[name])

    def _rewrite(
        self,
        name: str,
        record: Record,
        result: CollectionReport,
    ) -> None:
        assert record.id is not None
        try:
            self.store.put(name, record.to_document())
        except RECORD_WRITE_ERRORS as e:
            # The row still points at a stale id; drop it rather than keep it.
            self.store.delete(name, record.id)
            result.imported -= 1
            result.errors.append(ItemError(error=str(e), id=_display_id(record)))
            logger.debug(f"Dropped {name} record {record.id} after failed remap: {e}")
            return
        result.remapped += 1

    def _verify_counts(self, report: ImportReport) -> None:
        for name, result in report.details.items():
            result.stored = self.store.count(name)
            if result.stored != result.imported:
                message = f"{name}: {result.stored} records stored, {result.imported} imported"
                report.warnings.append(message)
                logger.warning(f"Import verification mismatch - {message}")


def _default_list_id(written: Mapping[str, Sequence[Record]]) -> Optional[int]:
    return next(
        (lst.id for lst in written["lists"] if getattr(lst, "name", None) == DEFAULT_LIST_NAME),
        None,
    )
