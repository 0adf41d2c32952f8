"""
Local store connection and collection operations.

The local store is a SQLite database holding one table per entity collection
(see ``finance_tracker.backup.schema``). ``LocalStore`` is the explicit store
handle the engine receives; there is no module-level connection.

Collaborator interface used by the backup engine:
    list, get, put, add, clear, run_atomic, delete_store, reopen_store
"""

import json
import logging
import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from finance_tracker.backup.schema import COLLECTIONS, create_schema, table_for, verify_schema
from finance_tracker.errors import StoreBlockedError
from finance_tracker.utils import now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMORY = ":memory:"

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Files SQLite may leave next to the main database file.
_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def _encode(record: Dict[str, Any]) -> str:
    doc = {key: value for key, value in record.items() if key != "id"}
    return json.dumps(doc, ensure_ascii=False, allow_nan=False, separators=(",", ":"))


def _decode(row: Iterable[Any]) -> Dict[str, Any]:
    row_id, doc = row
    record = {"id": row_id}
    record.update(json.loads(doc))
    return record


def _json_path(field: str) -> str:
    """
    Build a JSON path for a record field.

    Field names are interpolated so the expression matches the schema's
    expression indexes; only plain identifiers are accepted.
    """
    if not _FIELD_PATTERN.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return f"json_extract(doc, '$.{field}')"


class LocalStore:
    """
    Connection manager and collection API for the local store.

    Opens the database in autocommit mode; multi-statement work goes through
    ``run_atomic``, which owns BEGIN/COMMIT/ROLLBACK.
    """

    def __init__(self, db_path: Union[str, Path], *, timeout: float = 5.0):
        """
        Initialize the store handle. The database is opened lazily.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
            timeout: Seconds to wait on a locked database.
        """
        self.db_path = db_path if db_path == MEMORY else Path(db_path)
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def connect(self) -> sqlite3.Connection:
        """
        Open the store and make sure the schema exists.

        Returns:
            SQLite connection object.

        Raises:
            sqlite3.Error: If the database cannot be opened or initialised.
        """
        if self._connection is not None:
            return self._connection

        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
            create_schema(conn)
        except sqlite3.Error as e:
            logger.error(f"Failed to open local store: {e}")
            raise

        self._connection = conn
        logger.info(f"Opened local store: {self.db_path}")
        return conn

    def close(self) -> None:
        """Close the store connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("Local store closed")

    @property
    def connection(self) -> sqlite3.Connection:
        """
        Get the open connection.

        Raises:
            RuntimeError: If the store has not been opened.
        """
        if self._connection is None:
            raise RuntimeError("Local store is not open. Call connect() first.")
        return self._connection

    # ------------------------------------------------------------------
    # Collection operations
    # ------------------------------------------------------------------

    def list(self, collection: str) -> List[Dict[str, Any]]:
        """Return every record of a collection, ordered by id."""
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"SELECT id, doc FROM {table} ORDER BY id;")
            return [_decode(row) for row in cursor.fetchall()]

    def get(self, collection: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Return one record by id, or None."""
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"SELECT id, doc FROM {table} WHERE id = ?;", (record_id,))
            row = cursor.fetchone()
            return _decode(row) if row else None

    def put(self, collection: str, record: Dict[str, Any]) -> int:
        """
        Upsert a record by its id.

        A record without an id is added with a store-assigned id. Conflicts on
        a composite unique key raise sqlite3.IntegrityError instead of
        replacing the other row.

        Returns:
            The id the record was written under.
        """
        record_id = record.get("id")
        if record_id is None:
            return self.add(collection, record)
        if not isinstance(record_id, int) or isinstance(record_id, bool):
            raise TypeError(f"Record id must be an integer, got {record_id!r}")

        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(
                f"INSERT INTO {table} (id, doc) VALUES (?, ?) "
                f"ON CONFLICT(id) DO UPDATE SET doc = excluded.doc;",
                (record_id, _encode(record)),
            )
        return record_id

    def add(self, collection: str, record: Dict[str, Any]) -> int:
        """
        Insert a record and let the store assign its id.

        Returns:
            The newly assigned id.
        """
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"INSERT INTO {table} (doc) VALUES (?);", (_encode(record),))
            new_id = cursor.lastrowid
        if new_id is None:
            raise sqlite3.DatabaseError(f"No id assigned for new {collection} record")
        return new_id

    def update(self, collection: str, record_id: int, changes: Dict[str, Any]) -> bool:
        """
        Merge changes into an existing record.

        Returns:
            True if the record existed, False otherwise.
        """
        current = self.get(collection, record_id)
        if current is None:
            return False
        current.update({key: value for key, value in changes.items() if key != "id"})
        self.put(collection, current)
        return True

    def delete(self, collection: str, record_id: int) -> bool:
        """Delete one record. Returns True if a row was removed."""
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"DELETE FROM {table} WHERE id = ?;", (record_id,))
            return cursor.rowcount > 0

    def clear(self, collection: str) -> int:
        """
        Delete every record of a collection.

        Returns:
            Number of rows removed.
        """
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"DELETE FROM {table};")
            return cursor.rowcount

    def count(self, collection: str) -> int:
        """Get the number of records in a collection."""
        table = table_for(collection)
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"SELECT COUNT(*) FROM {table};")
            result = cursor.fetchone()
            return result[0] if result else 0

    def counts(self) -> Dict[str, int]:
        """Get record counts for every collection."""
        return {collection: self.count(collection) for collection in COLLECTIONS}

    def find(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        """
        Return records whose top-level field equals a value.

        A None value matches records where the field is null or missing.
        """
        table = table_for(collection)
        expression = _json_path(field)
        with closing(self.connection.cursor()) as cursor:
            if value is None:
                cursor.execute(f"SELECT id, doc FROM {table} WHERE {expression} IS NULL ORDER BY id;")
            else:
                cursor.execute(
                    f"SELECT id, doc FROM {table} WHERE {expression} = ? ORDER BY id;", (value,)
                )
            return [_decode(row) for row in cursor.fetchall()]

    def run_atomic(self, collections: Iterable[str], fn: Callable[[], T]) -> T:
        """
        Run fn inside one transaction spanning the given collections.

        SQLite locks the whole database, so the collection names are only
        validated; a nested call becomes a savepoint of the outer transaction.
        Any exception rolls the work back and propagates.

        Returns:
            Whatever fn returns.
        """
        names = list(collections)
        for collection in names:
            table_for(collection)

        conn = self.connection
        if conn.in_transaction:
            conn.execute("SAVEPOINT run_atomic;")
            try:
                result = fn()
            except BaseException:
                conn.execute("ROLLBACK TO run_atomic;")
                conn.execute("RELEASE run_atomic;")
                raise
            conn.execute("RELEASE run_atomic;")
            return result

        conn.execute("BEGIN IMMEDIATE;")
        try:
            result = fn()
        except BaseException:
            conn.execute("ROLLBACK;")
            logger.warning(f"Transaction over {len(names)} collections rolled back")
            raise
        conn.execute("COMMIT;")
        return result

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def delete_store(self) -> None:
        """
        Close the store and delete its files.

        Raises:
            StoreBlockedError: If a transaction is open or the OS refuses to
                remove a file that is still held open.
        """
        if self._connection is not None and self._connection.in_transaction:
            raise StoreBlockedError("Local store has a transaction in progress")

        self.close()
        if self.is_memory:
            logger.info("Discarded in-memory store")
            return

        assert isinstance(self.db_path, Path)
        targets = [self.db_path] + [
            self.db_path.with_name(self.db_path.name + suffix) for suffix in _SIDECAR_SUFFIXES
        ]
        for target in targets:
            try:
                target.unlink(missing_ok=True)
            except PermissionError as e:
                raise StoreBlockedError(f"Local store is held open: {e}") from e
        logger.info(f"Deleted local store: {self.db_path}")

    def reopen_store(self) -> sqlite3.Connection:
        """Close (if needed) and reopen the store, recreating the schema."""
        self.close()
        return self.connect()

    def verify(self) -> bool:
        """Check that the schema is intact."""
        return verify_schema(self.connection)

    def get_meta(self, key: str) -> Optional[str]:
        """Get a store_meta value, or None."""
        with closing(self.connection.cursor()) as cursor:
            cursor.execute("SELECT value FROM store_meta WHERE key = ?;", (key,))
            result = cursor.fetchone()
            return result[0] if result else None

    def set_meta(self, key: str, value: str) -> None:
        """Insert or update a store_meta value."""
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO store_meta (key, value, updated_at) VALUES (?, ?, ?);",
                (key, value, now_iso()),
            )
        logger.debug(f"Updated store meta: {key} = {value}")
