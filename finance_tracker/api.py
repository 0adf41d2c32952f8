"""
FastAPI migration service.

Plays the remote store for the Migration Client: accepts an uploaded
snapshot and imports it with the same engine the local import uses, and
clears the server-side dataset on request.

The server-side store lives at FINANCE_REMOTE_DB_PATH. When
FINANCE_API_TOKEN is set, every migration call needs a matching bearer
token.

Run with:
    uvicorn finance_tracker.api:app --port 8000
"""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, HTTPException

from finance_tracker.backup.codec import import_snapshot
from finance_tracker.backup.schema import COLLECTIONS
from finance_tracker.database import LocalStore
from finance_tracker.errors import InvalidSnapshotError

logger = logging.getLogger(__name__)


def _get_store_path() -> Path:
    """Get the path of the server-side store."""
    return Path(
        os.getenv(
            "FINANCE_REMOTE_DB_PATH",
            str(Path.home() / ".finance_tracker" / "remote.db"),
        )
    )


def _open_store() -> LocalStore:
    store = LocalStore(_get_store_path())
    try:
        store.connect()
    except sqlite3.Error as e:
        raise HTTPException(
            status_code=503,
            detail={"success": False, "error": f"Store unavailable: {e}"},
        ) from e
    return store


def _check_token(authorization: Optional[str]) -> None:
    expected = os.getenv("FINANCE_API_TOKEN")
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(status_code=401, detail={"success": False, "error": "Unauthorized"})


app = FastAPI(
    title="Finance Tracker Migration API",
    version="0.1.0",
    description="Receives snapshot uploads and remote wipe requests.",
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also reports whether the store file exists."""
    path = _get_store_path()
    return {
        "status": "ok",
        "store_exists": path.exists(),
        "store_path": str(path),
    }


@app.post("/api/migration/upload")
def upload(
    snapshot: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """
    Import an uploaded snapshot into the server-side store.

    Answers with the migration report shape: ``success``, ``summary``,
    ``details``.
    """
    _check_token(authorization)
    store = _open_store()
    try:
        report = import_snapshot(store, snapshot)
    except InvalidSnapshotError as e:
        raise HTTPException(status_code=400, detail={"success": False, "error": str(e)}) from e
    except sqlite3.Error as e:
        logger.error(f"Upload import failed: {e}")
        raise HTTPException(status_code=500, detail={"success": False, "error": str(e)}) from e
    finally:
        store.close()

    logger.info(f"Upload imported: {report.imported} records, {report.error_count} errors")
    return report.to_dict()


@app.delete("/api/migration/clear")
def clear(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    """Delete every record of the server-side store."""
    _check_token(authorization)
    store = _open_store()
    try:
        total = store.run_atomic(
            COLLECTIONS, lambda: sum(store.clear(name) for name in COLLECTIONS)
        )
    except sqlite3.Error as e:
        logger.error(f"Remote clear failed: {e}")
        return {"success": False, "error": str(e)}
    finally:
        store.close()

    logger.info(f"Remote store cleared: {total} records")
    return {"success": True, "totalDeleted": total}
