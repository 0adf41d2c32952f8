"""
Destructive operators: wipe the local store or the remote dataset.

Both operators require a ``WipeConfirmation`` that has been confirmed twice.
Collecting those confirmations (prompts, dialogs) is the caller's job; the
operators only check the precondition.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import httpx

from finance_tracker.backup.migration import MigrationClient
from finance_tracker.backup.schema import COLLECTIONS
from finance_tracker.config import Config
from finance_tracker.errors import (
    ConfirmationRequiredError,
    MigrationError,
    StoreBlockedError,
)

if TYPE_CHECKING:
    from finance_tracker.database import LocalStore

logger = logging.getLogger(__name__)

REQUIRED_CONFIRMATIONS = 2

METHOD_RECREATE = "recreate"
METHOD_CLEAR = "clear"
METHOD_REMOTE = "remote"


class WipeConfirmation:
    """
    Two-step confirmation for a destructive operation.

    A confirmation authorizes one wipe: ``require()`` spends it.

    Example:
        >>> confirmation = WipeConfirmation("local")
        >>> confirmation.confirm().confirm().is_confirmed
        True
    """

    def __init__(self, target: str):
        self.target = target
        self.count = 0
        self.spent = False

    def confirm(self) -> "WipeConfirmation":
        """Record one explicit confirmation."""
        self.count += 1
        logger.debug(f"Wipe of {self.target} confirmed ({self.count}/{REQUIRED_CONFIRMATIONS})")
        return self

    @property
    def is_confirmed(self) -> bool:
        return self.count >= REQUIRED_CONFIRMATIONS and not self.spent

    def require(self) -> None:
        """
        Check the confirmation and mark it spent.

        Raises:
            ConfirmationRequiredError: If fewer than two confirmations were
                given, or the confirmation was already used.
        """
        if self.spent:
            raise ConfirmationRequiredError(
                f"This confirmation to wipe {self.target} data was already used"
            )
        if not self.is_confirmed:
            raise ConfirmationRequiredError(
                f"Wiping {self.target} data needs {REQUIRED_CONFIRMATIONS} confirmations, "
                f"got {self.count}"
            )
        self.spent = True


@dataclass
class WipeResult:
    """Result of a wipe."""

    success: bool
    method: Optional[str] = None
    total_deleted: Optional[int] = None
    error: Optional[str] = None

    def __str__(self) -> str:
        if not self.success:
            return f"Wipe FAILED: {self.error}"
        deleted = f", {self.total_deleted} records deleted" if self.total_deleted is not None else ""
        return f"Wipe SUCCESS ({self.method}){deleted}"


def wipe_local(
    store: "LocalStore",
    confirmation: WipeConfirmation,
    *,
    retry_delay: float = Config.DEFAULT_WIPE_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> WipeResult:
    """
    Delete every local record.

    Tries to delete and recreate the whole store, retrying once after
    ``retry_delay`` when the delete is blocked. If that path fails, clears
    every collection inside one transaction instead. The store is open and
    usable when this returns successfully.

    Raises:
        ConfirmationRequiredError: Without two confirmations; nothing is touched.
    """
    confirmation.require()

    total = sum(store.counts().values()) if store.is_open else None

    try:
        _delete_and_recreate(store, retry_delay, sleep)
        logger.info("Local store deleted and recreated")
        return WipeResult(success=True, method=METHOD_RECREATE, total_deleted=total)
    except (StoreBlockedError, OSError, sqlite3.Error) as e:
        logger.warning(f"Delete-and-recreate failed ({e}); clearing collections instead")

    try:
        if not store.is_open:
            store.connect()
        cleared = store.run_atomic(
            COLLECTIONS, lambda: sum(store.clear(name) for name in COLLECTIONS)
        )
    except (sqlite3.Error, RuntimeError) as e:
        logger.error(f"Local wipe failed: {e}")
        return WipeResult(success=False, error=str(e))

    logger.info(f"Local store cleared ({cleared} records)")
    return WipeResult(success=True, method=METHOD_CLEAR, total_deleted=cleared)


def _delete_and_recreate(
    store: "LocalStore", retry_delay: float, sleep: Callable[[float], None]
) -> None:
    try:
        store.delete_store()
    except StoreBlockedError as e:
        logger.warning(f"Store delete blocked ({e}); retrying in {retry_delay}s")
        sleep(retry_delay)
        store.delete_store()
    store.reopen_store()


def wipe_remote(client: MigrationClient, confirmation: WipeConfirmation) -> WipeResult:
    """
    Delete the remote dataset. The local store is never touched.

    A transport or server failure becomes a failed result carrying its message.

    Raises:
        ConfirmationRequiredError: Without two confirmations; nothing is sent.
    """
    confirmation.require()

    try:
        result = client.clear_all()
    except (httpx.HTTPError, MigrationError) as e:
        logger.error(f"Remote wipe failed: {e}")
        return WipeResult(success=False, method=METHOD_REMOTE, error=str(e))

    if not result.success:
        logger.error(f"Remote wipe refused: {result.error}")
    return WipeResult(
        success=result.success,
        method=METHOD_REMOTE,
        total_deleted=result.total_deleted,
        error=result.error,
    )
