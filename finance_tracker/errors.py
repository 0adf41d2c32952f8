"""
Exception types raised by the backup engine.

Transport failures from the HTTP client (``httpx.HTTPError``) are not wrapped;
they reach the caller unchanged.
"""


class BackupError(RuntimeError):
    """Base class for backup, restore and migration failures."""


class InvalidSnapshotError(BackupError):
    """Raised when a snapshot is not a mapping or carries no usable data."""

    def __init__(self, message: str = "Backup appears to be empty or invalid. No data found."):
        super().__init__(message)


class StoreBlockedError(BackupError):
    """Raised when the local store cannot be deleted because a handle is still open."""


class ConfirmationRequiredError(BackupError):
    """Raised when a destructive operator runs without two explicit confirmations."""


class MigrationError(BackupError):
    """Raised when the remote store answers with a payload we cannot interpret."""
