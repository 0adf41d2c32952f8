"""
Migration client for the remote store.

Two calls, neither of which touches the local store:
    - upload: POST the full snapshot; the remote side imports it and answers
      with a MigrationReport
    - clear_all: DELETE the remote dataset

There are no automatic retries. Transport and HTTP status errors propagate as
``httpx.HTTPError`` unchanged; an unusable response body raises
``MigrationError``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from finance_tracker.backup.reports import MigrationReport
from finance_tracker.config import Config
from finance_tracker.errors import MigrationError

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/migration/upload"
CLEAR_PATH = "/api/migration/clear"


@dataclass
class ClearResult:
    """Outcome of a remote clear."""

    success: bool
    total_deleted: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, payload: Any) -> "ClearResult":
        if not isinstance(payload, Mapping) or "success" not in payload:
            raise MigrationError(f"Unexpected clear response: {payload!r}")
        total = payload.get("totalDeleted")
        return cls(
            success=bool(payload["success"]),
            total_deleted=int(total) if total is not None else None,
            error=payload.get("error"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.total_deleted is not None:
            data["totalDeleted"] = self.total_deleted
        if self.error:
            data["error"] = self.error
        return data


class MigrationClient:
    """
    HTTP client for the remote migration service.

    Args:
        base_url: Service base URL, e.g. ``https://finance.example.com``.
        api_token: Optional bearer token.
        timeout: Request timeout in seconds.
        http_client: Optional preconfigured ``httpx.Client`` (tests pass one
            with a mock transport, or a FastAPI ``TestClient``). A client
            passed in is not closed by ``close()``.
    """

    def __init__(
        self,
        base_url: str = "",
        api_token: Optional[str] = None,
        timeout: float = Config.DEFAULT_REQUEST_TIMEOUT,
        http_client: Optional[httpx.Client] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.Client(base_url=base_url, timeout=timeout)
        self._headers = headers
        self._http = http_client

    @classmethod
    def from_config(cls, config: Config) -> "MigrationClient":
        """
        Build a client from configuration.

        Raises:
            ValueError: If no valid remote URL is configured.
        """
        if not config.validate_remote():
            raise ValueError(
                "Remote migration service is not configured. Set FINANCE_REMOTE_URL."
            )
        assert config.remote_base_url is not None
        return cls(
            config.remote_base_url,
            api_token=config.api_token,
            timeout=config.request_timeout,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def upload(self, snapshot: Mapping[str, Any]) -> MigrationReport:
        """
        Send a full snapshot to the remote store.

        Returns:
            MigrationReport parsed from the response.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx status.
            MigrationError: If the response is not a migration report.
        """
        logger.info(f"Uploading snapshot to {self._http.base_url}{UPLOAD_PATH}")
        response = self._http.post(UPLOAD_PATH, json=dict(snapshot), headers=self._headers)
        response.raise_for_status()
        report = MigrationReport.from_response(_json_body(response))
        logger.info(f"Upload finished: {report.imported} imported, {report.error_count} errors")
        return report

    def clear_all(self) -> ClearResult:
        """
        Delete the whole remote dataset.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx status.
            MigrationError: If the response has no success flag.
        """
        logger.info("Requesting remote clear")
        response = self._http.delete(CLEAR_PATH, headers=self._headers)
        response.raise_for_status()
        result = ClearResult.from_response(_json_body(response))
        logger.info(f"Remote clear finished: success={result.success}, deleted={result.total_deleted}")
        return result


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise MigrationError(f"Remote service returned invalid JSON: {e}") from e
