"""
Tests for the remote migration client.

The remote service is replaced by an ``httpx.MockTransport`` so each test
controls exactly what comes back over the wire.
"""

import json

import httpx
import pytest

from finance_tracker.backup.migration import CLEAR_PATH, UPLOAD_PATH, ClearResult, MigrationClient
from finance_tracker.backup.reports import STATUS_SUCCEEDED_WITH_ERRORS
from finance_tracker.config import Config
from finance_tracker.errors import MigrationError

BASE_URL = "https://finance.example.test"

REPORT = {
    "success": True,
    "summary": {"imported": 3, "errors": 1},
    "details": {
        "clients": {"imported": 2, "errors": []},
        "income": {"imported": 1, "errors": [{"id": 7, "error": "bad amount"}]},
    },
}


def _client(handler, **kwargs) -> MigrationClient:
    http = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return MigrationClient(http_client=http, **kwargs)


class TestUpload:
    """Tests for MigrationClient.upload."""

    def test_posts_snapshot(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=REPORT)

        snapshot = {"clients": [{"id": 1, "name": "Acme"}], "exportedAt": "2024-08-15"}
        _client(handler).upload(snapshot)

        assert seen["method"] == "POST"
        assert seen["path"] == UPLOAD_PATH
        assert seen["body"] == snapshot

    def test_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=REPORT)

        _client(handler, api_token="s3cret").upload({"clients": [{"id": 1}]})
        assert seen["auth"] == "Bearer s3cret"

    def test_no_token_no_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=REPORT)

        _client(handler).upload({"clients": [{"id": 1}]})
        assert seen["auth"] is None

    def test_parses_report(self):
        report = _client(lambda request: httpx.Response(200, json=REPORT)).upload({"clients": []})
        assert report.success
        assert report.imported == 3
        assert report.error_count == 1
        assert report.status == STATUS_SUCCEEDED_WITH_ERRORS
        assert report.details["income"].errors[0].id == 7
        assert report.to_dict() == REPORT

    def test_server_error_propagates(self):
        client = _client(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(httpx.HTTPStatusError):
            client.upload({"clients": [{"id": 1}]})

    def test_connection_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.ConnectError):
            _client(handler).upload({"clients": [{"id": 1}]})

    def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(MigrationError):
            client.upload({"clients": [{"id": 1}]})

    def test_missing_summary(self):
        client = _client(lambda request: httpx.Response(200, json={"success": True}))
        with pytest.raises(MigrationError):
            client.upload({"clients": [{"id": 1}]})


class TestClearAll:
    """Tests for MigrationClient.clear_all."""

    def test_reports_total(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            return httpx.Response(200, json={"success": True, "totalDeleted": 42})

        result = _client(handler).clear_all()

        assert seen == {"method": "DELETE", "path": CLEAR_PATH}
        assert result == ClearResult(success=True, total_deleted=42)

    def test_remote_failure_payload(self):
        client = _client(
            lambda request: httpx.Response(200, json={"success": False, "error": "locked"})
        )
        result = client.clear_all()
        assert not result.success
        assert result.error == "locked"
        assert result.to_dict() == {"success": False, "error": "locked"}

    def test_missing_success_flag(self):
        client = _client(lambda request: httpx.Response(200, json={"totalDeleted": 1}))
        with pytest.raises(MigrationError):
            client.clear_all()

    def test_server_error_propagates(self):
        client = _client(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            client.clear_all()


class TestClientLifecycle:
    """Tests for construction and closing."""

    def test_from_config_requires_url(self):
        with pytest.raises(ValueError):
            MigrationClient.from_config(Config(remote_base_url="ftp://nope"))

    def test_from_config(self):
        config = Config(remote_base_url=f"{BASE_URL}/", api_token="t", request_timeout=3.0)
        with MigrationClient.from_config(config) as client:
            assert str(client._http.base_url).rstrip("/") == BASE_URL
            assert client._headers["Authorization"] == "Bearer t"

    def test_passed_client_not_closed(self):
        http = httpx.Client(
            base_url=BASE_URL, transport=httpx.MockTransport(lambda r: httpx.Response(200))
        )
        with MigrationClient(http_client=http):
            pass
        assert not http.is_closed
        http.close()

    def test_owned_client_closed(self):
        client = MigrationClient(BASE_URL)
        client.close()
        assert client._http.is_closed
