"""Tests for the HTTP transport.

requests.Session.send is patched, so no server is needed. Responses are
real requests.Response objects with canned bodies.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import patch

import pytest
import requests

from cloudbackup.exceptions import OpaqueRemoteError, RemoteError, TransportError
from cloudbackup.transport import Transport, UploadProgress

BASE = "https://backup.example.com"
HEADERS = {"accessCode": "secret", "collisionString": "backup.example.com", "userName": "user-1"}


def _response(status: int, body: Any = b"", url: str = f"{BASE}/api/getlist") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    resp.url = url
    resp.request = requests.Request("GET", url).prepare()
    return resp


@pytest.fixture
def transport() -> Transport:
    return Transport(timeout=5)


class TestJsonCalls:
    """GET/POST/DELETE calls and their failure mapping."""

    def test_get_json_returns_body(self, transport: Transport) -> None:
        listing = [{"name": "a.json", "size": 3}]
        with patch.object(transport.session, "send", return_value=_response(200, listing)) as send:
            result = transport.get_json(f"{BASE}/api/getlist", HEADERS, "List failed")

        assert result == listing
        prepared = send.call_args.args[0]
        assert prepared.method == "GET"
        assert prepared.headers["collisionString"] == "backup.example.com"
        assert prepared.headers["userName"] == "user-1"
        assert prepared.headers["accessCode"] == "secret"
        assert send.call_args.kwargs["timeout"] == 5

    def test_query_params_encoded(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(200, {})) as send:
            transport.get_json(
                f"{BASE}/api/import", HEADERS, "Import failed",
                params={"filename": "Backup 1&2.json"},
            )
        assert send.call_args.args[0].url == f"{BASE}/api/import?filename=Backup+1%262.json"

    def test_post_json_sends_json_body(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(200, {"message": "ok"})) as send:
            result = transport.post_json(
                f"{BASE}/api/rename", HEADERS, {"oldName": "a", "newName": "b"}, "Rename failed"
            )

        prepared = send.call_args.args[0]
        assert result == {"message": "ok"}
        assert prepared.headers["Content-Type"] == "application/json"
        assert json.loads(prepared.body) == {"oldName": "a", "newName": "b"}

    def test_delete_uses_delete_method(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(200, {"message": "gone"})) as send:
            transport.delete(f"{BASE}/api/deleteALL", HEADERS, "Delete failed")
        assert send.call_args.args[0].method == "DELETE"

    def test_empty_success_body_is_none(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(204, b"")):
            assert transport.delete(f"{BASE}/api/deleteALL", HEADERS, "Delete failed") is None

    def test_non_json_success_body_is_none(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(200, b"<html>ok</html>")):
            assert transport.delete(f"{BASE}/api/deleteALL", HEADERS, "Delete failed") is None

    def test_error_with_message(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(404, {"message": "File not found"})):
            with pytest.raises(RemoteError) as excinfo:
                transport.delete(f"{BASE}/api/delete/x", HEADERS, "Delete failed")

        assert not isinstance(excinfo.value, OpaqueRemoteError)
        assert excinfo.value.message == "File not found"
        assert excinfo.value.status_code == 404

    @pytest.mark.parametrize("body", [b"<html>502 Bad Gateway</html>", b"", {"error": "x"}, {"message": 12}])
    def test_error_without_message_is_opaque(self, transport: Transport, body: Any) -> None:
        with patch.object(transport.session, "send", return_value=_response(502, body)):
            with pytest.raises(OpaqueRemoteError) as excinfo:
                transport.get_json(f"{BASE}/api/getlist", HEADERS, "Failed to load the file list")

        assert excinfo.value.message == "Failed to load the file list"
        assert excinfo.value.status_code == 502

    def test_connection_error_is_transport_error(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(TransportError) as excinfo:
                transport.get_json(f"{BASE}/api/getlist", HEADERS, "Failed to load the file list")
        assert "please retry" in excinfo.value.message

    def test_timeout_is_transport_error(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", side_effect=requests.Timeout("slow")):
            with pytest.raises(TransportError):
                transport.delete(f"{BASE}/api/deleteALL", HEADERS, "Delete failed")


class TestUpload:
    """Multipart upload with progress."""

    def _streaming_send(self, received: list[bytes]):
        def send(prepared, **kwargs):
            assert int(prepared.headers["Content-Length"]) == len(prepared.body)
            while True:
                chunk = prepared.body.read(100)
                if not chunk:
                    break
                received.append(chunk)
            return _response(200, {"message": "Backup uploaded"}, url=prepared.url)
        return send

    def test_upload_streams_multipart_with_progress(self, transport: Transport) -> None:
        content = json.dumps({"chat-store": {"sessions": list(range(200))}}).encode()
        received: list[bytes] = []
        progress: list[tuple[int, int]] = []

        with patch.object(transport.session, "send", side_effect=self._streaming_send(received)):
            result = transport.upload(
                f"{BASE}/api/backup", HEADERS, "Backup-2024_01_01_12_00_00.json",
                content, "Backup failed", progress=lambda s, t: progress.append((s, t)),
            )

        body = b"".join(received)
        assert result == {"message": "Backup uploaded"}
        assert b'name="file"; filename="Backup-2024_01_01_12_00_00.json"' in body
        assert content in body
        assert len(progress) > 1
        assert progress[-1] == (len(body), len(body))
        sent = [s for s, _ in progress]
        assert sent == sorted(sent)

    def test_upload_without_progress_sends_bytes(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(200, {})) as send:
            transport.upload(f"{BASE}/api/backup", HEADERS, "b.json", b"{}", "Backup failed")
        prepared = send.call_args.args[0]
        assert isinstance(prepared.body, bytes)
        assert prepared.headers["Content-Type"].startswith("multipart/form-data")
        assert prepared.headers["accessCode"] == "secret"

    def test_upload_error_status(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", return_value=_response(413, {"message": "Too large"})):
            with pytest.raises(RemoteError, match="Too large"):
                transport.upload(f"{BASE}/api/backup", HEADERS, "b.json", b"{}", "Backup failed")

    def test_upload_connection_error(self, transport: Transport) -> None:
        with patch.object(transport.session, "send", side_effect=requests.ConnectionError("down")):
            with pytest.raises(TransportError):
                transport.upload(f"{BASE}/api/backup", HEADERS, "b.json", b"{}", "Backup failed")


class TestUploadProgress:
    """Byte counts become monotonic percentages."""

    def test_monotonic_and_deduplicated(self) -> None:
        seen: list[int] = []
        tracker = UploadProgress(seen.append)
        for sent in (10, 10, 50, 40, 99, 100):
            tracker(sent, 100)
        assert seen == [10, 50, 99, 100]

    def test_hundred_only_when_complete(self) -> None:
        seen: list[int] = []
        tracker = UploadProgress(seen.append)
        tracker(999, 1000)
        assert seen == [99]
        tracker(1000, 1000)
        assert seen == [99, 100]

    def test_empty_body_reports_complete(self) -> None:
        seen: list[int] = []
        UploadProgress(seen.append)(0, 0)
        assert seen == [100]
