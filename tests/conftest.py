"""Shared test fixtures for cloudbackup."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from typing import Any, Optional
from urllib.parse import unquote

import pytest

from cloudbackup.client import SyncClient
from cloudbackup.config import EndpointStore, MemoryKeyValueStore
from cloudbackup.exceptions import OpaqueRemoteError, RemoteError, SyncError
from cloudbackup.local_state import MemoryStateAccessor
from cloudbackup.models import ClientSettings

SERVER = "https://backup.example.com"
LIST_GATE = "__list__"


class FakeBackupServer:
    """In-memory backup service exposing the Transport interface.

    Files are kept per (collisionString, userName) scope. Tests can
    queue failures, hold calls on a gate, or override response bodies.
    """

    def __init__(self) -> None:
        self.files: dict[tuple[str, str], dict[str, bytes]] = {}
        self.calls: list[tuple[str, str, dict[str, str]]] = []
        self.failures: list[SyncError] = []
        self.gates: dict[str, threading.Event] = {}
        self.undeletable: set[str] = set()
        self.list_body: Any = None
        self.import_message: Optional[str] = None
        self.closed = False
        self._lock = threading.Lock()

    # -- helpers -----------------------------------------------------------

    def bucket(self, scope: str = "backup.example.com", user: str = "user-1") -> dict[str, bytes]:
        return self.files.setdefault((scope, user), {})

    def add_file(self, name: str, document: Any, **scope: str) -> None:
        self.bucket(**scope)[name] = json.dumps(document).encode("utf-8")

    def calls_to(self, path: str) -> list[tuple[str, str, dict[str, str]]]:
        return [c for c in self.calls if path in c[1]]

    def _record(self, method: str, url: str, headers: dict[str, str]) -> dict[str, bytes]:
        with self._lock:
            self.calls.append((method, url, dict(headers)))
            if self.failures:
                raise self.failures.pop(0)
            return self.files.setdefault(
                (headers["collisionString"], headers["userName"]), {}
            )

    def _wait(self, key: str) -> None:
        gate = self.gates.get(key)
        if gate is not None:
            assert gate.wait(timeout=5), f"gate {key} never opened"

    # -- Transport interface -------------------------------------------------

    def upload(self, url, headers, filename, content, failure_message, progress=None):
        bucket = self._record("POST", url, headers)
        if progress is not None:
            total = len(content)
            step = max(1, total // 4)
            for sent in range(step, total, step):
                progress(sent, total)
            progress(total, total)
        bucket[filename] = content
        return {"message": "Backup uploaded"}

    def get_json(self, url, headers, failure_message, params=None):
        bucket = self._record("GET", url, headers)
        if url.endswith("/api/getlist"):
            if self.list_body is not None:
                return self.list_body
            with self._lock:
                listing = [{"name": n, "size": len(c)} for n, c in bucket.items()]
            self._wait(LIST_GATE)
            return listing
        if url.endswith("/api/import"):
            name = params["filename"]
            self._wait(name)
            if name not in bucket:
                raise RemoteError("File not found", status_code=404)
            document = json.loads(bucket[name])
            if self.import_message and isinstance(document, dict):
                document["message"] = self.import_message
            return document
        raise OpaqueRemoteError(failure_message, status_code=404)

    def post_json(self, url, headers, payload, failure_message):
        bucket = self._record("POST", url, headers)
        old, new = payload["oldName"], payload["newName"]
        with self._lock:
            if old not in bucket:
                raise RemoteError("File not found", status_code=404)
            bucket[new] = bucket.pop(old)
        self._wait(old)
        return {"message": "File renamed"}

    def delete(self, url, headers, failure_message):
        bucket = self._record("DELETE", url, headers)
        if url.endswith("/api/deleteALL"):
            with self._lock:
                for name in list(bucket):
                    if name not in self.undeletable:
                        del bucket[name]
            return {"message": "All backups deleted"}
        name = unquote(url.rsplit("/", 1)[1])
        if name not in bucket:
            raise OpaqueRemoteError(failure_message, status_code=404)
        del bucket[name]
        return {"message": f"{name} deleted"}

    def close(self) -> None:
        self.closed = True


def sample_state() -> dict[str, Any]:
    """A small application state with chats, settings and prompts."""
    return {
        "chat-store": {
            "sessions": [
                {
                    "id": "s1",
                    "topic": "Local chat",
                    "messages": [{"id": "m1", "role": "user", "content": "hi"}],
                    "lastUpdateTime": 100,
                },
            ],
            "lastUpdateTime": 100,
        },
        "app-config": {"theme": "dark", "fontSize": 14, "lastUpdateTime": 100},
        "prompt-store": {"prompts": {"p1": {"title": "Translate"}}},
    }


@pytest.fixture
def server() -> FakeBackupServer:
    return FakeBackupServer()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore({
        "serverAddress": SERVER,
        "userName": "user-1",
        "accessCode": "secret",
    })


@pytest.fixture
def endpoint(kv_store: MemoryKeyValueStore) -> EndpointStore:
    return EndpointStore(kv_store)


@pytest.fixture
def local_state() -> MemoryStateAccessor:
    return MemoryStateAccessor(sample_state())


@pytest.fixture
def client(endpoint, local_state, server) -> SyncClient:
    """Client wired to the fake server, answering yes to every prompt."""
    return SyncClient(
        endpoint=endpoint,
        local_state=local_state,
        transport=server,
        settings=ClientSettings(retry_backoff=0),
        confirm=lambda question: True,
        clock=lambda: datetime(2024, 1, 1, 12, 0, 0),
    )
