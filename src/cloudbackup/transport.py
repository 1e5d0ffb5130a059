"""
HTTP transport for the backup service.

Thin blocking layer over a ``requests.Session``. Every call either
returns the parsed JSON body of a 2xx response or raises one of the
typed sync errors:

    no response       ->  TransportError
    non-2xx + message ->  RemoteError
    non-2xx otherwise ->  OpaqueRemoteError (with a per-call fallback text)

Uploads stream the multipart body through a reader that reports how
many bytes have been handed to the socket so far.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import Any, Callable, Optional

import requests

from . import __version__
from .exceptions import OpaqueRemoteError, RemoteError, TransportError

logger = logging.getLogger("cloudbackup.transport")

ByteProgress = Callable[[int, int], None]


class UploadProgress:
    """Turns (bytes_sent, total) into integer percentages.

    Only strictly increasing values are emitted, and 100 only once the
    last byte has been sent.
    """

    def __init__(self, emit: Callable[[int], None]):
        self._emit = emit
        self._last = -1
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        return max(self._last, 0)

    def __call__(self, sent: int, total: int) -> None:
        percent = (sent * 100) // total if total > 0 else 100
        percent = min(percent, 100)
        with self._lock:
            if percent <= self._last:
                return
            self._last = percent
        self._emit(percent)


class _ProgressReader:
    """File-like view over a request body that reports bytes read."""

    def __init__(self, data: bytes, callback: ByteProgress):
        self._buffer = io.BytesIO(data)
        self._total = len(data)
        self._sent = 0
        self._callback = callback

    def __len__(self) -> int:
        return self._total

    def read(self, size: int = -1) -> bytes:
        chunk = self._buffer.read(size)
        if chunk:
            self._sent += len(chunk)
            self._callback(self._sent, self._total)
        return chunk


def _extract_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return None


class Transport:
    """Blocking HTTP client for the backup service endpoints."""

    def __init__(
        self,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"cloudbackup/{__version__}")

    def _handle(self, response: requests.Response, failure_message: str) -> Any:
        if not 200 <= response.status_code < 300:
            message = _extract_message(response)
            logger.debug(
                "%s %s -> %d", response.request.method if response.request else "?",
                response.url, response.status_code,
            )
            if message:
                raise RemoteError(message, status_code=response.status_code)
            raise OpaqueRemoteError(failure_message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.debug("Non-JSON success body from %s", response.url)
            return None

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        failure_message: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{failure_message}, please retry") from exc
        return self._handle(response, failure_message)

    def get_json(
        self,
        url: str,
        headers: dict[str, str],
        failure_message: str,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        return self._request("GET", url, headers, failure_message, params=params)

    def post_json(
        self,
        url: str,
        headers: dict[str, str],
        payload: Any,
        failure_message: str,
    ) -> Any:
        return self._request("POST", url, headers, failure_message, json=payload)

    def delete(self, url: str, headers: dict[str, str], failure_message: str) -> Any:
        return self._request("DELETE", url, headers, failure_message)

    def upload(
        self,
        url: str,
        headers: dict[str, str],
        filename: str,
        content: bytes,
        failure_message: str,
        progress: Optional[ByteProgress] = None,
    ) -> Any:
        """POST ``content`` as the multipart part ``file``.

        Args:
            url: Full upload URL.
            headers: Request headers (scope headers, credentials).
            filename: File name announced in the multipart part.
            content: File bytes (a JSON document).
            failure_message: Fallback text for unreadable error bodies.
            progress: Called with (bytes_sent, total_bytes) as the body
                is streamed. Runs on the calling thread.

        Returns:
            Parsed JSON body of the response, or None.
        """
        request = requests.Request(
            "POST",
            url,
            headers=headers,
            files={"file": (filename, content, "application/json")},
        )
        prepared = self.session.prepare_request(request)
        if progress is not None:
            prepared.body = _ProgressReader(prepared.body, progress)

        try:
            settings = self.session.merge_environment_settings(
                prepared.url, {}, None, None, None
            )
            response = self.session.send(prepared, timeout=self.timeout, **settings)
        except requests.RequestException as exc:
            logger.error("Upload of %s failed: %s", filename, exc)
            raise TransportError(f"{failure_message}, please retry") from exc
        return self._handle(response, failure_message)

    def close(self) -> None:
        self.session.close()
