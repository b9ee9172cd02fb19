# narrachat/infra/llm/http_client.py
from __future__ import annotations
import logging
import socket
from typing import Iterator, List, Optional
import requests

from narrachat.constants import DEFAULT_TIMEOUT
from narrachat.core.errors import HttpStatusError, TransportError
from .base import ChatMessage, ModelClient

log = logging.getLogger(__name__)


def _error_message(r: requests.Response) -> Optional[str]:
    """Best-effort failure text from a non-2xx body: {"error": "..."} or {"error": {"message": "..."}}."""
    try:
        body = r.json()
    except (ValueError, requests.RequestException):
        return None
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if isinstance(err, dict):
        err = err.get("message")
    if isinstance(err, str) and err.strip():
        return err.strip()
    return None


class ChatResponse:
    """A 2xx streamed response. Use as a context manager so the connection is released."""

    def __init__(self, response: requests.Response, chunk_size: Optional[int] = None):
        self._resp = response
        self._chunk_size = chunk_size

    @property
    def status(self) -> int:
        return self._resp.status_code

    def chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self._resp.iter_content(chunk_size=self._chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as exc:
            raise TransportError(str(exc)) from exc

    def abort(self) -> None:
        """Break a read blocked on the socket. Safe to call from another thread."""
        conn = getattr(self._resp.raw, "connection", None)
        sock = getattr(conn, "sock", None)
        if sock is not None:
            try:
                # close() alone does not wake a recv() blocked in another thread
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                log.debug("Socket already closed")
        self.close()

    def close(self) -> None:
        self._resp.close()

    def __enter__(self) -> "ChatResponse":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChatHttpClient(ModelClient):
    def __init__(self, url: str, *, api_key: str | None = None, timeout: float = DEFAULT_TIMEOUT,
                 http: requests.Session | None = None, chunk_size: int | None = None):
        if not url:
            raise ValueError("chat url is not configured")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._http = http or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def open_stream(self, messages: List[ChatMessage]) -> ChatResponse:
        payload = {"messages": [{"role": m.role, "content": m.content} for m in messages]}
        try:
            r = self._http.post(self.url, json=payload, headers=self._headers(), stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            log.warning("Chat request failed: %s", exc)
            raise TransportError(str(exc)) from exc

        if not 200 <= r.status_code < 300:
            try:
                message = _error_message(r)
            finally:
                r.close()
            log.warning("Chat request rejected: HTTP %s (%s)", r.status_code, message or "no detail")
            raise HttpStatusError(r.status_code, message)

        log.debug("Chat stream opened: HTTP %s, %d message(s)", r.status_code, len(messages))
        return ChatResponse(r, self.chunk_size)
