"""Thin httpx wrapper around the AList HTTP API: one method per remote call."""

from __future__ import annotations

import dataclasses
import io
import json
import logging
import re
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, BinaryIO
from urllib.parse import quote

import httpx

from alist_remote._errors import (
    AlreadyExists,
    AuthenticationError,
    Cancelled,
    CapabilityNotSupported,
    NotFound,
    PermissionDenied,
    RemoteStoreError,
    TransientError,
)
from alist_remote._pacer import RETRY_STATUS_CODES

if TYPE_CHECKING:
    from alist_remote._context import Context

log = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_MD5_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")
_FRACTION_PATTERN = re.compile(r"\.(\d+)")

# region: response models


@dataclasses.dataclass(frozen=True)
class ApiItem:
    """One file or directory as described by ``list`` or ``get``.

    :param name: Encoded leaf name as stored on the server.
    :param size: Size in bytes (``0`` for directories).
    :param is_dir: Whether the entry is a directory.
    :param modified: Modification time, ``None`` if unknown.
    :param md5: MD5 hex digest; ``""`` when the server reported hashes
        without an MD5 and ``None`` when it reported none at all.
    :param raw_url: Direct download URL, if the server provided one.
    """

    name: str
    size: int = 0
    is_dir: bool = False
    modified: datetime | None = None
    md5: str | None = None
    raw_url: str = ""

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ApiItem:
        try:
            size = int(data.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            name=str(data.get("name", "")),
            size=size,
            is_dir=bool(data.get("is_dir", False)),
            modified=parse_modified(data.get("modified")),
            md5=parse_hash(data.get("hash_info", data.get("hashinfo"))),
            raw_url=str(data.get("raw_url") or ""),
        )


@dataclasses.dataclass(frozen=True)
class ApiResponse:
    """The ``{code, message, data}`` envelope every AList endpoint returns."""

    code: int
    message: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == 200

    @property
    def not_found(self) -> bool:
        """``True`` for responses meaning "no such file or directory".

        AList reports missing objects with body code 500 and a message
        containing "not found"; some drivers use 404.
        """
        if self.code == 404:
            return True
        return self.code != 200 and "not found" in self.message.lower()

    def item(self) -> ApiItem:
        if not isinstance(self.data, dict):
            raise RemoteStoreError(f"Unexpected response data: {self.data!r}", code=self.code)
        return ApiItem.from_json(self.data)

    def items(self) -> list[ApiItem]:
        if not isinstance(self.data, dict):
            return []
        content = self.data.get("content") or []
        return [ApiItem.from_json(entry) for entry in content if isinstance(entry, dict)]

    @classmethod
    def from_json(cls, payload: Any) -> ApiResponse:
        if not isinstance(payload, dict) or "code" not in payload:
            raise RemoteStoreError(f"Malformed AList response: {payload!r}")
        return cls(code=int(payload["code"]), message=str(payload.get("message") or ""), data=payload.get("data"))


# endregion

# region: field parsing


def parse_modified(value: Any) -> datetime | None:
    """Parse a ``modified`` field: epoch seconds (or ms) or an RFC 3339 string."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Go emits up to nine fractional digits
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        log.debug("Unparseable modification time %r", value)
        return None
    if parsed.year <= 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_hash(value: Any) -> str | None:
    """Extract an MD5 from a ``hash_info`` field.

    Accepts a mapping, its JSON encoding or a bare 32 hex digit string.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ""
        if _MD5_PATTERN.match(text):
            return text.lower()
        try:
            value = json.loads(text)
        except ValueError:
            return ""
    if isinstance(value, dict):
        md5 = value.get("md5") or value.get("MD5") or ""
        return str(md5).lower() if _MD5_PATTERN.match(str(md5)) else ""
    return ""


# endregion


class _ResponseStream(io.RawIOBase):
    """Raw reader over a streamed httpx response that checks ``ctx`` per chunk.

    ``skip`` and ``limit`` trim the body when a server answered a ranged
    request with the whole file.
    """

    def __init__(
        self,
        response: httpx.Response,
        ctx: Context,
        *,
        path: str,
        backend: str,
        skip: int = 0,
        limit: int | None = None,
    ) -> None:
        super().__init__()
        self._response = response
        self._chunks = response.iter_bytes(_CHUNK_SIZE)
        self._pending = b""
        self._ctx = ctx
        self._path = path
        self._backend = backend
        self._skip = skip
        self._limit = limit

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            if self._limit == 0:
                return 0
            chunk = self._next_chunk()
            if chunk is None:
                return 0
            if self._skip:
                dropped = min(self._skip, len(chunk))
                chunk = chunk[dropped:]
                self._skip -= dropped
            if self._limit is not None:
                chunk = chunk[: self._limit]
                self._limit -= len(chunk)
            self._pending = chunk
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def _next_chunk(self) -> bytes | None:
        if self._ctx.cancelled:
            self.close()
            self._ctx.check()
        try:
            return next(self._chunks, None)
        except httpx.TimeoutException as exc:
            raise TransientError(f"Timeout: {exc}", path=self._path, backend=self._backend) from exc
        except httpx.TransportError as exc:
            raise TransientError(f"Transport error: {exc}", path=self._path, backend=self._backend) from exc

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


def _close_when_done(future: Future[httpx.Response]) -> None:
    """Close the response of an abandoned streaming request once it arrives."""

    def close(done: Future[httpx.Response]) -> None:
        if not done.cancelled() and done.exception() is None:
            done.result().close()

    future.add_done_callback(close)


class AListClient:
    """HTTP client for one AList server.

    Every method performs exactly one round trip. Transport failures and
    HTTP statuses are mapped to ``alist_remote`` errors; a 2xx response is
    returned as an :class:`ApiResponse` whose body code is left to the caller.

    Requests run on a small worker pool while the calling thread waits on
    its :class:`Context`, so cancellation returns at once instead of after
    the HTTP timeout. Each request's timeout is capped at the context's
    remaining deadline.

    :param base_url: ``scheme://host[:port]`` of the server.
    :param timeout: Timeout of a single request in seconds.
    :param transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
    :param backend: Backend name attached to raised errors.
    :param max_workers: Number of requests that may be in flight at once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        backend: str = "alist",
        max_workers: int = 8,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.backend = backend
        self.token = ""
        self._timeout = timeout
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="alist-http")

    def __repr__(self) -> str:
        return f"AListClient({self.base_url!r})"

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._http.close()

    # region: transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self.token} if self.token else {}

    def _check_status(self, response: httpx.Response, path: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        message = f"HTTP {status} from {response.request.method} {response.request.url.path}"
        if status in RETRY_STATUS_CODES:
            raise TransientError(message, path=path, backend=self.backend, code=status)
        if status == 404:
            raise NotFound(message, path=path, backend=self.backend, code=status)
        if status == 403:
            raise PermissionDenied(message, path=path, backend=self.backend, code=status)
        if status == 409:
            raise AlreadyExists(message, path=path, backend=self.backend, code=status)
        if status in (400, 405, 501):
            raise CapabilityNotSupported(
                message, path=path, backend=self.backend, code=status, capability=response.request.url.path
            )
        raise RemoteStoreError(message, path=path, backend=self.backend, code=status)

    def _send(
        self,
        method: str,
        url: str,
        ctx: Context,
        *,
        path: str = "",
        body: dict[str, Any] | None = None,
        content: Iterator[bytes] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        ctx.check()
        log.debug("%s %s path=%r", method, url, path)
        request = self._http.build_request(
            method, url, json=body, content=content, headers=headers, timeout=self._request_timeout(ctx)
        )
        response = self._wait(self._pool.submit(self._http.send, request), ctx, path)
        self._check_status(response, path)
        return response

    def _request_timeout(self, ctx: Context) -> float:
        remaining = ctx.remaining
        if remaining is None:
            return self._timeout
        return max(min(self._timeout, remaining), 0.001)

    def _wait(self, future: Future[httpx.Response], ctx: Context, path: str) -> httpx.Response:
        try:
            return ctx.wait(future)
        except httpx.TimeoutException as exc:
            if ctx.cancelled:
                ctx.check()
            raise TransientError(f"Timeout: {exc}", path=path, backend=self.backend) from exc
        except httpx.TransportError as exc:
            raise TransientError(f"Transport error: {exc}", path=path, backend=self.backend) from exc

    def _call(
        self,
        method: str,
        endpoint: str,
        ctx: Context,
        *,
        path: str = "",
        body: dict[str, Any] | None = None,
    ) -> ApiResponse:
        response = self._send(method, endpoint, ctx, path=path, body=body, headers=self._headers())
        try:
            return ApiResponse.from_json(response.json())
        except ValueError as exc:
            raise RemoteStoreError(f"Invalid JSON from {endpoint}", path=path, backend=self.backend) from exc

    # endregion

    # region: session

    def ping(self, ctx: Context) -> str:
        """``GET /ping``; returns the body text (``"pong"``)."""
        return self._send("GET", "/ping", ctx).text.strip()

    def login(self, username: str, password: str, ctx: Context) -> str:
        """Exchange a username and password for a token and keep it.

        :raises AuthenticationError: If the server rejects the credentials.
        """
        resp = self._call("POST", "/api/auth/login", ctx, body={"username": username, "password": password})
        token = resp.data.get("token") if resp.ok and isinstance(resp.data, dict) else None
        if not token:
            raise AuthenticationError(
                f"Login failed: {resp.message or 'no token returned'}", backend=self.backend, code=resp.code
            )
        self.token = str(token)
        return self.token

    def whoami(self, ctx: Context) -> str:
        """Return the user name the current token belongs to.

        :raises AuthenticationError: If the token is rejected.
        """
        resp = self._call("GET", "/api/me", ctx)
        username = resp.data.get("username") if resp.ok and isinstance(resp.data, dict) else None
        if not username:
            raise AuthenticationError(
                f"Token rejected: {resp.message or 'no user returned'}", backend=self.backend, code=resp.code
            )
        return str(username)

    # endregion

    # region: fs endpoints

    def list_dir(self, path: str, ctx: Context) -> ApiResponse:
        body = {"path": path, "password": "", "page": 1, "per_page": 0, "refresh": False}
        return self._call("POST", "/api/fs/list", ctx, path=path, body=body)

    def get(self, path: str, ctx: Context) -> ApiResponse:
        return self._call("POST", "/api/fs/get", ctx, path=path, body={"path": path, "password": ""})

    def mkdir(self, path: str, ctx: Context) -> ApiResponse:
        return self._call("POST", "/api/fs/mkdir", ctx, path=path, body={"path": path})

    def remove(self, directory: str, names: list[str], ctx: Context) -> ApiResponse:
        return self._call("POST", "/api/fs/remove", ctx, path=directory, body={"dir": directory, "names": names})

    def rename(self, path: str, name: str, ctx: Context) -> ApiResponse:
        return self._call("POST", "/api/fs/rename", ctx, path=path, body={"path": path, "name": name})

    def move(self, src_dir: str, dst_dir: str, names: list[str], ctx: Context) -> ApiResponse:
        body = {"src_dir": src_dir, "dst_dir": dst_dir, "names": names}
        return self._call("POST", "/api/fs/move", ctx, path=src_dir, body=body)

    def copy(self, src_dir: str, dst_dir: str, names: list[str], ctx: Context) -> ApiResponse:
        body = {"src_dir": src_dir, "dst_dir": dst_dir, "names": names}
        return self._call("POST", "/api/fs/copy", ctx, path=src_dir, body=body)

    def recursive_move(self, src_dir: str, dst_dir: str, ctx: Context, *, overwrite: bool = False) -> ApiResponse:
        body = {"src_dir": src_dir, "dst_dir": dst_dir, "overwrite": overwrite}
        return self._call("POST", "/api/fs/recursive_move", ctx, path=src_dir, body=body)

    def upload(
        self,
        path: str,
        data: bytes,
        ctx: Context,
        *,
        modified: datetime | None = None,
    ) -> ApiResponse:
        """``PUT /api/fs/put`` with the whole body; the stream checks ``ctx`` between chunks."""
        headers = {
            **self._headers(),
            "File-Path": quote(path, safe="/"),
            "As-Task": "false",
            "Content-Type": "application/octet-stream",
            "Content-Length": str(len(data)),
        }
        if modified is not None:
            headers["Last-Modified"] = str(int(modified.timestamp() * 1000))

        def chunks() -> Iterator[bytes]:
            view = memoryview(data)
            for start in range(0, len(data), _CHUNK_SIZE):
                ctx.check()
                yield bytes(view[start : start + _CHUNK_SIZE])

        response = self._send("PUT", "/api/fs/put", ctx, path=path, content=chunks(), headers=headers)
        try:
            return ApiResponse.from_json(response.json())
        except ValueError as exc:
            raise RemoteStoreError("Invalid JSON from /api/fs/put", path=path, backend=self.backend) from exc

    def download(
        self,
        url: str,
        ctx: Context,
        *,
        path: str = "",
        offset: int = 0,
        length: int | None = None,
    ) -> BinaryIO:
        """Open ``url`` as a stream, optionally limited to a byte range.

        The body is read lazily; every chunk checks ``ctx``. Close the
        returned reader to release the connection. A range starting past
        the end of the file reads as empty.
        """
        ctx.check()
        ranged = bool(offset) or length is not None
        headers: dict[str, str] = {}
        if ranged:
            end = "" if length is None else str(offset + length - 1)
            headers["Range"] = f"bytes={offset}-{end}"
        log.debug("GET %s path=%r range=%s", url, path, headers.get("Range", "all"))
        request = self._http.build_request("GET", url, headers=headers, timeout=self._request_timeout(ctx))
        future = self._pool.submit(self._http.send, request, stream=True)
        try:
            response = self._wait(future, ctx, path)
        except Cancelled:
            _close_when_done(future)
            raise
        if ranged and response.status_code == 416:
            response.close()
            return io.BytesIO()
        try:
            self._check_status(response, path)
        except RemoteStoreError:
            response.close()
            raise
        skip, limit = 0, length
        if ranged and response.status_code != 206:
            log.debug("Server ignored Range for %s; trimming the full body", path)
            skip = offset
        raw = _ResponseStream(response, ctx, path=path, backend=self.backend, skip=skip, limit=limit)
        return io.BufferedReader(raw, _CHUNK_SIZE)  # type: ignore[return-value]

    # endregion
