"""Tests for the AList HTTP client and response parsing."""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone

import httpx
import pytest

from alist_remote._context import Context
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
from alist_remote.backends._alist_api import AListClient, ApiItem, ApiResponse, parse_hash, parse_modified
from fake_alist import BASE_URL, FakeAList


def _client(handler: object) -> AListClient:
    return AListClient(BASE_URL, transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


class TestParseModified:
    def test_none(self) -> None:
        assert parse_modified(None) is None
        assert parse_modified("") is None

    def test_epoch_seconds(self) -> None:
        assert parse_modified(1700000000) == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_epoch_millis(self) -> None:
        assert parse_modified(1700000000000) == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_rfc3339_nanoseconds(self) -> None:
        parsed = parse_modified("2024-05-01T12:00:00.123456789+08:00")
        assert parsed is not None
        assert parsed.astimezone(timezone.utc) == datetime(2024, 5, 1, 4, 0, 0, 123456, tzinfo=timezone.utc)

    def test_zulu(self) -> None:
        assert parse_modified("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_zero_time(self) -> None:
        """Go zero time means the server does not know the modification time."""
        assert parse_modified("0001-01-01T00:00:00Z") is None

    def test_garbage(self) -> None:
        assert parse_modified("yesterday") is None


class TestParseHash:
    def test_absent(self) -> None:
        assert parse_hash(None) is None

    def test_mapping(self) -> None:
        assert parse_hash({"md5": "D41D8CD98F00B204E9800998ECF8427E"}) == "d41d8cd98f00b204e9800998ecf8427e"

    def test_json_string(self) -> None:
        assert parse_hash('{"md5":"d41d8cd98f00b204e9800998ecf8427e"}') == "d41d8cd98f00b204e9800998ecf8427e"

    def test_bare_hex(self) -> None:
        assert parse_hash("d41d8cd98f00b204e9800998ecf8427e") == "d41d8cd98f00b204e9800998ecf8427e"

    def test_present_without_md5(self) -> None:
        assert parse_hash({"sha1": "abc"}) == ""
        assert parse_hash("") == ""
        assert parse_hash("not json") == ""


class TestApiResponse:
    def test_not_found_by_code(self) -> None:
        assert ApiResponse(code=404).not_found

    def test_not_found_by_message(self) -> None:
        """AList reports missing objects as code 500 with a not found message."""
        assert ApiResponse(code=500, message="failed get objs: object not found").not_found

    def test_success_is_never_not_found(self) -> None:
        assert not ApiResponse(code=200, message="not found anywhere").not_found

    def test_other_error(self) -> None:
        assert not ApiResponse(code=500, message="storage offline").not_found

    def test_items(self) -> None:
        resp = ApiResponse(code=200, data={"content": [{"name": "a", "is_dir": True}, {"name": "b", "size": 3}]})
        assert resp.items() == [ApiItem(name="a", is_dir=True), ApiItem(name="b", size=3)]

    def test_items_null_content(self) -> None:
        assert ApiResponse(code=200, data={"content": None}).items() == []

    def test_item_requires_mapping(self) -> None:
        with pytest.raises(RemoteStoreError):
            ApiResponse(code=200, data=None).item()

    def test_malformed_envelope(self) -> None:
        with pytest.raises(RemoteStoreError, match="Malformed"):
            ApiResponse.from_json(["not", "an", "envelope"])


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (401, TransientError),
            (408, TransientError),
            (423, TransientError),
            (429, TransientError),
            (500, TransientError),
            (502, TransientError),
            (503, TransientError),
            (504, TransientError),
            (404, NotFound),
            (403, PermissionDenied),
            (409, AlreadyExists),
            (400, CapabilityNotSupported),
            (501, CapabilityNotSupported),
            (418, RemoteStoreError),
        ],
    )
    def test_status(self, status: int, error: type[RemoteStoreError]) -> None:
        client = _client(lambda request: httpx.Response(status))
        with pytest.raises(error) as exc_info:
            client.get("/x", Context())
        assert exc_info.value.code == status
        assert exc_info.value.path == "/x"

    def test_transport_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientError, match="refused"):
            _client(handler).get("/x", Context())

    def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransientError, match="Timeout"):
            _client(handler).get("/x", Context())

    def test_body_code_is_returned_not_raised(self) -> None:
        """Errors inside a 200 envelope are left to the caller."""
        client = _client(lambda request: httpx.Response(200, json={"code": 500, "message": "object not found"}))
        resp = client.get("/x", Context())
        assert resp.code == 500
        assert resp.not_found

    def test_invalid_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RemoteStoreError, match="Invalid JSON"):
            client.get("/x", Context())

    def test_cancelled_context_sends_nothing(self) -> None:
        """A context cancelled up front never reaches the server."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"code": 200})

        ctx = Context()
        ctx.cancel()
        with pytest.raises(Cancelled):
            _client(handler).get("/x", ctx)
        assert calls == []


class TestSession:
    def test_ping(self) -> None:
        server = FakeAList()
        client = AListClient(BASE_URL, transport=server.transport)
        assert client.ping(Context()) == "pong"

    def test_login_stores_token(self) -> None:
        server = FakeAList()
        client = AListClient(BASE_URL, transport=server.transport)
        assert client.login("admin", "hunter2", Context()) == server.token
        assert client.token == server.token
        assert client.whoami(Context()) == "admin"

    def test_login_rejected(self) -> None:
        server = FakeAList()
        client = AListClient(BASE_URL, transport=server.transport)
        with pytest.raises(AuthenticationError, match="Login failed"):
            client.login("admin", "wrong", Context())

    def test_whoami_bad_token(self) -> None:
        server = FakeAList()
        client = AListClient(BASE_URL, transport=server.transport)
        client.token = "stale"
        with pytest.raises(AuthenticationError, match="Token rejected"):
            client.whoami(Context())


class TestRequests:
    def test_request_bodies(self) -> None:
        seen: list[tuple[str, dict[str, object], str | None]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, json.loads(request.content), request.headers.get("Authorization")))
            return httpx.Response(200, json={"code": 200, "message": "success"})

        client = _client(handler)
        client.token = "tok"
        ctx = Context()
        client.list_dir("/a", ctx)
        client.mkdir("/a/b", ctx)
        client.remove("/a", ["x", "y"], ctx)
        client.rename("/a/x", "z", ctx)
        client.move("/a", "/b", ["x"], ctx)
        client.copy("/a", "/b", ["x"], ctx)
        client.recursive_move("/a", "/c", ctx)

        assert [path for path, _, _ in seen] == [
            "/api/fs/list",
            "/api/fs/mkdir",
            "/api/fs/remove",
            "/api/fs/rename",
            "/api/fs/move",
            "/api/fs/copy",
            "/api/fs/recursive_move",
        ]
        assert seen[0][1]["path"] == "/a"
        assert seen[2][1] == {"dir": "/a", "names": ["x", "y"]}
        assert seen[3][1] == {"path": "/a/x", "name": "z"}
        assert seen[4][1] == {"src_dir": "/a", "dst_dir": "/b", "names": ["x"]}
        assert seen[6][1] == {"src_dir": "/a", "dst_dir": "/c", "overwrite": False}
        assert all(auth == "tok" for _, _, auth in seen)

    def test_upload_headers(self) -> None:
        captured: dict[str, object] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            captured["body"] = request.read()
            return httpx.Response(200, json={"code": 200, "data": None})

        client = _client(handler)
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        resp = client.upload("/dir/a b.txt", b"x" * 100_000, Context(), modified=modified)
        assert resp.ok
        headers = captured["headers"]
        assert headers["File-Path"] == "/dir/a%20b.txt"  # type: ignore[index]
        assert headers["As-Task"] == "false"  # type: ignore[index]
        assert headers["Content-Length"] == "100000"  # type: ignore[index]
        assert headers["Last-Modified"] == str(int(modified.timestamp() * 1000))  # type: ignore[index]
        assert captured["body"] == b"x" * 100_000

    def test_upload_cancelled_mid_stream(self) -> None:
        """Cancelling while the body streams stops the upload early."""
        ctx = Context()
        chunks_seen: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"code": 200})

        client = _client(handler)
        original_check = ctx.check

        def check() -> None:
            chunks_seen.append(1)
            if len(chunks_seen) == 3:
                ctx.cancel()
            original_check()

        ctx.check = check  # type: ignore[method-assign]
        with pytest.raises(Cancelled):
            client.upload("/big", b"x" * (64 * 1024 * 10), ctx)
        assert len(chunks_seen) < 10


class TestDownload:
    def test_whole_file(self) -> None:
        server = FakeAList()
        server.add_file("/a/f.bin", b"\x00\x01" * 50_000)
        client = AListClient(BASE_URL, transport=server.transport)
        with client.download(f"{BASE_URL}/d/a/f.bin", Context(), path="/a/f.bin") as data:
            assert data.read() == b"\x00\x01" * 50_000

    def test_missing(self) -> None:
        server = FakeAList()
        client = AListClient(BASE_URL, transport=server.transport)
        with pytest.raises(NotFound):
            client.download(f"{BASE_URL}/d/missing", Context())

    def test_range_header(self) -> None:
        seen: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Range"))
            return httpx.Response(206, content=b"234")

        client = _client(handler)
        assert client.download(f"{BASE_URL}/d/f", Context(), offset=2, length=3).read() == b"234"
        client.download(f"{BASE_URL}/d/f", Context(), offset=5).read()
        client.download(f"{BASE_URL}/d/f", Context()).read()
        assert seen == ["bytes=2-4", "bytes=5-", None]

    def test_server_ignoring_range(self) -> None:
        """A full-body answer to a ranged request is trimmed to the range."""
        data = bytes(range(256)) * 1024
        client = _client(lambda request: httpx.Response(200, content=data))
        reader = client.download(f"{BASE_URL}/d/f", Context(), offset=70_000, length=100_000)
        assert reader.read() == data[70_000:170_000]

    def test_range_past_end(self) -> None:
        server = FakeAList()
        server.add_file("/f", b"abc")
        client = AListClient(BASE_URL, transport=server.transport)
        assert client.download(f"{BASE_URL}/d/f", Context(), offset=3).read() == b""

    def test_reads_lazily_and_checks_context(self) -> None:
        """Cancelling between chunks stops the read of a streaming body."""
        server = FakeAList()
        server.add_file("/big", b"x" * (64 * 1024 * 4))
        client = AListClient(BASE_URL, transport=server.transport)
        ctx = Context()
        reader = client.download(f"{BASE_URL}/d/big", ctx)
        assert reader.read(10) == b"x" * 10
        ctx.cancel()
        with pytest.raises(Cancelled):
            reader.read()
        reader.close()


class TestCancellation:
    def test_cancel_interrupts_request_in_flight(self) -> None:
        """The caller gets ``Cancelled`` without waiting for the server to answer."""
        release = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            release.wait(5)
            return httpx.Response(200, json={"code": 200})

        client = _client(handler)
        ctx = Context()
        timer = threading.Timer(0.1, ctx.cancel)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(Cancelled):
                client.list_dir("/", ctx)
        finally:
            release.set()
            timer.cancel()
            client.close()
        assert time.monotonic() - start < 2

    def test_deadline_interrupts_request_in_flight(self) -> None:
        release = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            release.wait(5)
            return httpx.Response(200, json={"code": 200})

        client = _client(handler)
        start = time.monotonic()
        try:
            with pytest.raises(Cancelled, match="deadline"):
                client.get("/x", Context(timeout=0.1))
        finally:
            release.set()
            client.close()
        assert time.monotonic() - start < 2

    def test_request_timeout_capped_by_deadline(self) -> None:
        """The HTTP timeout never outlives the context deadline."""
        seen: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.extensions["timeout"]["read"])
            return httpx.Response(200, json={"code": 200})

        client = AListClient(BASE_URL, transport=httpx.MockTransport(handler), timeout=30.0)
        client.get("/x", Context())
        client.get("/x", Context(timeout=5))
        assert seen[0] == 30.0
        assert 0 < seen[1] <= 5
