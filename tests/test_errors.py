"""Tests for the tagged error hierarchy."""

from __future__ import annotations

import pytest

from alist_remote._errors import (
    AlreadyExists,
    AuthenticationError,
    BackendUnavailable,
    Cancelled,
    CapabilityNotSupported,
    ConfigError,
    DirectoryNotEmpty,
    ErrorKind,
    FallbackRequired,
    InvalidPath,
    NotFound,
    PermissionDenied,
    RemoteStoreError,
    TransientError,
)


class TestBaseError:
    """RemoteStoreError carries optional path, backend and code."""

    def test_default_attributes(self) -> None:
        e = RemoteStoreError("boom")
        assert e.path is None
        assert e.backend is None
        assert e.code is None
        assert e.kind is ErrorKind.FATAL

    def test_with_attributes(self) -> None:
        e = RemoteStoreError("boom", path="/a/b.txt", backend="alist", code=500)
        assert e.path == "/a/b.txt"
        assert e.backend == "alist"
        assert e.code == 500

    def test_str_plain_message(self) -> None:
        assert str(RemoteStoreError("boom")) == "boom"

    def test_str_includes_context(self) -> None:
        e = RemoteStoreError("boom", path="/a", backend="alist", code=403)
        assert str(e) == "boom | path='/a' | backend='alist' | code=403"

    def test_repr(self) -> None:
        e = NotFound("missing", path="/x")
        assert repr(e) == "NotFound('missing', path='/x')"


class TestKinds:
    """Each error class maps to one ErrorKind."""

    @pytest.mark.parametrize(
        ("cls", "kind"),
        [
            (TransientError, ErrorKind.TRANSIENT),
            (NotFound, ErrorKind.NOT_FOUND),
            (AlreadyExists, ErrorKind.CONFLICT),
            (DirectoryNotEmpty, ErrorKind.CONFLICT),
            (CapabilityNotSupported, ErrorKind.UNSUPPORTED),
            (FallbackRequired, ErrorKind.UNSUPPORTED),
            (PermissionDenied, ErrorKind.FATAL),
            (InvalidPath, ErrorKind.FATAL),
            (BackendUnavailable, ErrorKind.FATAL),
            (AuthenticationError, ErrorKind.FATAL),
            (Cancelled, ErrorKind.FATAL),
        ],
    )
    def test_kind(self, cls: type[RemoteStoreError], kind: ErrorKind) -> None:
        assert issubclass(cls, RemoteStoreError)
        assert cls("x").kind is kind


class TestCapabilityNotSupported:
    def test_capability_in_str(self) -> None:
        e = CapabilityNotSupported("nope", capability="purge")
        assert e.capability == "purge"
        assert str(e) == "nope | capability='purge'"

    def test_capability_in_repr(self) -> None:
        e = CapabilityNotSupported("nope", backend="alist", capability="copy")
        assert repr(e) == "CapabilityNotSupported('nope', backend='alist', capability='copy')"


class TestFallbackRequired:
    def test_operation(self) -> None:
        e = FallbackRequired("cannot", operation="move", path="/a/f")
        assert e.operation == "move"
        assert "operation='move'" in str(e)

    def test_distinct_from_not_found(self) -> None:
        assert not issubclass(FallbackRequired, NotFound)
        assert not issubclass(FallbackRequired, CapabilityNotSupported)


class TestConfigError:
    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError, match="bad"):
            raise ConfigError("bad")
