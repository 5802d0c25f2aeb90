"""Tagged error hierarchy for alist_remote.

Every error carries an :class:`ErrorKind` so the retry scheduler and the
client-side fallback layer can branch on the kind instead of on the class.
"""

from __future__ import annotations

import enum
from typing import ClassVar, Optional


class ErrorKind(enum.Enum):
    """Classification of a failed remote call."""

    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNSUPPORTED = "unsupported"
    FATAL = "fatal"


class RemoteStoreError(Exception):
    """Base class for all alist_remote errors.

    :param message: Human-readable error description.
    :param path: The path involved in the error, if any.
    :param backend: The backend name involved, if any.
    :param code: The remote status or body code, if any.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.FATAL

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        code: Optional[int] = None,
    ) -> None:
        self.path = path
        self.backend = backend
        self.code = code
        super().__init__(message)

    def _context(self) -> list[str]:
        ctx = []
        if self.path is not None:
            ctx.append(f"path={self.path!r}")
        if self.backend is not None:
            ctx.append(f"backend={self.backend!r}")
        if self.code is not None:
            ctx.append(f"code={self.code!r}")
        return ctx

    def __str__(self) -> str:
        parts = [super().__str__(), *self._context()]
        return " | ".join(parts) if len(parts) > 1 else parts[0]

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(super().__str__()), *self._context()]
        return f"{cls}({', '.join(args)})"


class TransientError(RemoteStoreError):
    """Raised for failures worth retrying (transport errors, throttling, 5xx)."""

    kind = ErrorKind.TRANSIENT


class NotFound(RemoteStoreError):
    """Raised when a file or directory does not exist."""

    kind = ErrorKind.NOT_FOUND


class AlreadyExists(RemoteStoreError):
    """Raised when a destination already exists."""

    kind = ErrorKind.CONFLICT


class DirectoryNotEmpty(RemoteStoreError):
    """Raised by ``rmdir`` on a directory that still has children."""

    kind = ErrorKind.CONFLICT


class PermissionDenied(RemoteStoreError):
    """Raised when access is denied by the server."""


class InvalidPath(RemoteStoreError):
    """Raised for malformed or unsafe paths."""


class CapabilityNotSupported(RemoteStoreError):
    """Raised when an operation requires an unsupported capability.

    :param capability: The name of the unsupported capability.
    """

    kind = ErrorKind.UNSUPPORTED

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        code: Optional[int] = None,
        capability: str = "",
    ) -> None:
        self.capability = capability
        super().__init__(message, path=path, backend=backend, code=code)

    def _context(self) -> list[str]:
        ctx = super()._context()
        if self.capability:
            ctx.append(f"capability={self.capability!r}")
        return ctx


class FallbackRequired(RemoteStoreError):
    """Raised when no server-side primitive can perform the operation.

    The caller is expected to fall back to a client-side transfer. The
    source has not been modified when this is raised.

    :param operation: One of ``"copy"``, ``"move"`` or ``"dir_move"``.
    """

    kind = ErrorKind.UNSUPPORTED

    def __init__(
        self,
        message: str = "",
        *,
        path: Optional[str] = None,
        backend: Optional[str] = None,
        code: Optional[int] = None,
        operation: str = "",
    ) -> None:
        self.operation = operation
        super().__init__(message, path=path, backend=backend, code=code)

    def _context(self) -> list[str]:
        ctx = super()._context()
        if self.operation:
            ctx.append(f"operation={self.operation!r}")
        return ctx


class BackendUnavailable(RemoteStoreError):
    """Raised when the server cannot be reached or initialized."""


class AuthenticationError(RemoteStoreError):
    """Raised when the token or the username/password pair is rejected."""


class ConfigError(RemoteStoreError, ValueError):
    """Raised for invalid configuration values."""


class Cancelled(RemoteStoreError):
    """Raised when the caller's context is cancelled or its deadline passed."""
