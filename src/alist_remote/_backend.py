"""Fs abstract base class: the hierarchical filesystem contract."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, BinaryIO

from alist_remote._errors import CapabilityNotSupported

if TYPE_CHECKING:
    from datetime import datetime
    from types import TracebackType

    from alist_remote._capabilities import CapabilitySet
    from alist_remote._context import Context
    from alist_remote._models import DirectoryEntry, ObjectRecord
    from alist_remote._path import PathKey
    from alist_remote._types import WritableContent


class Fs(abc.ABC):
    """Abstract base class for hierarchical filesystems.

    Paths are relative to the filesystem root; ``""`` and ``"/"`` both name
    the root. Every verb accepts an optional :class:`Context` and stops with
    ``Cancelled`` once it is cancelled. Transport exceptions never leak:
    they are mapped to ``alist_remote`` errors.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Backend type identifier (e.g. ``'alist'``)."""

    @property
    @abc.abstractmethod
    def root(self) -> str:
        """Absolute server path acting as the root."""

    @property
    @abc.abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Declared optional features of this filesystem."""

    @property
    def hashes(self) -> frozenset[str]:
        """Hash types the server can report."""
        return frozenset()

    @property
    def precision(self) -> float:
        """Modification time precision in seconds."""
        return 1.0

    @abc.abstractmethod
    def list(self, directory: str | PathKey = "", ctx: Context | None = None) -> list[DirectoryEntry | ObjectRecord]:
        """List the direct children of ``directory``.

        :raises NotFound: If ``directory`` does not resolve.
        """

    @abc.abstractmethod
    def mkdir(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        """Create ``directory`` and any missing parents. Idempotent."""

    @abc.abstractmethod
    def rmdir(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        """Remove an empty directory.

        :raises DirectoryNotEmpty: If the directory has children.
        """

    def purge(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        """Remove a directory and everything beneath it."""
        raise CapabilityNotSupported("purge is not supported", capability="purge", backend=self.name)

    @abc.abstractmethod
    def new_object(self, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        """Look up a file.

        :raises NotFound: If ``remote`` is missing or is a directory.
        """

    @abc.abstractmethod
    def put(
        self,
        remote: str | PathKey,
        content: WritableContent,
        *,
        modified_at: datetime | None = None,
        ctx: Context | None = None,
    ) -> ObjectRecord:
        """Upload ``content`` to ``remote``, creating missing parents."""

    @abc.abstractmethod
    def update(
        self,
        obj: ObjectRecord,
        content: WritableContent,
        *,
        modified_at: datetime | None = None,
        ctx: Context | None = None,
    ) -> None:
        """Replace the content of ``obj`` and refresh it in place."""

    @abc.abstractmethod
    def open(
        self,
        obj: ObjectRecord,
        ctx: Context | None = None,
        *,
        offset: int = 0,
        length: int | None = None,
    ) -> BinaryIO:
        """Open a file for reading and return a binary stream.

        :param offset: First byte to read.
        :param length: Maximum number of bytes to read, ``None`` for the rest of the file.
        """

    def read_bytes(self, obj: ObjectRecord, ctx: Context | None = None) -> bytes:
        """Read the full content of a file."""
        with self.open(obj, ctx) as f:
            return f.read()

    @abc.abstractmethod
    def remove(self, obj: ObjectRecord, ctx: Context | None = None) -> None:
        """Delete a file."""

    def hash(self, obj: ObjectRecord, ctx: Context | None = None) -> str:
        """Return the MD5 of ``obj``, ``""`` if the server has none."""
        return obj.md5 or ""

    def copy(self, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        """Copy ``src`` server-side.

        :raises FallbackRequired: If no server-side primitive applies.
        """
        raise CapabilityNotSupported("copy is not supported", capability="copy", backend=self.name)

    def move(self, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        """Move ``src`` server-side.

        :raises FallbackRequired: If no server-side primitive applies.
        """
        raise CapabilityNotSupported("move is not supported", capability="move", backend=self.name)

    def dir_move(
        self,
        src_fs: Fs,
        src_remote: str | PathKey,
        dst_remote: str | PathKey,
        ctx: Context | None = None,
    ) -> None:
        """Move a directory of ``src_fs`` into this filesystem server-side.

        :raises FallbackRequired: If no server-side primitive applies.
        """
        raise CapabilityNotSupported("dir_move is not supported", capability="dir_move", backend=self.name)

    def dir_cache_flush(self) -> None:
        """Forget every cached directory identifier."""

    def close(self) -> None:
        """Release resources. Default is a no-op."""

    def __enter__(self) -> Fs:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
