"""Directory entries and object records returned by filesystem verbs."""

from __future__ import annotations

import dataclasses
import enum
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from datetime import datetime

    from alist_remote._backend import Fs
    from alist_remote._context import Context
    from alist_remote._path import PathKey
    from alist_remote._types import DirID, WritableContent


class MetadataSource(enum.Enum):
    """Where the metadata of an :class:`ObjectRecord` came from."""

    DECLARED = "declared"
    LISTING = "listing"
    METADATA = "metadata"
    UPLOAD = "upload"


@dataclasses.dataclass(frozen=True, eq=False)
class DirectoryEntry:
    """Immutable snapshot of a directory seen in a listing.

    :param id: Identifier of the directory on the server.
    :param name: Display name (final path component).
    :param path: Path relative to the filesystem root.
    :param parent_id: Identifier of the containing directory.
    :param modified_at: Last modification time, if the server reported one.
    """

    id: DirID
    name: str
    path: PathKey
    parent_id: DirID | None = None
    modified_at: datetime | None = None
    is_dir: bool = dataclasses.field(default=True, init=False)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DirectoryEntry):
            return self.path == other.path
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.path)


@dataclasses.dataclass(eq=False)
class ObjectRecord:
    """Metadata of one file, bound to the filesystem that produced it.

    ``md5`` is ``None`` until a hash has been looked up and ``""`` when the
    server has no hash for the file.

    :param fs: Owning filesystem.
    :param remote: Path relative to the filesystem root.
    :param size: Size in bytes.
    :param modified_at: Last modification time.
    :param id: Server-side identifier (the encoded leaf name).
    :param parent_id: Identifier of the containing directory, if resolved.
    :param md5: Lower-case hex MD5, ``""`` or ``None``.
    :param source: Where the metadata came from.
    """

    fs: Fs
    remote: PathKey
    size: int
    modified_at: datetime
    id: str = ""
    parent_id: DirID | None = None
    md5: str | None = None
    source: MetadataSource = MetadataSource.DECLARED
    is_dir: bool = dataclasses.field(default=False, init=False)

    @property
    def name(self) -> str:
        return self.remote.name

    @property
    def authoritative(self) -> bool:
        """``True`` when size and time were confirmed by the server after a change."""
        return self.source in (MetadataSource.METADATA, MetadataSource.UPLOAD)

    def hash(self, ctx: Context | None = None) -> str:
        """Return the MD5, fetching it from the server if not known yet."""
        return self.fs.hash(self, ctx)

    def open(self, ctx: Context | None = None, *, offset: int = 0, length: int | None = None) -> BinaryIO:
        return self.fs.open(self, ctx, offset=offset, length=length)

    def read_bytes(self, ctx: Context | None = None) -> bytes:
        return self.fs.read_bytes(self, ctx)

    def update(
        self,
        content: WritableContent,
        *,
        modified_at: datetime | None = None,
        ctx: Context | None = None,
    ) -> None:
        """Replace the content and refresh this record in place."""
        self.fs.update(self, content, modified_at=modified_at, ctx=ctx)

    def remove(self, ctx: Context | None = None) -> None:
        self.fs.remove(self, ctx)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ObjectRecord):
            return self.fs is other.fs and self.remote == other.remote
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.remote)

    def __repr__(self) -> str:
        return f"ObjectRecord({str(self.remote)!r}, size={self.size}, source={self.source.value})"
