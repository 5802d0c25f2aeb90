"""AList backend: plans every filesystem verb as a sequence of API calls."""

from __future__ import annotations

import io
import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, BinaryIO

from alist_remote._backend import Fs
from alist_remote._cache import DirCache, ListedChild
from alist_remote._capabilities import Capability, CapabilitySet
from alist_remote._config import AListOptions
from alist_remote._context import Context
from alist_remote._encoding import NameEncoder
from alist_remote._errors import (
    AlreadyExists,
    BackendUnavailable,
    Cancelled,
    CapabilityNotSupported,
    DirectoryNotEmpty,
    FallbackRequired,
    InvalidPath,
    NotFound,
    RemoteStoreError,
)
from alist_remote._models import DirectoryEntry, MetadataSource, ObjectRecord
from alist_remote._pacer import Pacer
from alist_remote._path import PathKey, join_remote, split_remote
from alist_remote._types import DirID
from alist_remote.backends._alist_api import AListClient, ApiResponse, parse_hash, parse_modified
from alist_remote.backends._alist_resolver import MetadataResolver

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from alist_remote._types import WritableContent

log = logging.getLogger(__name__)

_ALIST_CAPABILITIES = CapabilitySet(
    {
        Capability.PURGE,
        Capability.COPY,
        Capability.MOVE,
        Capability.DIR_MOVE,
        Capability.CAN_HAVE_EMPTY_DIRECTORIES,
    }
)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

# body codes the server uses for "destination exists" and "not supported"
_CODE_EXISTS = 403
_CODES_UNSUPPORTED = (400, 501)


class AListFs(Fs):
    """Filesystem on an AList server.

    Directories are identified by their absolute server path. Resolved
    directories are cached; every structural change flushes the affected
    subtree. All round trips go through one shared :class:`Pacer`.

    The connection is opened lazily by the first verb: the server is
    pinged, the token is checked (or a login performed) and the root is
    inspected. A root that names a file re-roots the filesystem at its parent
    and sets :attr:`root_is_file`.

    :param api_url: Server URL, optionally with a root path.
    :param transport: Optional httpx transport, mainly for tests.
    :param options: Remaining :class:`AListOptions` fields as keywords.
    """

    def __init__(self, api_url: str, *, transport: httpx.BaseTransport | None = None, **options: Any) -> None:
        self._options = AListOptions.from_dict({"api_url": api_url, **options})
        self._options.validate()
        self._client = AListClient(
            self._options.base_url,
            timeout=self._options.timeout,
            transport=transport,
            backend=self.name,
        )
        self._pacer = Pacer(
            min_sleep=self._options.min_sleep,
            max_sleep=self._options.max_sleep,
            decay_constant=self._options.decay_constant,
        )
        self._resolver = MetadataResolver(self._client, self._pacer)
        self._encoder = NameEncoder(self._options.encoding)
        root = self._options.remote_root
        self._root = self._encoder.encode_path(root) if root != "/" else root
        self._cache = DirCache(DirID(self._root), self)
        self._connect_lock = threading.Lock()
        self._connected = False
        self.root_is_file = False
        self.root_file_name = ""

    @classmethod
    def from_options(cls, options: AListOptions, *, transport: httpx.BaseTransport | None = None) -> AListFs:
        """Build a filesystem from an :class:`AListOptions` instance."""
        fields = {k: v for k, v in vars(options).items() if k != "api_url"}
        return cls(options.api_url, transport=transport, **fields)

    def __repr__(self) -> str:
        return f"AListFs({self._client.base_url!r}, root={self._root!r})"

    @property
    def name(self) -> str:
        return "alist"

    @property
    def root(self) -> str:
        return self._root

    @property
    def api_url(self) -> str:
        return self._client.base_url

    @property
    def capabilities(self) -> CapabilitySet:
        return _ALIST_CAPABILITIES

    @property
    def hashes(self) -> frozenset[str]:
        return frozenset({"md5"})

    @property
    def precision(self) -> float:
        return 1.0

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    @property
    def dir_cache(self) -> DirCache:
        return self._cache

    # region: connection

    def connect(self, ctx: Context | None = None) -> None:
        """Ping, authenticate and inspect the root. Runs once per instance.

        :raises BackendUnavailable: If the server does not answer the ping.
        :raises AuthenticationError: If the credentials are rejected.
        """
        ctx = ctx or Context()
        with self._connect_lock:
            if self._connected:
                return
            try:
                self._client.ping(ctx)
            except Cancelled:
                raise
            except RemoteStoreError as exc:
                raise BackendUnavailable(
                    f"AList server did not answer ping: {exc}", backend=self.name, code=exc.code
                ) from exc

            if self._options.token:
                self._client.token = self._options.token
                user = self._pacer.call(lambda: self._client.whoami(ctx), ctx)
            else:
                self._pacer.call(lambda: self._client.login(self._options.username, self._options.password, ctx), ctx)
                user = self._options.username
            log.info("Connected to %s as %s", self._client.base_url, user)

            self._inspect_root(ctx)
            self._connected = True

    def _inspect_root(self, ctx: Context) -> None:
        if self._root == "/":
            return
        try:
            item = self._resolver.get_info(self._root, ctx)
        except NotFound:
            log.debug("Root %s does not exist yet", self._root)
            return
        if not item.is_dir:
            parent, leaf = split_remote(self._root)
            log.info("Root %s is a file; using %s as root", self._root, parent)
            self._root = parent
            self.root_file_name = self._encoder.to_standard_name(leaf)
            self.root_is_file = True
            self._cache.reset_root(DirID(parent))

    def _begin(self, ctx: Context | None) -> Context:
        ctx = ctx or Context()
        self.connect(ctx)
        return ctx

    def close(self) -> None:
        self._client.close()

    # endregion

    # region: path helpers

    @staticmethod
    def _key(remote: str | PathKey) -> PathKey:
        return remote if isinstance(remote, PathKey) else PathKey(remote)

    def _full_path(self, key: PathKey) -> str:
        """Absolute, encoded server path of ``key``."""
        if key.is_root:
            return self._root
        return join_remote(self._root, "/".join(self._encoder.from_standard_name(p) for p in key.parts))

    def _check_response(self, resp: ApiResponse, verb: str, path: str) -> None:
        """Raise for a non-success body code of a mutating call."""
        if resp.ok:
            return
        if resp.code == _CODE_EXISTS:
            raise AlreadyExists(f"{verb}: destination exists", path=path, backend=self.name, code=resp.code)
        if resp.code in _CODES_UNSUPPORTED:
            raise FallbackRequired(
                f"{verb} not supported by server: {resp.message}",
                path=path,
                backend=self.name,
                code=resp.code,
                operation=verb,
            )
        if resp.not_found:
            raise NotFound(f"{verb}: {resp.message}", path=path, backend=self.name, code=resp.code)
        raise RemoteStoreError(f"{verb} failed: {resp.message}", path=path, backend=self.name, code=resp.code)

    def _mutate(self, verb: str, path: str, call: Callable[[], ApiResponse], ctx: Context) -> None:
        """Issue a server-side move/rename/copy and map its outcome."""
        try:
            resp = self._pacer.call(call, ctx)
        except CapabilityNotSupported as exc:
            raise FallbackRequired(
                f"{verb} not supported by server", path=path, backend=self.name, code=exc.code, operation=verb
            ) from exc
        self._check_response(resp, verb, path)

    # endregion

    # region: DirLister

    def list_children(self, dir_id: DirID, ctx: Context) -> list[ListedChild]:
        resp = self._pacer.call(lambda: self._client.list_dir(dir_id, ctx), ctx)
        if resp.not_found:
            raise NotFound(f"Directory not found: {dir_id}", path=dir_id, backend=self.name, code=resp.code)
        if not resp.ok:
            raise RemoteStoreError(f"list failed: {resp.message}", path=dir_id, backend=self.name, code=resp.code)
        return [
            ListedChild(
                name=self._encoder.to_standard_name(item.name),
                id=DirID(join_remote(dir_id, item.name)),
                is_dir=item.is_dir,
            )
            for item in resp.items()
        ]

    def create_dir(self, parent_id: DirID, leaf: str, ctx: Context) -> DirID:
        full = join_remote(parent_id, self._encoder.from_standard_name(leaf))
        self._mkdir_full(full, ctx)
        return DirID(full)

    # endregion

    # region: directories

    def list(self, directory: str | PathKey = "", ctx: Context | None = None) -> list[DirectoryEntry | ObjectRecord]:
        ctx = self._begin(ctx)
        key = self._key(directory)
        dir_id = self._cache.find_dir(key, ctx)
        generation = self._cache.generation
        resp = self._pacer.call(lambda: self._client.list_dir(dir_id, ctx), ctx)
        if resp.not_found:
            return []
        if not resp.ok:
            raise RemoteStoreError(f"list failed: {resp.message}", path=dir_id, backend=self.name, code=resp.code)

        entries: list[DirectoryEntry | ObjectRecord] = []
        stale = 0
        for item in resp.items():
            try:
                child_key = key / self._encoder.to_standard_name(item.name)
            except InvalidPath:
                log.warning("Skipping entry with unusable name %r in %s", item.name, dir_id)
                continue
            child_id = DirID(join_remote(dir_id, item.name))
            if item.is_dir:
                if not self._cache.put_if_current(child_key, child_id, generation):
                    stale += 1
                entries.append(
                    DirectoryEntry(
                        id=child_id,
                        name=child_key.name,
                        path=child_key,
                        parent_id=dir_id,
                        modified_at=item.modified,
                    )
                )
            else:
                entries.append(
                    ObjectRecord(
                        fs=self,
                        remote=child_key,
                        size=item.size,
                        modified_at=item.modified or _EPOCH,
                        id=item.name,
                        parent_id=dir_id,
                        md5=item.md5,
                        source=MetadataSource.LISTING,
                    )
                )
        if stale:
            log.debug("Cache flushed during listing of %s; %d directories not cached", dir_id, stale)
        log.debug("Listed %s: %d entries", dir_id, len(entries))
        return entries

    def _mkdir_full(self, full: str, ctx: Context) -> None:
        try:
            resp = self._pacer.call(lambda: self._client.mkdir(full, ctx), ctx)
        except AlreadyExists:
            return
        if resp.ok or resp.code == 409 or "already" in resp.message.lower():
            return
        raise RemoteStoreError(f"mkdir failed: {resp.message}", path=full, backend=self.name, code=resp.code)

    def mkdir(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        ctx = self._begin(ctx)
        key = self._key(directory)
        full = self._full_path(key)
        if full != "/":
            self._mkdir_full(full, ctx)
        self._cache.put(key, DirID(full))

    def _remove_dir(self, directory: str | PathKey, ctx: Context | None, *, check_empty: bool) -> None:
        ctx = self._begin(ctx)
        key = self._key(directory)
        if self._full_path(key) == "/":
            raise InvalidPath("Refusing to remove the server root", path="/", backend=self.name)
        dir_id = self._cache.find_dir(key, ctx)
        if check_empty and self.list_children(dir_id, ctx):
            raise DirectoryNotEmpty(f"Directory not empty: {key}", path=str(key), backend=self.name)
        parent, leaf = split_remote(dir_id)
        try:
            resp = self._pacer.call(lambda: self._client.remove(parent, [leaf], ctx), ctx)
        finally:
            self._cache.flush(key)
        if resp.not_found:
            raise NotFound(f"Directory not found: {key}", path=str(key), backend=self.name, code=resp.code)
        if not resp.ok:
            raise RemoteStoreError(f"remove failed: {resp.message}", path=dir_id, backend=self.name, code=resp.code)

    def rmdir(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        self._remove_dir(directory, ctx, check_empty=True)

    def purge(self, directory: str | PathKey, ctx: Context | None = None) -> None:
        self._remove_dir(directory, ctx, check_empty=False)

    def dir_cache_flush(self) -> None:
        self._cache.reset_root()

    # endregion

    # region: objects

    def new_object(self, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        ctx = self._begin(ctx)
        key = self._key(remote)
        if key.is_root:
            raise NotFound("The root is a directory", path=str(key), backend=self.name)
        leaf, parent_id = self._cache.find_path(key, ctx)
        full = join_remote(parent_id, self._encoder.from_standard_name(leaf))
        return self._resolver.resolve(self, key, full, ctx)

    @staticmethod
    def _read_content(content: WritableContent) -> bytes:
        # retries must be able to resend the body
        if isinstance(content, (bytes, bytearray, memoryview)):
            return bytes(content)
        return content.read()

    def _upload(self, obj: ObjectRecord, full: str, data: bytes, modified_at: datetime | None, ctx: Context) -> None:
        resp = self._pacer.call(lambda: self._client.upload(full, data, ctx, modified=modified_at), ctx)
        if not resp.ok:
            raise RemoteStoreError(f"upload failed: {resp.message}", path=full, backend=self.name, code=resp.code)

        info = resp.data if isinstance(resp.data, dict) else None
        if info is not None and isinstance(info.get("size"), int):
            obj.size = info["size"]
            obj.modified_at = parse_modified(info.get("modified")) or obj.modified_at
            md5 = parse_hash(info.get("hash_info", info.get("hashinfo")))
            obj.md5 = md5 if md5 is not None else obj.md5
            obj.source = MetadataSource.UPLOAD
            return

        try:
            item = self._resolver.get_info(full, ctx)
        except Cancelled:
            raise
        except NotFound:
            log.debug("Uploaded %s not visible yet; keeping declared metadata", full)
            return
        except RemoteStoreError as exc:
            log.warning("Uploaded %s but could not read it back (%s); keeping declared metadata", full, exc)
            return
        obj.size = item.size
        obj.modified_at = item.modified or obj.modified_at
        obj.md5 = item.md5 or ""
        obj.source = MetadataSource.METADATA

    def put(
        self,
        remote: str | PathKey,
        content: WritableContent,
        *,
        modified_at: datetime | None = None,
        ctx: Context | None = None,
    ) -> ObjectRecord:
        ctx = self._begin(ctx)
        key = self._key(remote)
        if key.is_root:
            raise InvalidPath("Cannot upload to the root itself", path=str(key), backend=self.name)
        leaf, parent_id = self._cache.find_path(key, ctx, create=True)
        encoded = self._encoder.from_standard_name(leaf)
        full = join_remote(parent_id, encoded)
        data = self._read_content(content)
        obj = ObjectRecord(
            fs=self,
            remote=key,
            size=len(data),
            modified_at=modified_at or datetime.now(tz=timezone.utc),
            id=encoded,
            parent_id=parent_id,
        )
        self._upload(obj, full, data, modified_at, ctx)
        log.debug("Uploaded %s (%d bytes, %s)", full, obj.size, obj.source.value)
        return obj

    def update(
        self,
        obj: ObjectRecord,
        content: WritableContent,
        *,
        modified_at: datetime | None = None,
        ctx: Context | None = None,
    ) -> None:
        ctx = self._begin(ctx)
        leaf, parent_id = self._cache.find_path(obj.remote, ctx, create=True)
        full = join_remote(parent_id, self._encoder.from_standard_name(leaf))
        data = self._read_content(content)
        obj.size = len(data)
        obj.modified_at = modified_at or datetime.now(tz=timezone.utc)
        obj.md5 = None
        obj.parent_id = parent_id
        obj.source = MetadataSource.DECLARED
        self._upload(obj, full, data, modified_at, ctx)

    def open(
        self,
        obj: ObjectRecord,
        ctx: Context | None = None,
        *,
        offset: int = 0,
        length: int | None = None,
    ) -> BinaryIO:
        if offset < 0:
            raise ValueError(f"Negative offset: {offset}")
        ctx = self._begin(ctx)
        full = self._full_path(obj.remote)
        item = self._resolver.get_info(full, ctx)
        if item.is_dir:
            raise NotFound(f"Is a directory: {obj.remote}", path=str(obj.remote), backend=self.name)
        if not item.raw_url:
            raise RemoteStoreError("Server returned no download URL", path=full, backend=self.name)
        if length is not None:
            length = min(length, item.size - offset)
        if offset >= item.size or (length is not None and length <= 0):
            return io.BytesIO()
        return self._pacer.call(
            lambda: self._client.download(item.raw_url, ctx, path=full, offset=offset, length=length), ctx
        )

    def remove(self, obj: ObjectRecord, ctx: Context | None = None) -> None:
        ctx = self._begin(ctx)
        parent, leaf = split_remote(self._full_path(obj.remote))
        resp = self._pacer.call(lambda: self._client.remove(parent, [leaf], ctx), ctx)
        if resp.not_found:
            raise NotFound(f"Not found: {obj.remote}", path=str(obj.remote), backend=self.name, code=resp.code)
        if not resp.ok:
            raise RemoteStoreError(f"remove failed: {resp.message}", path=parent, backend=self.name, code=resp.code)

    def hash(self, obj: ObjectRecord, ctx: Context | None = None) -> str:
        """Return the MD5 of ``obj``, with one ``get`` round trip if it is not known yet."""
        if obj.md5 is None:
            ctx = self._begin(ctx)
            item = self._resolver.get_info(self._full_path(obj.remote), ctx)
            obj.md5 = item.md5 or ""
        return obj.md5

    # endregion

    # region: server-side transfers

    def _same_server(self, other: Fs, operation: str) -> AListFs:
        if not isinstance(other, AListFs) or other.api_url != self.api_url:
            raise FallbackRequired(
                f"Cannot {operation} across different servers", backend=self.name, operation=operation
            )
        return other

    def _flush_parents(self, src_fs: AListFs, src: PathKey, dst: PathKey) -> None:
        src_fs._cache.flush(src.parent or PathKey.root())
        self._cache.flush(dst.parent or PathKey.root())

    def move(self, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        """Move a file with ``rename`` (same directory) or ``move`` (same name).

        :raises FallbackRequired: When both directory and name change, or the
            source lives on another server. The source is untouched.
        :raises AlreadyExists: If the destination exists.
        """
        src_fs = self._same_server(src.fs, "move")
        ctx = self._begin(ctx)
        src_fs.connect(ctx)
        dst_key = self._key(remote)
        src_full = src_fs._full_path(src.remote)
        dst_full = self._full_path(dst_key)
        src_dir, src_leaf = split_remote(src_full)
        dst_dir, dst_leaf = split_remote(dst_full)

        if src_dir == dst_dir:
            if src_leaf == dst_leaf:
                return self.new_object(dst_key, ctx)
            call = lambda: self._client.rename(src_full, dst_leaf, ctx)  # noqa: E731
        elif src_leaf == dst_leaf:
            self._cache.find_path(dst_key, ctx, create=True)
            call = lambda: self._client.move(src_dir, dst_dir, [src_leaf], ctx)  # noqa: E731
        else:
            raise FallbackRequired(
                "Server cannot move and rename in one call", path=str(src.remote), backend=self.name, operation="move"
            )

        try:
            self._mutate("move", src_full, call, ctx)
        finally:
            self._flush_parents(src_fs, src.remote, dst_key)
        log.debug("Moved %s -> %s", src_full, dst_full)
        return self.new_object(dst_key, ctx)

    def copy(self, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
        """Copy a file into another directory under the same name.

        AList copies in a background task, so a destination that is not
        visible yet is returned with the source's metadata.

        :raises FallbackRequired: When the name changes, or the source lives
            on another server.
        :raises AlreadyExists: If the destination exists.
        """
        src_fs = self._same_server(src.fs, "copy")
        ctx = self._begin(ctx)
        src_fs.connect(ctx)
        dst_key = self._key(remote)
        src_full = src_fs._full_path(src.remote)
        dst_full = self._full_path(dst_key)
        src_dir, src_leaf = split_remote(src_full)
        dst_dir, dst_leaf = split_remote(dst_full)

        if src_leaf != dst_leaf:
            raise FallbackRequired(
                "Server cannot copy under a new name", path=str(src.remote), backend=self.name, operation="copy"
            )
        if src_dir == dst_dir:
            return self.new_object(dst_key, ctx)

        _, parent_id = self._cache.find_path(dst_key, ctx, create=True)
        try:
            self._mutate("copy", src_full, lambda: self._client.copy(src_dir, dst_dir, [src_leaf], ctx), ctx)
        finally:
            self._flush_parents(src_fs, src.remote, dst_key)
        log.debug("Copied %s -> %s", src_full, dst_full)
        try:
            return self.new_object(dst_key, ctx)
        except NotFound:
            return ObjectRecord(
                fs=self,
                remote=dst_key,
                size=src.size,
                modified_at=src.modified_at,
                id=dst_leaf,
                parent_id=parent_id,
                md5=src.md5,
                source=MetadataSource.DECLARED,
            )

    def dir_move(
        self,
        src_fs: Fs,
        src_remote: str | PathKey,
        dst_remote: str | PathKey,
        ctx: Context | None = None,
    ) -> None:
        """Move a directory, preferring ``recursive_move``.

        Falls back to ``rename`` (same parent) or ``move`` (same name) when
        the server lacks ``recursive_move``.

        :raises FallbackRequired: When no server-side call applies.
        :raises AlreadyExists: If the destination exists.
        """
        source = self._same_server(src_fs, "dir_move")
        ctx = self._begin(ctx)
        source.connect(ctx)
        src_key = self._key(src_remote)
        dst_key = self._key(dst_remote)
        src_full = source._cache.find_dir(src_key, ctx)
        dst_full = self._full_path(dst_key)
        if src_full == "/" or dst_full == "/":
            raise InvalidPath("Cannot move the server root", path=src_full, backend=self.name)
        if src_full == dst_full:
            log.debug("Directory %s moved onto itself; nothing to do", src_full)
            return
        self._cache.find_dir(dst_key.parent or PathKey.root(), ctx, create=True)

        resp: ApiResponse | None
        try:
            resp = self._pacer.call(lambda: self._client.recursive_move(src_full, dst_full, ctx), ctx)
        except (CapabilityNotSupported, NotFound) as exc:
            log.debug("recursive_move unavailable (%s); falling back", exc)
            resp = None
        finally:
            source._cache.flush(src_key)
            self._cache.flush(dst_key)

        if resp is not None and resp.code not in _CODES_UNSUPPORTED:
            self._check_response(resp, "dir_move", src_full)
            log.debug("Moved directory %s -> %s", src_full, dst_full)
            return

        src_dir, src_leaf = split_remote(src_full)
        dst_dir, dst_leaf = split_remote(dst_full)
        if src_dir == dst_dir:
            call = lambda: self._client.rename(src_full, dst_leaf, ctx)  # noqa: E731
        elif src_leaf == dst_leaf:
            call = lambda: self._client.move(src_dir, dst_dir, [src_leaf], ctx)  # noqa: E731
        else:
            raise FallbackRequired(
                "Server cannot move and rename a directory in one call",
                path=str(src_key),
                backend=self.name,
                operation="dir_move",
            )
        try:
            self._mutate("dir_move", src_full, call, ctx)
        finally:
            source._cache.flush(src_key)
            self._cache.flush(dst_key)
        log.debug("Moved directory %s -> %s (fallback)", src_full, dst_full)

    # endregion
