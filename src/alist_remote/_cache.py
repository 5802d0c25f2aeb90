"""Path resolution cache: a lazy, bidirectional map from paths to directory IDs."""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING, Protocol

from alist_remote._errors import NotFound
from alist_remote._path import PathKey

if TYPE_CHECKING:
    from alist_remote._context import Context
    from alist_remote._types import DirID

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ListedChild:
    """One child of a directory as reported by a :class:`DirLister`.

    :param name: Display (decoded) leaf name.
    :param id: Identifier of the child.
    :param is_dir: Whether the child is a directory.
    """

    name: str
    id: DirID
    is_dir: bool


class DirLister(Protocol):
    """The remote calls the cache needs to resolve and create directories."""

    def list_children(self, dir_id: DirID, ctx: Context) -> list[ListedChild]:
        """List every child of ``dir_id``.

        :raises NotFound: If ``dir_id`` no longer exists.
        """
        ...

    def create_dir(self, parent_id: DirID, leaf: str, ctx: Context) -> DirID:
        """Create ``leaf`` under ``parent_id`` and return its identifier."""
        ...


class DirCache:
    """Thread-safe cache of resolved directory identifiers.

    Entries are only added by resolution, listing or explicit :meth:`put`,
    and are removed a whole subtree at a time by :meth:`flush`. Resolving a
    missing child lists its parent once and caches every directory sibling,
    so resolving ``N`` siblings costs one listing. Concurrent resolutions
    that need the same listing share a single in-flight call.

    :param root_id: Identifier of the filesystem root.
    :param lister: Remote calls used on a cache miss.
    """

    def __init__(self, root_id: DirID, lister: DirLister) -> None:
        self._lister = lister
        self._lock = threading.RLock()
        self._root_id = root_id
        self._by_path: dict[PathKey, DirID] = {PathKey.root(): root_id}
        self._by_id: dict[DirID, PathKey] = {root_id: PathKey.root()}
        self._generation = 0
        self._inflight: dict[DirID, Future[list[ListedChild]]] = {}

    def __repr__(self) -> str:
        with self._lock:
            return f"DirCache(root_id={self._root_id!r}, entries={len(self._by_path)})"

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_path)

    @property
    def root_id(self) -> DirID:
        return self._root_id

    # region: direct access

    def get(self, path: PathKey) -> DirID | None:
        """Return the cached identifier of ``path`` without any remote call."""
        with self._lock:
            return self._by_path.get(path)

    def get_path(self, dir_id: DirID) -> PathKey | None:
        """Return the cached path of ``dir_id`` without any remote call."""
        with self._lock:
            return self._by_id.get(dir_id)

    def snapshot(self) -> dict[PathKey, DirID]:
        """Return a copy of every cached path mapping."""
        with self._lock:
            return dict(self._by_path)

    @property
    def generation(self) -> int:
        """Counter bumped by every flush; pair it with :meth:`put_if_current`."""
        with self._lock:
            return self._generation

    def put(self, path: PathKey, dir_id: DirID) -> None:
        """Record that ``path`` resolves to ``dir_id``."""
        with self._lock:
            self._put_locked(path, dir_id)

    def put_if_current(self, path: PathKey, dir_id: DirID, generation: int) -> bool:
        """Record ``path`` only if no flush happened since ``generation`` was read.

        Returns whether the entry was written.
        """
        with self._lock:
            if generation != self._generation:
                return False
            self._put_locked(path, dir_id)
            return True

    def _put_locked(self, path: PathKey, dir_id: DirID) -> None:
        old_id = self._by_path.get(path)
        if old_id is not None and old_id != dir_id:
            self._by_id.pop(old_id, None)
        old_path = self._by_id.get(dir_id)
        if old_path is not None and old_path != path:
            self._by_path.pop(old_path, None)
        self._by_path[path] = dir_id
        self._by_id[dir_id] = path

    def flush(self, path: PathKey) -> None:
        """Remove ``path`` and every entry beneath it.

        Flushing the root keeps only the root mapping. Listings started
        before the flush will not repopulate the cache.
        """
        with self._lock:
            self._generation += 1
            if path.is_root:
                self._reset_locked()
                return
            stale = [p for p in self._by_path if p.is_relative_to(path)]
            for p in stale:
                dir_id = self._by_path.pop(p)
                if self._by_id.get(dir_id) == p:
                    del self._by_id[dir_id]
        log.debug("Flushed %d cache entries under %s", len(stale), path)

    def reset_root(self, root_id: DirID | None = None) -> None:
        """Drop every entry and optionally move the root to ``root_id``."""
        with self._lock:
            self._generation += 1
            if root_id is not None:
                self._root_id = root_id
            self._reset_locked()

    def _reset_locked(self) -> None:
        self._by_path = {PathKey.root(): self._root_id}
        self._by_id = {self._root_id: PathKey.root()}

    # endregion

    # region: resolution

    def find_dir(self, path: PathKey, ctx: Context, *, create: bool = False) -> DirID:
        """Resolve a directory path to its identifier.

        Walks from the root, listing each unresolved parent at most once.

        :raises NotFound: If a component is missing and ``create`` is false.
        """
        cached = self.get(path)
        if cached is not None:
            return cached
        current = PathKey.root()
        current_id = self._root_id
        for part in path.parts:
            child = current / part
            child_id = self.get(child)
            if child_id is None:
                child_id = self._resolve_child(current, current_id, part, ctx, create=create)
            current, current_id = child, child_id
        return current_id

    def find_leaf(self, parent_id: DirID, name: str, ctx: Context) -> DirID:
        """Resolve any child (file or directory) ``name`` of ``parent_id``.

        :raises NotFound: If ``parent_id`` has no such child.
        """
        parent_path = self.get_path(parent_id)
        if parent_path is not None:
            cached = self.get(parent_path / name)
            if cached is not None:
                return cached
        for child in self._list(parent_id, parent_path, ctx):
            if child.name == name:
                return child.id
        raise NotFound(f"Not found: {name}", path=name)

    def find_path(self, path: PathKey, ctx: Context, *, create: bool = False) -> tuple[str, DirID]:
        """Resolve the parent directory of ``path`` and return ``(leaf, parent_id)``.

        :raises NotFound: If the parent is missing and ``create`` is false.
        """
        parent = path.parent or PathKey.root()
        return path.name, self.find_dir(parent, ctx, create=create)

    def _resolve_child(self, parent: PathKey, parent_id: DirID, part: str, ctx: Context, *, create: bool) -> DirID:
        child = parent / part
        for listed in self._list(parent_id, parent, ctx):
            if listed.name == part and listed.is_dir:
                return listed.id
        # the listing may have been discarded by a concurrent flush
        cached = self.get(child)
        if cached is not None:
            return cached
        if not create:
            raise NotFound(f"Directory not found: {child}", path=str(child))
        new_id = self._lister.create_dir(parent_id, part, ctx)
        self.put(child, new_id)
        return new_id

    def _list(self, parent_id: DirID, parent: PathKey | None, ctx: Context) -> list[ListedChild]:
        """List ``parent_id`` once and cache its directory children.

        Callers arriving while a listing of the same directory is in flight
        wait for that listing instead of issuing their own.
        """
        with self._lock:
            pending = self._inflight.get(parent_id)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[parent_id] = pending
                generation = self._generation
        assert pending is not None
        if not owner:
            return pending.result()

        try:
            children = self._lister.list_children(parent_id, ctx)
        except BaseException as exc:
            with self._lock:
                del self._inflight[parent_id]
            pending.set_exception(exc)
            raise

        with self._lock:
            del self._inflight[parent_id]
            if generation == self._generation and parent is not None:
                for child in children:
                    if child.is_dir:
                        self._put_locked(parent / child.name, child.id)
            else:
                log.debug("Discarding stale listing of %s", parent_id)
        pending.set_result(children)
        return children

    # endregion
