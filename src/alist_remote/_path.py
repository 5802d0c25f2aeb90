"""PathKey: immutable, canonical slash-separated path."""

from __future__ import annotations

from typing import Final

from alist_remote._errors import InvalidPath


class PathKey:
    """An immutable, canonical path relative to a filesystem root.

    The canonical form always has a leading slash and never a trailing one,
    except for the root itself which is ``"/"``. Empty and ``.`` segments are
    dropped; ``..`` segments and NUL bytes are rejected. Backslashes are
    ordinary name characters.

    :param raw: The raw path string to normalize and validate.
    :raises InvalidPath: If the path is unsafe.
    """

    __slots__ = ("_path",)
    _path: Final[str]  # type: ignore[misc]

    def __init__(self, raw: str | PathKey = "") -> None:
        normalized = raw._path if isinstance(raw, PathKey) else self._normalize(raw)
        object.__setattr__(self, "_path", normalized)

    @staticmethod
    def _normalize(raw: str) -> str:
        if "\0" in raw:
            raise InvalidPath("Path contains null byte", path=raw)
        parts: list[str] = []
        for segment in raw.split("/"):
            if segment == "" or segment == ".":
                continue
            if segment == "..":
                raise InvalidPath("Path contains '..' segment", path=raw)
            parts.append(segment)
        return "/" + "/".join(parts)

    @classmethod
    def root(cls) -> PathKey:
        return cls("/")

    @property
    def is_root(self) -> bool:
        return self._path == "/"

    @property
    def name(self) -> str:
        """Final component of the path, empty for the root."""
        return self._path.rsplit("/", 1)[-1]

    @property
    def parent(self) -> PathKey | None:
        """Parent path, or ``None`` for the root.

        Example: ``PathKey("/a/b").parent`` is ``PathKey("/a")`` and
        ``PathKey("/a").parent`` is the root.
        """
        if self.is_root:
            return None
        p = object.__new__(PathKey)
        object.__setattr__(p, "_path", self._path.rsplit("/", 1)[0] or "/")
        return p

    @property
    def parts(self) -> tuple[str, ...]:
        """Tuple of path components, empty for the root."""
        if self.is_root:
            return ()
        return tuple(self._path[1:].split("/"))

    def is_relative_to(self, other: PathKey) -> bool:
        """Return ``True`` if ``self`` equals ``other`` or lies beneath it."""
        if other.is_root or self._path == other._path:
            return True
        return self._path.startswith(other._path + "/")

    def relative_to(self, other: PathKey) -> str:
        """Return ``self`` relative to ``other`` without a leading slash.

        :raises ValueError: If ``self`` is not beneath ``other``.
        """
        if not self.is_relative_to(other):
            raise ValueError(f"{self._path!r} is not under {other._path!r}")
        if other.is_root:
            return self._path[1:]
        return self._path[len(other._path) + 1 :]

    def __truediv__(self, other: str) -> PathKey:
        return PathKey(f"{self._path}/{other}")

    def __str__(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"PathKey({self._path!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PathKey):
            return self._path == other._path
        return NotImplemented

    def __lt__(self, other: PathKey) -> bool:
        return self._path < other._path

    def __hash__(self) -> int:
        return hash(self._path)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"PathKey is immutable: cannot set '{name}'")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"PathKey is immutable: cannot delete '{name}'")


def join_remote(directory: str, name: str) -> str:
    """Join an absolute remote directory path and a leaf name."""
    if not name:
        return directory or "/"
    if directory in ("", "/"):
        return "/" + name
    return f"{directory.rstrip('/')}/{name}"


def split_remote(path: str) -> tuple[str, str]:
    """Split an absolute remote path into ``(parent, leaf)``.

    ``split_remote("/a/b")`` is ``("/a", "b")`` and ``split_remote("/")``
    is ``("/", "")``.
    """
    stripped = path.rstrip("/")
    if not stripped:
        return "/", ""
    parent, _, leaf = stripped.rpartition("/")
    return parent or "/", leaf
