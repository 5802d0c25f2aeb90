"""Type aliases used throughout alist_remote."""

from __future__ import annotations

from typing import BinaryIO, NewType

# The AList API is path-addressed: a directory's identifier is its absolute
# remote path. Callers must treat it as opaque.
DirID = NewType("DirID", str)

WritableContent = BinaryIO | bytes
