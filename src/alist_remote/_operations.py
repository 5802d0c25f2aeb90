"""Transfers that prefer server-side calls and fall back to read-then-write."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from alist_remote._capabilities import Capability
from alist_remote._errors import CapabilityNotSupported, FallbackRequired
from alist_remote._models import DirectoryEntry
from alist_remote._path import PathKey

if TYPE_CHECKING:
    from alist_remote._backend import Fs
    from alist_remote._context import Context
    from alist_remote._models import ObjectRecord

log = logging.getLogger(__name__)

_FALLBACK = (FallbackRequired, CapabilityNotSupported)


def _transfer(dst: Fs, src: ObjectRecord, remote: str | PathKey, ctx: Context | None) -> ObjectRecord:
    data = src.fs.read_bytes(src, ctx)
    return dst.put(remote, data, modified_at=src.modified_at, ctx=ctx)


def copy_file(dst: Fs, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
    """Copy ``src`` to ``remote`` on ``dst``."""
    if dst.capabilities.supports(Capability.COPY):
        try:
            return dst.copy(src, remote, ctx)
        except _FALLBACK as exc:
            log.debug("Server-side copy of %s unavailable (%s); streaming", src.remote, exc)
    return _transfer(dst, src, remote, ctx)


def move_file(dst: Fs, src: ObjectRecord, remote: str | PathKey, ctx: Context | None = None) -> ObjectRecord:
    """Move ``src`` to ``remote`` on ``dst``.

    The fallback writes the destination before deleting the source.
    """
    if dst.capabilities.supports(Capability.MOVE):
        try:
            return dst.move(src, remote, ctx)
        except _FALLBACK as exc:
            log.debug("Server-side move of %s unavailable (%s); copying then deleting", src.remote, exc)
    moved = _transfer(dst, src, remote, ctx)
    src.fs.remove(src, ctx)
    return moved


def move_dir(
    dst: Fs,
    src_fs: Fs,
    src_remote: str | PathKey,
    dst_remote: str | PathKey,
    ctx: Context | None = None,
) -> None:
    """Move a directory tree from ``src_fs`` to ``dst``.

    Without a server-side directory move, every entry is moved on its own
    and the emptied source directories are removed. The destination
    directory is created up front only where empty directories can exist;
    elsewhere writing the first file creates it.
    """
    if dst.capabilities.supports(Capability.DIR_MOVE):
        try:
            dst.dir_move(src_fs, src_remote, dst_remote, ctx)
            return
        except _FALLBACK as exc:
            log.debug("Server-side move of directory %s unavailable (%s); moving entries", src_remote, exc)

    src_key = PathKey(src_remote)
    dst_key = PathKey(dst_remote)
    if dst.capabilities.supports(Capability.CAN_HAVE_EMPTY_DIRECTORIES):
        dst.mkdir(dst_key, ctx)
    for entry in src_fs.list(src_key, ctx):
        target = dst_key / entry.name
        if isinstance(entry, DirectoryEntry):
            move_dir(dst, src_fs, entry.path, target, ctx)
        else:
            move_file(dst, entry, target, ctx)
    src_fs.rmdir(src_key, ctx)


def purge_dir(fs: Fs, directory: str | PathKey, ctx: Context | None = None) -> None:
    """Delete ``directory`` and everything beneath it.

    Uses the server-side purge when ``fs`` declares one, otherwise removes
    every file and subdirectory first.
    """
    if fs.capabilities.supports(Capability.PURGE):
        fs.purge(directory, ctx)
        return
    key = PathKey(directory)
    for entry in fs.list(key, ctx):
        if isinstance(entry, DirectoryEntry):
            purge_dir(fs, entry.path, ctx)
        else:
            fs.remove(entry, ctx)
    fs.rmdir(key, ctx)
