"""Metadata resolver: one ``/api/fs/get`` round trip per lookup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from alist_remote._errors import NotFound, RemoteStoreError
from alist_remote._models import MetadataSource, ObjectRecord
from alist_remote._path import split_remote
from alist_remote._types import DirID

if TYPE_CHECKING:
    from alist_remote._backend import Fs
    from alist_remote._context import Context
    from alist_remote._pacer import Pacer
    from alist_remote._path import PathKey
    from alist_remote.backends._alist_api import AListClient, ApiItem

log = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class MetadataResolver:
    """Fetch the metadata of a single absolute server path.

    The resolver never reads or writes the directory cache; callers decide
    what to cache.

    :param client: HTTP client of the server.
    :param pacer: Retry scheduler wrapping every round trip.
    """

    def __init__(self, client: AListClient, pacer: Pacer) -> None:
        self._client = client
        self._pacer = pacer

    def get_info(self, full_path: str, ctx: Context) -> ApiItem:
        """Return the metadata of ``full_path``.

        :raises NotFound: If the server reports the path missing.
        :raises RemoteStoreError: For any other non-success response.
        """
        resp = self._pacer.call(lambda: self._client.get(full_path, ctx), ctx)
        if resp.not_found:
            raise NotFound(f"Not found: {full_path}", path=full_path, backend=self._client.backend, code=resp.code)
        if not resp.ok:
            raise RemoteStoreError(
                f"get failed: {resp.message}", path=full_path, backend=self._client.backend, code=resp.code
            )
        item = resp.item()
        log.debug("Resolved %s (dir=%s size=%d)", full_path, item.is_dir, item.size)
        return item

    def resolve(self, fs: Fs, remote: PathKey, full_path: str, ctx: Context) -> ObjectRecord:
        """Return an authoritative record of the file at ``full_path``.

        A server without an MD5 for the file leaves ``md5`` as ``""``.

        :raises NotFound: If the path is missing or is a directory.
        """
        item = self.get_info(full_path, ctx)
        if item.is_dir:
            raise NotFound(f"Is a directory: {remote}", path=str(remote), backend=self._client.backend)
        parent, leaf = split_remote(full_path)
        return ObjectRecord(
            fs=fs,
            remote=remote,
            size=item.size,
            modified_at=item.modified or _EPOCH,
            id=item.name or leaf,
            parent_id=DirID(parent),
            md5=item.md5 or "",
            source=MetadataSource.METADATA,
        )
