"""Tests for directory entries and object records."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from alist_remote._models import DirectoryEntry, MetadataSource, ObjectRecord
from alist_remote._path import PathKey
from alist_remote._types import DirID
from alist_remote.backends._alist import AListFs
from fake_alist import FakeAList

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestDirectoryEntry:
    def test_frozen(self) -> None:
        entry = DirectoryEntry(id=DirID("/a"), name="a", path=PathKey("/a"))
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.name = "b"  # type: ignore[misc]

    def test_is_dir(self) -> None:
        assert DirectoryEntry(id=DirID("/a"), name="a", path=PathKey("/a")).is_dir

    def test_equality_by_path(self) -> None:
        a = DirectoryEntry(id=DirID("1"), name="a", path=PathKey("/a"))
        b = DirectoryEntry(id=DirID("2"), name="a", path=PathKey("/a"))
        assert a == b
        assert hash(a) == hash(b)


class TestObjectRecord:
    def test_authoritative(self, fs: AListFs) -> None:
        rec = ObjectRecord(fs=fs, remote=PathKey("/f"), size=1, modified_at=NOW)
        assert rec.source is MetadataSource.DECLARED
        assert not rec.authoritative
        for source, expected in [
            (MetadataSource.LISTING, False),
            (MetadataSource.METADATA, True),
            (MetadataSource.UPLOAD, True),
        ]:
            rec.source = source
            assert rec.authoritative is expected

    def test_name_and_is_dir(self, fs: AListFs) -> None:
        rec = ObjectRecord(fs=fs, remote=PathKey("/d/f.txt"), size=1, modified_at=NOW)
        assert rec.name == "f.txt"
        assert not rec.is_dir

    def test_equality_by_fs_and_path(self, fs: AListFs) -> None:
        a = ObjectRecord(fs=fs, remote=PathKey("/f"), size=1, modified_at=NOW)
        b = ObjectRecord(fs=fs, remote=PathKey("/f"), size=2, modified_at=NOW)
        assert a == b
        assert hash(a) == hash(b)

    def test_delegates_to_fs(self, server: FakeAList, fs: AListFs) -> None:
        server.add_file("/f.txt", b"payload")
        rec = fs.new_object("f.txt")
        assert rec.read_bytes() == b"payload"
        rec.update(b"changed")
        assert server.files["/f.txt"] == b"changed"
        rec.remove()
        assert not server.exists("/f.txt")

    def test_repr(self, fs: AListFs) -> None:
        rec = ObjectRecord(fs=fs, remote=PathKey("/f"), size=3, modified_at=NOW)
        assert repr(rec) == "ObjectRecord('/f', size=3, source=declared)"
