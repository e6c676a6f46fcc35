# tests/unit/cache/test_unit_blob_store.py — v2
"""Tests for cache/blob_store.py — content-addressed blobs and publishing."""

from __future__ import annotations

import errno
import hashlib
import os
import stat

import pytest

from artifactcache.cache import blob_store as blob_store_module
from artifactcache.cache.blob_store import BlobStore
from artifactcache.cache.errors import StorageError, UsageError


def _put(store: BlobStore, data: bytes) -> str:
    writer = store.open_writer()
    writer.write(data)
    return store.finalize(writer)


def _temp_files(store: BlobStore, prefix: str = "artifactcache-") -> list[str]:
    return [p.name for p in store.directory.iterdir() if p.name.startswith(prefix)]


class TestBlobWriter:
    def test_temp_file_in_store(self, blob_store):
        writer = blob_store.open_writer()
        assert writer.path.parent == blob_store.directory
        assert writer.path.name.startswith("artifactcache-")

    def test_write_updates_file_and_hash(self, blob_store):
        writer = blob_store.open_writer()
        writer.write(b"hello ")
        writer.write(b"world")
        writer.close_stream()
        assert writer.path.read_bytes() == b"hello world"
        assert writer.digest == hashlib.sha512(b"hello world").hexdigest()

    def test_rehash_after_external_write(self, blob_store):
        writer = blob_store.open_writer()
        writer.close_stream()
        writer.path.write_bytes(b"external")
        assert writer.rehash() == hashlib.sha512(b"external").hexdigest()

    def test_discard_removes_temp(self, blob_store):
        writer = blob_store.open_writer()
        writer.write(b"partial")
        writer.discard()
        assert not writer.path.exists()
        assert _temp_files(blob_store) == []

    def test_write_after_finalize(self, blob_store):
        writer = blob_store.open_writer()
        writer.write(b"x")
        blob_store.finalize(writer)
        with pytest.raises(UsageError):
            writer.write(b"y")


class TestFinalize:
    def test_named_by_digest(self, blob_store):
        blob_id = _put(blob_store, b"payload")
        assert blob_id == hashlib.sha512(b"payload").hexdigest()
        assert (blob_store.directory / blob_id).read_bytes() == b"payload"

    def test_read_only(self, blob_store):
        blob_id = _put(blob_store, b"payload")
        mode = stat.S_IMODE(os.stat(blob_store.path_for(blob_id)).st_mode)
        assert mode == 0o400

    def test_custom_mode(self, cache_root):
        store = BlobStore(cache_root, blob_mode=0o444)
        blob_id = _put(store, b"payload")
        assert stat.S_IMODE(os.stat(store.path_for(blob_id)).st_mode) == 0o444

    def test_same_content_same_id(self, blob_store):
        assert _put(blob_store, b"same") == _put(blob_store, b"same")

    def test_different_content_different_id(self, blob_store):
        assert _put(blob_store, b"one") != _put(blob_store, b"two")

    def test_dedup_single_file(self, blob_store):
        first = _put(blob_store, b"dup")
        second = _put(blob_store, b"dup")
        assert first == second
        blobs = [p for p in blob_store.directory.iterdir() if p.name == first]
        assert len(blobs) == 1
        assert _temp_files(blob_store) == []
        assert blob_store.read_bytes(first) == b"dup"

    def test_finalize_twice_returns_same(self, blob_store):
        writer = blob_store.open_writer()
        writer.write(b"x")
        assert blob_store.finalize(writer) == blob_store.finalize(writer)

    def test_empty_blob(self, blob_store):
        writer = blob_store.open_writer()
        blob_id = blob_store.finalize(writer)
        assert blob_id == hashlib.sha512(b"").hexdigest()
        assert blob_store.contains(blob_id)

    def test_rename_failure(self, blob_store, monkeypatch):
        def failing_replace(src, dst):
            raise OSError(errno.EACCES, "denied")

        monkeypatch.setattr(blob_store_module.os, "replace", failing_replace)
        writer = blob_store.open_writer()
        writer.write(b"x")
        with pytest.raises(StorageError, match="blob.rename") as info:
            blob_store.finalize(writer)
        assert info.value.path.endswith(writer.digest)

    def test_existing_directory_ok(self, cache_root):
        (cache_root / "files").mkdir(parents=True)
        store = BlobStore(cache_root)
        assert store.contains(_put(store, b"x"))


class TestPublish:
    def test_hard_link(self, blob_store, out_dir):
        blob_id = _put(blob_store, b"content")
        dest = blob_store.publish(blob_id, out_dir / "a.txt")
        assert dest.read_bytes() == b"content"
        assert not dest.is_symlink()
        assert os.path.samefile(dest, blob_store.path_for(blob_id))

    def test_symlink_fallback(self, blob_store, out_dir, monkeypatch):
        blob_id = _put(blob_store, b"content")

        def cross_device(src, dst):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        monkeypatch.setattr(blob_store_module.os, "link", cross_device)
        dest = blob_store.publish(blob_id, out_dir / "a.txt")
        assert dest.is_symlink()
        assert os.readlink(dest) == str(blob_store.path_for(blob_id).absolute())
        assert dest.read_bytes() == b"content"

    def test_missing_blob_not_published(self, blob_store, out_dir):
        blob_id = _put(blob_store, b"content")
        blob_store.path_for(blob_id).unlink()
        with pytest.raises(StorageError, match="blob.publish") as info:
            blob_store.publish(blob_id, out_dir / "a.txt")
        assert info.value.path == str(blob_store.path_for(blob_id).absolute())
        assert not (out_dir / "a.txt").is_symlink()
        assert not (out_dir / "a.txt").exists()

    def test_other_link_errors_do_not_fall_back(self, blob_store, out_dir, monkeypatch):
        blob_id = _put(blob_store, b"content")

        def no_such_dir(src, dst):
            raise OSError(errno.ENOENT, "No such file or directory")

        monkeypatch.setattr(blob_store_module.os, "link", no_such_dir)
        with pytest.raises(StorageError, match="blob.link"):
            blob_store.publish(blob_id, out_dir / "a.txt")
        assert not (out_dir / "a.txt").is_symlink()

    @pytest.mark.parametrize("code", [errno.EPERM, errno.EMLINK, errno.EOPNOTSUPP])
    def test_fallback_errnos(self, blob_store, out_dir, monkeypatch, code):
        blob_id = _put(blob_store, b"content")

        def refused(src, dst):
            raise OSError(code, os.strerror(code))

        monkeypatch.setattr(blob_store_module.os, "link", refused)
        assert blob_store.publish(blob_id, out_dir / "a.txt").is_symlink()

    def test_both_fail(self, blob_store, out_dir, monkeypatch):
        blob_id = _put(blob_store, b"content")

        def fail(src, dst):
            raise OSError(errno.EPERM, "nope")

        monkeypatch.setattr(blob_store_module.os, "link", fail)
        monkeypatch.setattr(blob_store_module.os, "symlink", fail)
        with pytest.raises(StorageError, match="blob.symlink") as info:
            blob_store.publish(blob_id, out_dir / "a.txt")
        assert info.value.path == str(out_dir / "a.txt")

    def test_republish_same_blob(self, blob_store, out_dir):
        blob_id = _put(blob_store, b"content")
        blob_store.publish(blob_id, out_dir / "a.txt")
        blob_store.publish(blob_id, out_dir / "a.txt")
        assert (out_dir / "a.txt").read_bytes() == b"content"

    def test_destination_taken_by_other_file(self, blob_store, out_dir):
        blob_id = _put(blob_store, b"content")
        (out_dir / "a.txt").write_bytes(b"other")
        with pytest.raises(StorageError, match="blob.link"):
            blob_store.publish(blob_id, out_dir / "a.txt")

    def test_invalid_blob_id(self, blob_store, out_dir):
        with pytest.raises(UsageError):
            blob_store.publish("../../etc/passwd", out_dir / "x")
