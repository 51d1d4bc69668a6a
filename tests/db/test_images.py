"""Tests for the local receipt image store."""

from __future__ import annotations

import pytest

from sipcoin.db.images import LocalImageStore


def test_upload_download_and_remove(tmp_path):
    store = LocalImageStore(tmp_path)

    url = store.upload("user-1/1700000000000.png", b"image-bytes")

    assert url.startswith("file://")
    assert store.download("user-1/1700000000000.png") == b"image-bytes"
    store.remove("user-1/1700000000000.png")
    with pytest.raises(FileNotFoundError):
        store.download("user-1/1700000000000.png")


def test_upload_refuses_to_overwrite(tmp_path):
    store = LocalImageStore(tmp_path)
    store.upload("user-1/a.png", b"first")

    with pytest.raises(FileExistsError):
        store.upload("user-1/a.png", b"second")


@pytest.mark.parametrize("path", ["../escape.png", "/etc/passwd", ""])
def test_paths_must_stay_inside_root(tmp_path, path):
    store = LocalImageStore(tmp_path)

    with pytest.raises(ValueError):
        store.upload(path, b"data")


def test_default_root_comes_from_settings(tmp_path):
    assert LocalImageStore().root == (tmp_path / "images").resolve()
