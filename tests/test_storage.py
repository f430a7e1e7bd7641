from __future__ import annotations

import pytest

from core.packaging import package_output
from storage import LocalObjectStore, StorageError, object_key


def test_object_key_is_timestamp_prefixed():
    assert object_key("shirt_cropped.jpg", now_ms=1700000000123) == "1700000000123-shirt_cropped.jpg"


def test_object_key_strips_paths_and_odd_characters():
    assert object_key("../my shirt (1).jpg", now_ms=1) == "1-my_shirt_1_.jpg"


def test_upload_writes_and_returns_url(tmp_path):
    store = LocalObjectStore(tmp_path, "https://cdn.example.com/uploads/")
    output = package_output(b"\xff\xd8data", "shirt.jpg")
    url = store.upload(output, key="42-shirt.jpg")
    assert url == "https://cdn.example.com/uploads/42-shirt.jpg"
    assert store.path_for("42-shirt.jpg").read_bytes() == b"\xff\xd8data"


def test_upload_rejects_path_keys(tmp_path):
    store = LocalObjectStore(tmp_path)
    with pytest.raises(StorageError):
        store.upload(package_output(b"x", "a.jpg"), key="../a.jpg")


def test_upload_wraps_io_errors(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    store = LocalObjectStore(blocker)
    with pytest.raises(StorageError):
        store.upload(package_output(b"x", "a.jpg"), key="1-a.jpg")
