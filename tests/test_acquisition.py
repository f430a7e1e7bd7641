from __future__ import annotations

import pytest

from core.acquisition import acquire_source, read_source_file
from core.errors import NoImageSelected, PayloadTooLarge, UnsupportedMediaType


def test_first_file_wins(image_bytes):
    first = image_bytes((10, 15))
    source = acquire_source(
        [
            ("shirt.jpg", "image/jpeg", first),
            ("other.png", "image/png", image_bytes((20, 30), fmt="PNG")),
        ]
    )
    assert source.file_name == "shirt.jpg"
    assert source.payload == first
    assert source.byte_length == len(first)


def test_empty_event_means_no_image():
    with pytest.raises(NoImageSelected):
        acquire_source([])


def test_empty_file_means_no_image():
    with pytest.raises(NoImageSelected):
        acquire_source([("shirt.jpg", "image/jpeg", b"")])


def test_gif_is_rejected(image_bytes):
    with pytest.raises(UnsupportedMediaType) as excinfo:
        acquire_source([("anim.gif", "image/gif", image_bytes((10, 10), fmt="GIF", mode="P", color=1))])
    assert excinfo.value.status == 415


def test_extension_must_match_allowed_list():
    with pytest.raises(UnsupportedMediaType):
        acquire_source([("shirt.bmp", "image/jpeg", b"\xff\xd8\xff")])


def test_oversized_file_is_rejected_by_length():
    payload = b"\x89PNG" + b"\x00" * (15 * 1024 * 1024)
    with pytest.raises(PayloadTooLarge) as excinfo:
        acquire_source([("big.png", "image/png", payload)])
    assert excinfo.value.status == 413


def test_limit_is_configurable():
    with pytest.raises(PayloadTooLarge):
        acquire_source([("a.jpg", "image/jpeg", b"\xff" * 11)], max_bytes=10)


@pytest.mark.parametrize(
    ("declared", "expected"),
    [
        ("image/jpg", "image/jpeg"),
        ("IMAGE/PNG", "image/png"),
        ("application/octet-stream", "image/webp"),
        (None, "image/webp"),
    ],
)
def test_media_type_normalisation(declared, expected):
    name = "a.webp" if expected == "image/webp" else ("a.png" if expected == "image/png" else "a.jpg")
    source = acquire_source([(name, declared, b"\x00\x01")])
    assert source.media_type == expected


def test_read_source_file_checks_size_before_reading(tmp_path, monkeypatch):
    path = tmp_path / "big.jpg"
    path.write_bytes(b"\xff" * 64)

    def no_read(self):
        raise AssertionError("payload must not be read")

    monkeypatch.setattr(type(path), "read_bytes", no_read)
    with pytest.raises(PayloadTooLarge):
        read_source_file(path, max_bytes=32)


def test_read_source_file_rejects_unknown_extension(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    with pytest.raises(UnsupportedMediaType):
        read_source_file(path)
