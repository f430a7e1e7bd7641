from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from core.acquisition import RawImageSource
from core.compression import compress_image, compressed_size
from core.errors import DecodeFailure, EncodingFailed
from core.packaging import package_output


def _size_of(payload: bytes):
    with Image.open(BytesIO(payload)) as image:
        return image.format, image.size


def test_wide_image_is_bounded(image_bytes):
    payload = compress_image(image_bytes((3000, 2000)), max_width=1200)
    assert _size_of(payload) == ("JPEG", (1200, 800))


def test_narrow_image_keeps_its_size(image_bytes):
    payload = compress_image(image_bytes((800, 1200)), max_width=1200)
    assert _size_of(payload) == ("JPEG", (800, 1200))


def test_accepts_output_files_and_sources(image_bytes):
    png = image_bytes((2400, 3600), fmt="PNG")
    source = RawImageSource(png, "image/png", "shirt.png")
    output = package_output(image_bytes((1600, 2400)), "shirt_cropped.jpg")
    assert _size_of(compress_image(source))[1] == (1200, 1800)
    assert _size_of(compress_image(output))[1] == (1200, 1800)


@pytest.mark.parametrize(
    ("size", "max_width", "expected"),
    [
        ((1200, 1800), 1200, (1200, 1800)),
        ((1201, 1800), 1200, (1200, 1799)),
        ((5000, 10), 1200, (1200, 2)),
        ((5000, 1), 1200, (1200, 1)),
    ],
)
def test_compressed_size(size, max_width, expected):
    assert compressed_size(*size, max_width) == expected


def test_invalid_width():
    with pytest.raises(ValueError):
        compress_image(b"", max_width=0)


def test_undecodable_input():
    with pytest.raises(DecodeFailure):
        compress_image(b"plain text")


def test_encoder_failure(monkeypatch, image_bytes):
    payload = image_bytes((20, 30))

    def broken_encode(surface, quality):
        raise EncodingFailed("encoder returned no data")

    monkeypatch.setattr("core.compression.encode_jpeg", broken_encode)
    with pytest.raises(EncodingFailed):
        compress_image(payload)
