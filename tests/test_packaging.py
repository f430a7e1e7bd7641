from __future__ import annotations

import pytest

from core.packaging import derive_output_name, package_output


@pytest.mark.parametrize(
    ("original", "expected"),
    [
        ("shirt.png", "shirt_cropped.jpg"),
        ("summer.dress.webp", "summer.dress_cropped.jpg"),
        ("noext", "noext_cropped.jpg"),
        ("photos/jacket.JPEG", "jacket_cropped.jpg"),
        ("", "image_cropped.jpg"),
    ],
)
def test_output_name(original, expected):
    assert derive_output_name(original) == expected


def test_packaging_twice_gives_same_content():
    first = package_output(b"\xff\xd8payload", "shirt_cropped.jpg")
    second = package_output(b"\xff\xd8payload", "shirt_cropped.jpg")
    assert first.payload == second.payload
    assert first.media_type == second.media_type == "image/jpeg"
    assert first.size == len(b"\xff\xd8payload")


def test_explicit_timestamp():
    output = package_output(b"x", "a.jpg", last_modified=1700000000000)
    assert output.last_modified == 1700000000000


def test_extension_must_match_media_type():
    with pytest.raises(ValueError):
        package_output(b"x", "shirt.png")
    with pytest.raises(ValueError):
        package_output(b"x", "shirt.png", media_type="image/png")
