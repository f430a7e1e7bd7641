from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from core.acquisition import RawImageSource
from core.preview import DecodedImage


def _image_bytes(size, *, fmt="JPEG", mode="RGB", color=(200, 80, 40)) -> bytes:
    out = BytesIO()
    Image.new(mode, size, color).save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def image_bytes():
    return _image_bytes


@pytest.fixture
def decoded_image():
    def make(size=(600, 900), file_name="shirt.jpg", color=(120, 120, 120)) -> DecodedImage:
        source = RawImageSource(payload=b"\xff\xd8stub", media_type="image/jpeg", file_name=file_name)
        return DecodedImage(source=source, image=Image.new("RGB", size, color))

    return make


@pytest.fixture
def client(monkeypatch, tmp_path):
    import web_app
    from crop_sessions import CropSessionStore
    from storage import LocalObjectStore

    monkeypatch.setattr(web_app, "SESSIONS", CropSessionStore())
    monkeypatch.setattr(web_app, "OBJECT_STORE", LocalObjectStore(tmp_path / "uploads", "/uploads"))
    monkeypatch.setattr(web_app, "JOBS", {})
    web_app.app.config.update(TESTING=True)
    with web_app.app.test_client() as test_client:
        yield test_client
