#!/usr/bin/env python3
"""Source acquisition: accept one picked or dropped file and validate it."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Tuple

from core.errors import NoImageSelected, PayloadTooLarge, UnsupportedMediaType

DEFAULT_ALLOWED_MEDIA_TYPES = ("image/jpeg", "image/png", "image/webp")
DEFAULT_ALLOWED_EXTENSIONS = (".jpeg", ".jpg", ".png", ".webp")
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
# some browsers still send the legacy alias
MEDIA_TYPE_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}
EXTENSION_MEDIA_TYPES = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png", ".webp": "image/webp"}


@dataclass(frozen=True)
class RawImageSource:
    payload: bytes
    media_type: str
    file_name: str

    @property
    def byte_length(self) -> int:
        return len(self.payload)

    @property
    def extension(self) -> str:
        return PurePosixPath(self.file_name).suffix.lower()


def _normalize_media_type(media_type: Optional[str], file_name: str) -> str:
    value = (media_type or "").split(";", 1)[0].strip().lower()
    if not value or value == "application/octet-stream":
        suffix = PurePosixPath(file_name).suffix.lower()
        guessed = EXTENSION_MEDIA_TYPES.get(suffix) or mimetypes.guess_type(file_name)[0]
        value = (guessed or "").lower()
    return MEDIA_TYPE_ALIASES.get(value, value)


def validate_source(
    source: RawImageSource,
    *,
    allowed_media_types: Iterable[str] = DEFAULT_ALLOWED_MEDIA_TYPES,
    allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> RawImageSource:
    """Check media type and byte length; never touches the pixel data."""
    if source.media_type not in tuple(allowed_media_types):
        raise UnsupportedMediaType(f"{source.file_name}: media type {source.media_type or 'unknown'!r}")
    if source.extension and source.extension not in tuple(allowed_extensions):
        raise UnsupportedMediaType(f"{source.file_name}: extension {source.extension!r}")
    if source.byte_length == 0:
        raise NoImageSelected(f"{source.file_name}: empty file")
    if source.byte_length > max_bytes:
        raise PayloadTooLarge(f"{source.file_name}: {source.byte_length} bytes > {max_bytes}")
    return source


def acquire_source(
    files: Iterable[Tuple[str, Optional[str], bytes]],
    *,
    allowed_media_types: Iterable[str] = DEFAULT_ALLOWED_MEDIA_TYPES,
    allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> RawImageSource:
    """Build a validated source from (file name, declared type, bytes) entries.

    Only the first entry is used; any further files in the same pick or drop
    are discarded.
    """
    first = next(iter(files), None)
    if first is None:
        raise NoImageSelected("no file in acquisition event")
    file_name, media_type, payload = first
    file_name = file_name or "image"
    source = RawImageSource(
        payload=bytes(payload),
        media_type=_normalize_media_type(media_type, file_name),
        file_name=file_name,
    )
    return validate_source(
        source,
        allowed_media_types=allowed_media_types,
        allowed_extensions=allowed_extensions,
        max_bytes=max_bytes,
    )


def read_source_file(
    path: Path,
    *,
    allowed_media_types: Iterable[str] = DEFAULT_ALLOWED_MEDIA_TYPES,
    allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> RawImageSource:
    """Acquire a source from disk; oversized files are rejected before reading."""
    probe = RawImageSource(payload=b"", media_type=_normalize_media_type(None, path.name), file_name=path.name)
    if probe.media_type not in tuple(allowed_media_types):
        raise UnsupportedMediaType(f"{path.name}: media type {probe.media_type or 'unknown'!r}")
    size = path.stat().st_size
    if size > max_bytes:
        raise PayloadTooLarge(f"{path.name}: {size} bytes > {max_bytes}")
    return acquire_source(
        [(path.name, probe.media_type, path.read_bytes())],
        allowed_media_types=allowed_media_types,
        allowed_extensions=allowed_extensions,
        max_bytes=max_bytes,
    )
