#!/usr/bin/env python3
"""Output packager: wrap encoded bytes into a named, typed file object."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

JPEG_MEDIA_TYPE = "image/jpeg"
EXTENSIONS_BY_MEDIA_TYPE = {JPEG_MEDIA_TYPE: ".jpg"}


@dataclass(frozen=True)
class OutputFile:
    payload: bytes
    media_type: str
    file_name: str
    last_modified: int

    @property
    def size(self) -> int:
        return len(self.payload)


def strip_extension(file_name: str) -> str:
    return re.sub(r"\.[^/.]+$", "", file_name)


def derive_output_name(original_name: str, suffix: str = "_cropped", extension: str = ".jpg") -> str:
    """`shirt.png` -> `shirt_cropped.jpg`."""
    stem = strip_extension(PurePosixPath(original_name or "image").name) or "image"
    return f"{stem}{suffix}{extension}"


def package_output(
    payload: bytes,
    file_name: str,
    *,
    media_type: str = JPEG_MEDIA_TYPE,
    last_modified: Optional[int] = None,
) -> OutputFile:
    expected = EXTENSIONS_BY_MEDIA_TYPE.get(media_type)
    if expected is None:
        raise ValueError(f"Unsupported output media type: {media_type}")
    if PurePosixPath(file_name).suffix.lower() != expected:
        raise ValueError(f"File name {file_name!r} does not match media type {media_type}")
    if last_modified is None:
        last_modified = int(time.time() * 1000)
    return OutputFile(payload=bytes(payload), media_type=media_type, file_name=file_name, last_modified=last_modified)
