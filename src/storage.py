#!/usr/bin/env python3
"""Local object store standing in for the hosted upload bucket."""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Optional

from core.packaging import OutputFile

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(RuntimeError):
    pass


def object_key(file_name: str, *, now_ms: Optional[int] = None) -> str:
    """`<epoch ms>-<file name>`, with path separators and odd characters removed."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    safe_name = _UNSAFE_KEY_CHARS.sub("_", Path(file_name).name).strip("._") or "image.jpg"
    return f"{now_ms}-{safe_name}"


class LocalObjectStore:
    def __init__(self, root: Path, public_base_url: str = "/uploads") -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, file: OutputFile, *, key: Optional[str] = None) -> str:
        """Store `file` and return its public URL."""
        key = key or object_key(file.file_name)
        if "/" in key or key.startswith("."):
            raise StorageError(f"Invalid object key: {key!r}")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / key).write_bytes(file.payload)
        except OSError as exc:
            raise StorageError(f"Upload of {key} failed: {exc}") from exc
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def path_for(self, key: str) -> Path:
        return self.root / key
