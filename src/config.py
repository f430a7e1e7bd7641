#!/usr/bin/env python3
"""Single segmented configuration for the image pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _aspect_from_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    if ":" in raw:
        w, h = raw.split(":", 1)
        return float(w) / float(h)
    return float(raw)


@dataclass(frozen=True)
class PathsConfig:
    upload_dir: Path = Path(os.environ.get("DRESSUP_UPLOAD_DIR", "uploads"))
    cropped_dir: Path = Path("cropped")


@dataclass(frozen=True)
class AcquisitionConfig:
    allowed_media_types: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")
    allowed_extensions: tuple[str, ...] = (".jpeg", ".jpg", ".png", ".webp")
    max_bytes: int = int(os.environ.get("DRESSUP_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))


@dataclass(frozen=True)
class CropConfig:
    aspect: float = _aspect_from_env("DRESSUP_CROP_ASPECT", "2:3")
    initial_fraction: float = 0.8
    min_drag_px: float = 1.0
    min_output_px: int = 16
    quality: float = float(os.environ.get("DRESSUP_CROP_QUALITY", "0.95"))
    name_suffix: str = "_cropped"


@dataclass(frozen=True)
class CompressionConfig:
    max_width: int = int(os.environ.get("DRESSUP_COMPRESS_MAX_WIDTH", "1200"))
    quality: float = float(os.environ.get("DRESSUP_COMPRESS_QUALITY", "0.7"))


@dataclass(frozen=True)
class QualityTierConfig:
    very_low: tuple[int, int] = (300, 450)
    low: tuple[int, int] = (500, 750)


@dataclass(frozen=True)
class WebConfig:
    public_base_url: str = os.environ.get("DRESSUP_PUBLIC_BASE_URL", "/uploads")
    port: int = int(os.environ.get("PORT", "8000"))
    events_poll_sec: float = 0.4


@dataclass(frozen=True)
class Settings:
    paths: PathsConfig = PathsConfig()
    acquisition: AcquisitionConfig = AcquisitionConfig()
    crop: CropConfig = CropConfig()
    compression: CompressionConfig = CompressionConfig()
    quality_tiers: QualityTierConfig = QualityTierConfig()
    web: WebConfig = WebConfig()


settings = Settings()
