#!/usr/bin/env python3
"""Crop garment photos from the command line and log timings."""

from __future__ import annotations

import argparse
import csv
import time
from pathlib import Path

from config import settings
from core.acquisition import read_source_file
from core.errors import ImagePipelineError
from core.geometry import CropRegion
from core.run_logging import print_crop_report, print_rejected
from crop_pipeline import crop_image, load_preview

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp"}


def _parse_region(value: str) -> CropRegion:
    parts = [float(p) for p in value.split(",")]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError("region must be x,y,width (height follows the aspect ratio)")
    x, y, width = parts
    return CropRegion(x=x, y=y, width=width, height=width / settings.crop.aspect)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crop garment photos to the wardrobe aspect ratio.")
    parser.add_argument("inputs", nargs="+", type=Path, help="Image files or directories of images.")
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=settings.paths.cropped_dir,
        help="Directory for the cropped JPEG files.",
    )
    parser.add_argument(
        "--region",
        type=_parse_region,
        default=None,
        help="Crop region x,y,width in natural pixels (default: centred crop).",
    )
    parser.add_argument(
        "--compress",
        action="store_true",
        help="Also write the upload-ready compressed copy.",
    )
    parser.add_argument(
        "--report-csv",
        type=Path,
        default=None,
        help="Path to write per-image timing CSV.",
    )
    return parser.parse_args(argv)


def _iter_paths(inputs: list[Path]) -> list[Path]:
    paths: list[Path] = []
    for item in inputs:
        if item.is_dir():
            paths.extend(sorted(p for p in item.iterdir() if p.suffix.lower() in IMAGE_EXTS))
        else:
            paths.append(item)
    return paths


def _write_report_csv(rows: list[dict[str, str | float | int]], csv_path: Path) -> None:
    if not rows:
        return
    base_cols = ["image", "natural_size", "output_size", "output_bytes", "total_sec"]
    dynamic_cols = sorted({key for row in rows for key in row.keys() if key not in base_cols})
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=base_cols + dynamic_cols)
        writer.writeheader()
        writer.writerows(rows)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    args.out_dir.mkdir(parents=True, exist_ok=True)
    rows: list[dict[str, str | float | int]] = []
    failures = 0

    for path in _iter_paths(args.inputs):
        t_start = time.perf_counter()
        try:
            source = read_source_file(
                path,
                allowed_media_types=settings.acquisition.allowed_media_types,
                allowed_extensions=settings.acquisition.allowed_extensions,
                max_bytes=settings.acquisition.max_bytes,
            )
            decoded = load_preview(source)
            result = crop_image(decoded, region=args.region, compress=args.compress)
        except ImagePipelineError as exc:
            print_rejected(path.name, f"{exc.code}: {exc.detail or exc.user_message}")
            failures += 1
            continue
        except OSError as exc:
            print_rejected(path.name, str(exc))
            failures += 1
            continue

        output = result["output"]
        (args.out_dir / output.file_name).write_bytes(output.payload)
        if result["compressed"] is not None:
            compressed_dir = args.out_dir / "compressed"
            compressed_dir.mkdir(exist_ok=True)
            (compressed_dir / result["compressed"].file_name).write_bytes(result["compressed"].payload)
        total_sec = time.perf_counter() - t_start

        print_crop_report(
            path_name=path.name,
            natural_size=decoded.natural_size,
            result=result,
            total_sec=total_sec,
        )
        row: dict[str, str | float | int] = {
            "image": path.name,
            "natural_size": f"{decoded.image.width}x{decoded.image.height}",
            "output_size": f"{result['raster'].width}x{result['raster'].height}",
            "output_bytes": output.size,
            "total_sec": total_sec,
        }
        for key, value in result["timing"].items():
            row[f"timing_{key}"] = float(value)
        rows.append(row)

    if args.report_csv is not None:
        _write_report_csv(rows, args.report_csv)
        print(f"[report_csv] {args.report_csv} rows={len(rows)}")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
