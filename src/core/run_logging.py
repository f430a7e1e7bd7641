#!/usr/bin/env python3
"""Formatting/printing helpers for image pipeline logs."""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Optional


def _fmt_seconds(value: float) -> str:
    return f"{value:.3f}s"


def _format_top_items(items: Iterable[tuple[str, float]], limit: int = 4) -> str:
    top = sorted(items, key=lambda item: item[1], reverse=True)[:limit]
    if not top:
        return "none"
    return ", ".join(f"{name}={_fmt_seconds(sec)}" for name, sec in top)


def elapsed_logger(sink: Callable[[str], None]) -> Callable[[str], None]:
    """Wrap `sink` so every message is prefixed with `[+N.NNNs]` since creation."""
    t0 = time.perf_counter()

    def progress(message: str) -> None:
        sink(f"[+{(time.perf_counter() - t0):.3f}s] {message}")

    return progress


def log(progress_cb: Optional[Callable[[str], None]], message: str) -> None:
    if progress_cb:
        progress_cb(message)


def timing_report(timing: dict[str, float], *, total_sec: float) -> str:
    stages = " ".join(f"{name}={_fmt_seconds(float(sec))}" for name, sec in timing.items())
    other_sec = max(0.0, total_sec - sum(float(v) for v in timing.values()))
    return (
        f"timing total={_fmt_seconds(total_sec)} other={_fmt_seconds(other_sec)}\n"
        f"  stage {stages or 'none'}\n"
        f"  slowest ({_format_top_items(timing.items())})"
    )


def print_rejected(path_name: str, message: str) -> None:
    print(f"[reject] {path_name} {message}")


def print_crop_report(
    *,
    path_name: str,
    natural_size: tuple[int, int],
    result: dict[str, Any],
    total_sec: float,
) -> None:
    output = result["output"]
    raster = result["raster"]
    quality = result.get("quality_info")
    quality_line = f"quality={quality.level}" if quality else "quality=ok"
    compressed = result.get("compressed")
    compressed_line = f" compressed={compressed.size}B" if compressed is not None else ""
    print(
        f"[{path_name}] {natural_size[0]}x{natural_size[1]} -> {raster.width}x{raster.height} "
        f"box={raster.source_box} {quality_line}\n"
        f"  output {output.file_name} {output.size}B{compressed_line}\n"
        f"  {timing_report(result['timing'], total_sec=total_sec)}"
    )
