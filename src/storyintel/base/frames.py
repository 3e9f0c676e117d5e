"""Pixel-difference primitives shared by the analysis stages.

All functions operate on RGB uint8 buffers of shape (H, W, 3) at analysis
resolution. Differences are computed on integer samples so results are
exact and independent of summation order.
"""

from __future__ import annotations

import io
from typing import Sequence

import numpy as np
from PIL import Image

from storyintel.base.description import SampledFrame

__all__ = [
    "GRID_COLS",
    "GRID_ROWS",
    "GRID_CELLS",
    "compute_frame_difference",
    "compute_all_differences",
    "compute_region_motion",
    "encode_thumbnail",
]

GRID_COLS = 3
GRID_ROWS = 3
GRID_CELLS = GRID_COLS * GRID_ROWS

FRAME_SAMPLE_STRIDE = 4
REGION_SAMPLE_STRIDE = 2
REGION_MOTION_CEILING = 60.0
THUMBNAIL_QUALITY = 70


def _mean_abs_difference(a: np.ndarray, b: np.ndarray) -> float:
    if a.size == 0:
        return 0.0
    diff = np.abs(a.astype(np.int16) - b.astype(np.int16))
    return float(diff.sum(dtype=np.int64)) / diff.size


def compute_frame_difference(a: np.ndarray, b: np.ndarray, stride: int = FRAME_SAMPLE_STRIDE) -> float:
    """Mean absolute difference between two frames on a coarse pixel grid.

    Every `stride`-th pixel along each axis is compared across the RGB
    channels. The sum of absolute differences is divided by the number of
    sampled channel values, so the result stays on the 0-255 scale whatever
    the stride.

    Args:
        a: Previous frame (H, W, 3+) RGB
        b: Current frame, same shape as `a`
        stride: Pixel stride along each axis

    Returns:
        Per-sample average difference in [0, 255]
    """
    if a.shape != b.shape:
        raise ValueError(f"Frame shapes do not match: {a.shape} vs {b.shape}")
    return _mean_abs_difference(a[::stride, ::stride, :3], b[::stride, ::stride, :3])


def compute_all_differences(frames: Sequence[SampledFrame]) -> list[float]:
    """Difference of every frame against its predecessor; the first entry is 0."""
    diffs = [0.0] if frames else []
    for i in range(1, len(frames)):
        diffs.append(compute_frame_difference(frames[i - 1].pixels, frames[i].pixels))
    return diffs


def compute_region_motion(prev: np.ndarray, curr: np.ndarray) -> list[int]:
    """Motion score (0-100) for each cell of a 3x3 grid, in row-major order.

    Cells are `width // 3` by `height // 3` pixels anchored at the top-left;
    leftover pixels on the right and bottom edges are ignored.
    """
    height, width = prev.shape[:2]
    cell_w = width // GRID_COLS
    cell_h = height // GRID_ROWS
    scores: list[int] = []

    for gy in range(GRID_ROWS):
        for gx in range(GRID_COLS):
            rows = slice(gy * cell_h, (gy + 1) * cell_h, REGION_SAMPLE_STRIDE)
            cols = slice(gx * cell_w, (gx + 1) * cell_w, REGION_SAMPLE_STRIDE)
            avg_diff = _mean_abs_difference(prev[rows, cols, :3], curr[rows, cols, :3])
            scores.append(min(100, round(avg_diff / REGION_MOTION_CEILING * 100)))

    return scores


def encode_thumbnail(pixels: np.ndarray, quality: int = THUMBNAIL_QUALITY) -> bytes:
    """Compress an RGB buffer into JPEG bytes for display."""
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(pixels[:, :, :3])).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
