"""Derived rasters from height fields."""

from __future__ import annotations

import numpy as np


def slope_map_deg(height_field: np.ndarray) -> np.ndarray:
    """Slope angle in degrees from central differences; boundary cells stay 0."""

    if height_field.ndim != 2:
        raise ValueError("height_field must be a 2D array")

    slope = np.zeros(height_field.shape, dtype=np.float32)
    rows, cols = height_field.shape
    if rows < 3 or cols < 3:
        return slope

    h = height_field.astype(np.float64)
    dx = (h[1:-1, 2:] - h[1:-1, :-2]) * 0.5
    dy = (h[2:, 1:-1] - h[:-2, 1:-1]) * 0.5
    slope[1:-1, 1:-1] = np.degrees(np.arctan(np.hypot(dx, dy)))
    return slope


def height_range(height_field: np.ndarray) -> tuple[float, float]:
    return float(np.min(height_field)), float(np.max(height_field))


def normalize_heights(
    height_field: np.ndarray,
    lo: float | None = None,
    hi: float | None = None,
) -> np.ndarray:
    """Map heights into [0, 1] using `lo`/`hi` (defaults to the field's own range).

    A zero range is replaced by 1 so flat fields map to 0 instead of NaN.
    """

    if lo is None or hi is None:
        field_lo, field_hi = height_range(height_field)
        lo = field_lo if lo is None else lo
        hi = field_hi if hi is None else hi

    span = (hi - lo) or 1.0
    norm = (height_field.astype(np.float64) - lo) / span
    return np.clip(norm, 0.0, 1.0).astype(np.float32)


def height_preview_u8(height_field: np.ndarray, lo: float | None = None, hi: float | None = None) -> np.ndarray:
    """Map float heights to 8-bit grayscale the way the display layer quantizes them."""

    return np.floor(normalize_heights(height_field, lo, hi) * 255.0).astype(np.uint8)
