"""Scalar bilinear reads and writes at continuous droplet positions."""

from __future__ import annotations

import math

import numpy as np


def sample_height(field: np.ndarray, x: float, y: float) -> float:
    """Bilinearly interpolate `field` at (x, y); zero outside the grid.

    Integer coordinates return the stored cell value exactly, and a constant
    neighbourhood interpolates to that constant with no rounding drift.
    """

    height, width = field.shape
    if not (0.0 <= x <= width - 1 and 0.0 <= y <= height - 1):
        return 0.0

    cell_x = int(x)
    cell_y = int(y)
    off_x = x - cell_x
    off_y = y - cell_y
    next_x = min(cell_x + 1, width - 1)
    next_y = min(cell_y + 1, height - 1)

    h00 = float(field[cell_y, cell_x])
    h10 = float(field[cell_y, next_x])
    h01 = float(field[next_y, cell_x])
    h11 = float(field[next_y, next_x])
    top = h00 + (h10 - h00) * off_x
    bottom = h01 + (h11 - h01) * off_x
    return top + (bottom - top) * off_y


def sample_gradient(field: np.ndarray, x: float, y: float) -> tuple[float, float]:
    """Central-difference gradient of the interpolated surface.

    Zero unless the enclosing cell leaves a full one-cell margin on every side.
    """

    height, width = field.shape
    cell_x = math.floor(x)
    cell_y = math.floor(y)
    if cell_x < 1 or cell_y < 1 or cell_x >= width - 2 or cell_y >= height - 2:
        return 0.0, 0.0

    h_left = sample_height(field, x - 1.0, y)
    h_right = sample_height(field, x + 1.0, y)
    h_down = sample_height(field, x, y - 1.0)
    h_up = sample_height(field, x, y + 1.0)
    return (h_right - h_left) * 0.5, (h_up - h_down) * 0.5


def bilinear_add(
    field: np.ndarray,
    cell_x: int,
    cell_y: int,
    off_x: float,
    off_y: float,
    amount: float,
    *,
    clamp: bool = True,
) -> float:
    """Spread `amount` over the four cells around (cell_x + off_x, cell_y + off_y).

    With `clamp` every touched cell is floored at zero afterwards. Returns the net
    change applied to the field, which never exceeds `abs(amount)` in magnitude.
    """

    height, width = field.shape
    if not (0 <= cell_x < width - 1 and 0 <= cell_y < height - 1):
        return 0.0

    weights = (
        (cell_y, cell_x, (1.0 - off_x) * (1.0 - off_y)),
        (cell_y, cell_x + 1, off_x * (1.0 - off_y)),
        (cell_y + 1, cell_x, (1.0 - off_x) * off_y),
        (cell_y + 1, cell_x + 1, off_x * off_y),
    )
    applied = 0.0
    for row, col, weight in weights:
        before = float(field[row, col])
        after = before + amount * weight
        if clamp and after < 0.0:
            after = 0.0
        field[row, col] = after
        applied += float(field[row, col]) - before
    return applied
