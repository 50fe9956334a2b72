"""Gradient noise used for the static micro-detail overlay."""

from __future__ import annotations

import numpy as np

_PERMUTATION = np.array(
    [
        151, 160, 137, 91, 90, 15, 131, 13, 201, 95, 96, 53, 194, 233, 7, 225,
        140, 36, 103, 30, 69, 142, 8, 99, 37, 240, 21, 10, 23, 190, 6, 148,
        247, 120, 234, 75, 0, 26, 197, 62, 94, 252, 219, 203, 117, 35, 11, 32,
        57, 177, 33, 88, 237, 149, 56, 87, 174, 20, 125, 136, 171, 168, 68, 175,
        74, 165, 71, 134, 139, 48, 27, 166, 77, 146, 158, 231, 83, 111, 229, 122,
        60, 211, 133, 230, 220, 105, 92, 41, 55, 46, 245, 40, 244, 102, 143, 54,
        65, 25, 63, 161, 1, 216, 80, 73, 209, 76, 132, 187, 208, 89, 18, 169,
        200, 196, 135, 130, 116, 188, 159, 86, 164, 100, 109, 198, 173, 186, 3, 64,
        52, 217, 226, 250, 124, 123, 5, 202, 38, 147, 118, 126, 255, 82, 85, 212,
        207, 206, 59, 227, 47, 16, 58, 17, 182, 189, 28, 42, 223, 183, 170, 213,
        119, 248, 152, 2, 44, 154, 163, 70, 221, 153, 101, 155, 167, 43, 172, 9,
        129, 22, 39, 253, 19, 98, 108, 110, 79, 113, 224, 232, 178, 185, 112, 104,
        218, 246, 97, 228, 251, 34, 242, 193, 238, 210, 144, 12, 191, 179, 162, 241,
        81, 51, 145, 235, 249, 14, 239, 107, 49, 192, 214, 31, 181, 199, 106, 157,
        184, 84, 204, 176, 115, 121, 50, 45, 127, 4, 150, 254, 138, 236, 205, 93,
        222, 114, 67, 29, 24, 72, 243, 141, 128, 195, 78, 66, 215, 61, 156, 180,
    ],
    dtype=np.int64,
)


def _fade(t: np.ndarray) -> np.ndarray:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _lerp(t: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a + t * (b - a)


def _grad(hash_value: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    h = hash_value & 15
    u = np.where(h < 8, x, y)
    v = np.where(h < 4, y, np.where((h == 12) | (h == 14), x, 0.0))
    return np.where(h & 1, -u, u) + np.where(h & 2, -v, v)


class NoiseField:
    """Deterministic 2D gradient noise over a fixed permutation table.

    `sample` is a pure function of its coordinates, returns values in roughly
    [-1, 1] and is exactly zero on integer lattice points.
    """

    def __init__(self) -> None:
        self._perm = np.concatenate([_PERMUTATION, _PERMUTATION])

    def sample(self, x: float | np.ndarray, y: float | np.ndarray) -> float | np.ndarray:
        xs = np.asarray(x, dtype=np.float64)
        ys = np.asarray(y, dtype=np.float64)
        x_floor = np.floor(xs)
        y_floor = np.floor(ys)
        xi = x_floor.astype(np.int64) & 255
        yi = y_floor.astype(np.int64) & 255
        fx = xs - x_floor
        fy = ys - y_floor

        u = _fade(fx)
        v = _fade(fy)
        perm = self._perm
        a = perm[xi] + yi
        b = perm[xi + 1] + yi

        value = _lerp(
            v,
            _lerp(u, _grad(perm[a], fx, fy), _grad(perm[b], fx - 1.0, fy)),
            _lerp(u, _grad(perm[a + 1], fx, fy - 1.0), _grad(perm[b + 1], fx - 1.0, fy - 1.0)),
        )
        if value.ndim == 0:
            return float(value)
        return value


def micro_detail_field(
    width: int,
    height: int,
    *,
    scale: float,
    strength: float,
    octaves: int = 4,
    noise: NoiseField | None = None,
) -> np.ndarray:
    """Sum `octaves` of gradient noise (amplitude halving, frequency doubling) scaled by `strength`."""

    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")

    noise = noise or NoiseField()
    yy, xx = np.indices((height, width), dtype=np.float64)
    nx = xx * scale
    ny = yy * scale

    field = np.zeros((height, width), dtype=np.float64)
    amplitude = 1.0
    frequency = 1.0
    for _ in range(octaves):
        field += noise.sample(nx * frequency, ny * frequency) * amplitude
        amplitude *= 0.5
        frequency *= 2.0
    return (field * strength).astype(np.float32)
