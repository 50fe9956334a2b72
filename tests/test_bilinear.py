from __future__ import annotations

import numpy as np
import pytest

from erosion.bilinear import bilinear_add, sample_gradient, sample_height


def _ramp(width: int, height: int) -> np.ndarray:
    return np.tile(np.arange(width, dtype=np.float32), (height, 1))


@pytest.mark.parametrize("shape", [(1, 1), (2, 3), (7, 5), (16, 16)])
def test_integer_coordinates_return_stored_values(shape) -> None:
    field = np.random.default_rng(3).uniform(0.0, 100.0, size=shape).astype(np.float32)
    height, width = shape

    for y in range(height):
        for x in range(width):
            assert sample_height(field, float(x), float(y)) == float(field[y, x])


def test_sampling_outside_the_grid_is_zero() -> None:
    field = np.full((4, 4), 5.0, dtype=np.float32)

    assert sample_height(field, -0.5, 1.0) == 0.0
    assert sample_height(field, 1.0, 3.2) == 0.0
    assert sample_height(field, 3.0001, 0.0) == 0.0


def test_sampling_interpolates_between_corners() -> None:
    field = np.array([[0.0, 1.0], [2.0, 3.0]], dtype=np.float32)

    assert sample_height(field, 0.5, 0.5) == pytest.approx(1.5)
    assert sample_height(field, 0.25, 0.0) == pytest.approx(0.25)


def test_gradient_follows_a_ramp() -> None:
    field = _ramp(6, 6)

    gx, gy = sample_gradient(field, 2.3, 2.0)

    assert gx == pytest.approx(1.0)
    assert gy == pytest.approx(0.0)


@pytest.mark.parametrize("x, y", [(0.5, 2.0), (2.0, 0.9), (4.0, 2.0), (2.0, 4.5)])
def test_gradient_is_zero_without_a_full_margin(x, y) -> None:
    assert sample_gradient(_ramp(6, 6), x, y) == (0.0, 0.0)


def test_add_spreads_amount_by_proximity() -> None:
    field = np.zeros((3, 3), dtype=np.float32)

    applied = bilinear_add(field, 0, 0, 0.25, 0.5, 1.0)

    assert applied == pytest.approx(1.0, abs=1e-6)
    assert field[0, 0] == pytest.approx(0.375)
    assert field[0, 1] == pytest.approx(0.125)
    assert field[1, 0] == pytest.approx(0.375)
    assert field[1, 1] == pytest.approx(0.125)


def test_add_change_is_bounded_by_amount() -> None:
    rng = np.random.default_rng(5)
    field = rng.uniform(0.0, 0.2, size=(8, 8)).astype(np.float32)

    for _ in range(200):
        cx, cy = (int(v) for v in rng.integers(0, 7, size=2))
        ox, oy = (float(v) for v in rng.random(2))
        amount = float(rng.uniform(-1.0, 1.0))
        before = float(field[cy : cy + 2, cx : cx + 2].sum(dtype=np.float64))
        applied = bilinear_add(field, cx, cy, ox, oy, amount)
        after = float(field[cy : cy + 2, cx : cx + 2].sum(dtype=np.float64))

        assert abs(after - before) <= abs(amount) + 1e-5
        assert applied == pytest.approx(after - before, abs=1e-5)
        assert float(field.min()) >= 0.0


def test_add_without_clamp_keeps_negative_residue() -> None:
    field = np.zeros((2, 2), dtype=np.float32)

    bilinear_add(field, 0, 0, 0.0, 0.0, -0.5, clamp=False)

    assert field[0, 0] == pytest.approx(-0.5)


def test_add_outside_grid_is_ignored() -> None:
    field = np.ones((3, 3), dtype=np.float32)

    assert bilinear_add(field, 2, 0, 0.5, 0.5, 1.0) == 0.0
    assert bilinear_add(field, -1, 0, 0.5, 0.5, 1.0) == 0.0
    assert np.array_equal(field, np.ones((3, 3), dtype=np.float32))
