from __future__ import annotations

import numpy as np

from erosion.noise import NoiseField, micro_detail_field


def test_noise_vanishes_on_lattice_points() -> None:
    noise = NoiseField()

    for x, y in ((0, 0), (3, 7), (255, 1), (300, 12)):
        assert noise.sample(float(x), float(y)) == 0.0


def test_noise_is_a_pure_function_of_position() -> None:
    rng = np.random.default_rng(7)
    xs = rng.uniform(-50.0, 50.0, size=500)
    ys = rng.uniform(-50.0, 50.0, size=500)

    a = NoiseField().sample(xs, ys)
    b = NoiseField().sample(xs, ys)

    assert isinstance(a, np.ndarray)
    assert a.shape == xs.shape
    assert np.array_equal(a, b)
    assert NoiseField().sample(float(xs[3]), float(ys[3])) == a[3]


def test_noise_stays_near_unit_range() -> None:
    rng = np.random.default_rng(11)
    xs = rng.uniform(0.0, 256.0, size=20_000)
    ys = rng.uniform(0.0, 256.0, size=20_000)

    values = NoiseField().sample(xs, ys)

    assert np.isfinite(values).all()
    assert float(np.max(np.abs(values))) <= 1.5
    assert float(np.std(values)) > 0.05


def test_micro_detail_field_shape_and_strength() -> None:
    base = micro_detail_field(40, 30, scale=0.37, strength=1.0)
    doubled = micro_detail_field(40, 30, scale=0.37, strength=2.0)
    silent = micro_detail_field(40, 30, scale=0.37, strength=0.0)

    assert base.shape == (30, 40)
    assert base.dtype == np.float32
    assert base[0, 0] == 0.0
    assert np.allclose(doubled, base * 2.0, atol=1e-6)
    assert not np.any(silent)
    assert float(np.max(np.abs(base))) <= 1.875 * 1.5
