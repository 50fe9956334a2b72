from __future__ import annotations

import numpy as np
import pytest

from erosion.rng import RngStream, engine_rng, stream_seed


def test_stream_seeds_are_stable_and_label_dependent() -> None:
    assert stream_seed(42, "engine") == stream_seed(42, "engine")
    assert stream_seed(42, "engine") != stream_seed(42, "spawn")
    assert stream_seed(42, "engine") != stream_seed(43, "engine")
    assert stream_seed(42, "a", "b") != stream_seed(42, "b", "a")
    assert stream_seed(42) == 42


def test_empty_label_is_rejected() -> None:
    with pytest.raises(ValueError):
        RngStream(7).fork("").generator()


def test_equal_streams_give_equal_generators() -> None:
    a = RngStream(7).fork("engine").generator()
    b = engine_rng(7)

    assert np.array_equal(a.random(16), b.random(16))


def test_engine_rng_passes_generators_through() -> None:
    generator = np.random.default_rng(1)

    assert engine_rng(generator) is generator
