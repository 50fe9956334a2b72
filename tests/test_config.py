import math

import pytest

from erosion.config import (
    ErosionParams,
    GrainSize,
    ParameterError,
    erosion_scale,
    resolution_factor,
    substep_count,
)


def test_baseline_grid_matches_field_defaults() -> None:
    assert ErosionParams.for_grid(500, 500) == ErosionParams()


def test_defaults_scale_with_resolution() -> None:
    params = ErosionParams.for_grid(1000, 1000)

    assert resolution_factor(1000, 1000) == pytest.approx(2.0)
    assert params.sediment_capacity_factor == pytest.approx(2.0)
    assert params.deposition_rate == pytest.approx(0.16)
    assert params.inertia == pytest.approx(0.01 / math.sqrt(2.0))
    assert params.min_volume == pytest.approx(0.0005)
    assert params.initial_speed == pytest.approx(0.2 * math.sqrt(2.0))
    assert params.max_droplet_lifetime == 169
    assert params.scales[0] == pytest.approx(2.0)
    assert params.sediment_sizes[0].size == pytest.approx(0.04)
    assert params.scale_weights == (0.3, 0.25, 0.2, 0.15, 0.1)


def test_overrides_merge_onto_scaled_defaults() -> None:
    params = ErosionParams.for_grid(4, 4, {"min_volume": 0.001, "max_droplet_lifetime": 5})

    assert params.min_volume == 0.001
    assert params.max_droplet_lifetime == 5
    assert params.deposition_rate == pytest.approx(0.08 * resolution_factor(4, 4))


def test_unknown_override_is_rejected() -> None:
    with pytest.raises(ParameterError, match="bogus"):
        ErosionParams.for_grid(10, 10, {"bogus": 1.0})


@pytest.mark.parametrize(
    "overrides",
    [
        {"deposition_rate": -0.1},
        {"evaporation_rate": float("nan")},
        {"inertia": 1.5},
        {"friction": -0.01},
        {"max_droplet_lifetime": 0},
        {"scales": ()},
        {"scales": (1.0, 0.5), "scale_weights": (1.0,)},
        {"scale_weights": (0.3, 0.25, 0.2, 0.15, -0.1)},
        {"sediment_sizes": (GrainSize(0.1, 1.0, 30.0),)},
        {"talus_min_slope": 50.0},
        {"slope_refresh_probability": 2.0},
    ],
)
def test_invalid_parameters_fail_validation(overrides) -> None:
    with pytest.raises(ParameterError):
        ErosionParams().merged(overrides)


def test_lists_and_mappings_from_payloads_are_normalized() -> None:
    params = ErosionParams(
        scales=[1.0, 0.5],
        scale_weights=[0.6, 0.4],
        sediment_sizes=[
            {"size": 0.02, "capacity": 1.0},
            {"size": 0.05, "capacity": 0.8, "angle_of_repose": 32},
            (0.1, 0.6, 30),
            (0.2, 0.4, 28),
            GrainSize(0.4, 0.2, 25.0),
        ],
    )

    assert params.scales == (1.0, 0.5)
    assert params.scale_weights == (0.6, 0.4)
    assert params.sediment_sizes[0] == GrainSize(0.02, 1.0, 30.0)
    assert params.sediment_sizes[2] == GrainSize(0.1, 0.6, 30.0)
    assert params.to_dict()["scales"] == (1.0, 0.5)


def test_grain_mapping_missing_capacity_is_a_parameter_error() -> None:
    sizes = [{"size": 0.02}] + [GrainSize(0.1, 0.5, 30.0)] * 4
    with pytest.raises(ParameterError, match="capacity"):
        ErosionParams(sediment_sizes=sizes)


def test_resolution_helpers() -> None:
    assert erosion_scale(1.0) == pytest.approx(1.0)
    assert erosion_scale(4.0) == pytest.approx(0.5 * 3.0)
    assert substep_count(0.01) == 1
    assert substep_count(1.9) == 1
    assert substep_count(2.0) == 2
    assert substep_count(8.0) == 2
