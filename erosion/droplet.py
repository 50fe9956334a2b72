"""Droplet state and spawning."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from erosion.config import ErosionParams

# (low, span) per grain class, finest first; each weight is low + U[0, span).
_GRAIN_DRAW = (
    (0.4, 0.3),
    (0.2, 0.2),
    (0.1, 0.15),
    (0.05, 0.1),
    (0.02, 0.05),
)


@dataclass(frozen=True)
class GrainMix:
    """Per-droplet grain-size weights, biased toward fine grains.

    The weights are independent draws and are not normalized to sum to 1.
    """

    very_fine: float
    fine: float
    medium: float
    coarse: float
    very_coarse: float

    def weights(self) -> tuple[float, float, float, float, float]:
        return (self.very_fine, self.fine, self.medium, self.coarse, self.very_coarse)


@dataclass
class Droplet:
    x: float
    y: float
    dx: float = 0.0
    dy: float = 0.0
    speed: float = 0.0
    water: float = 0.0
    sediment: float = 0.0
    lifetime: int = 0
    alive: bool = True
    grains: GrainMix | None = None


def has_interior(width: int, height: int) -> bool:
    return width >= 3 and height >= 3


def random_grain_mix(rng: np.random.Generator) -> GrainMix:
    draws = rng.random(len(_GRAIN_DRAW))
    return GrainMix(*(float(low + span * d) for (low, span), d in zip(_GRAIN_DRAW, draws)))


def spawn_droplet(
    rng: np.random.Generator,
    width: int,
    height: int,
    params: ErosionParams,
    *,
    x: float | None = None,
    y: float | None = None,
) -> Droplet:
    """Create a droplet at (x, y) or at a uniformly random interior position.

    Grids without an interior produce droplets that are already dead.
    """

    interior = has_interior(width, height)
    if x is None:
        x = float(rng.uniform(1.0, width - 2.0)) if interior else 0.0
    if y is None:
        y = float(rng.uniform(1.0, height - 2.0)) if interior else 0.0

    grains = random_grain_mix(rng) if params.use_sediment_sizes else None
    return Droplet(
        x=float(x),
        y=float(y),
        speed=params.initial_speed,
        water=params.initial_volume,
        alive=interior,
        grains=grains,
    )


def spawn_pool(rng: np.random.Generator, count: int, width: int, height: int, params: ErosionParams) -> list[Droplet]:
    if count < 0:
        raise ValueError("droplet count must be non-negative")
    return [spawn_droplet(rng, width, height, params) for _ in range(count)]
