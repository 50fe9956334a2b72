"""Configuration models for droplet erosion."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
import math
from typing import Any, Mapping

BASELINE_CELLS = 500 * 500
GRAIN_CLASSES = ("very_fine", "fine", "medium", "coarse", "very_coarse")
DEFAULT_DROPLET_COUNT = 100_000
DEFAULT_BATCH_SIZE = 1_000


class ParameterError(ValueError):
    """Raised when erosion parameters are malformed or out of range."""


def resolution_factor(width: int, height: int) -> float:
    """Grid-size factor relative to a 500x500 baseline."""

    return math.sqrt((width * height) / BASELINE_CELLS)


def erosion_scale(res_factor: float) -> float:
    """Per-step strength multiplier that keeps large grids eroding visibly."""

    return math.pow(1.0 / res_factor, 0.5) * min(res_factor, 3.0)


def substep_count(res_factor: float) -> int:
    return max(1, int(math.floor(min(res_factor, 2.0))))


@dataclass(frozen=True)
class GrainSize:
    """One sediment grain class: nominal size, relative capacity and repose angle.

    Only `capacity` feeds the carry-capacity blend; `size` and `angle_of_repose`
    are carried for callers and not read by the engine.
    """

    size: float
    capacity: float
    angle_of_repose: float


def default_grain_sizes(res_factor: float = 1.0) -> tuple[GrainSize, ...]:
    return (
        GrainSize(0.02 * res_factor, 1.0, 35.0),
        GrainSize(0.05 * res_factor, 0.8, 32.0),
        GrainSize(0.1 * res_factor, 0.6, 30.0),
        GrainSize(0.2 * res_factor, 0.4, 28.0),
        GrainSize(0.4 * res_factor, 0.2, 25.0),
    )


@dataclass(frozen=True)
class ErosionParams:
    """Physical constants for one erosion run.

    The field defaults describe the 500x500 baseline grid. Use `for_grid` to get
    defaults scaled for a particular grid size.

    `talus_angle_threshold` and `talus_particle_size` are informational: they are
    validated and scaled but the talus update reads only the slope window and
    rates.
    """

    inertia: float = 0.01
    friction: float = 0.005
    sediment_capacity_factor: float = 1.0
    deposition_rate: float = 0.08
    evaporation_rate: float = 0.002
    min_volume: float = 0.001
    initial_volume: float = 0.2
    initial_speed: float = 0.2
    max_droplet_lifetime: int = 120

    use_multi_scale: bool = True
    scales: tuple[float, ...] = (1.0, 0.5, 0.25, 0.125, 0.0625)
    scale_weights: tuple[float, ...] = (0.3, 0.25, 0.2, 0.15, 0.1)

    use_sediment_sizes: bool = True
    sediment_sizes: tuple[GrainSize, ...] = field(default_factory=default_grain_sizes)

    use_flow_accumulation: bool = True
    flow_accumulation_factor: float = 0.05

    use_temperature: bool = True
    temperature: float = 20.0
    viscosity_factor: float = 0.01

    use_micro_details: bool = True
    micro_detail_scale: float = 0.01
    micro_detail_strength: float = 0.1

    use_talus_formation: bool = True
    talus_angle_threshold: float = 30.0
    talus_formation_rate: float = 0.15
    talus_particle_size: float = 0.1
    talus_stability_factor: float = 0.8
    talus_erosion_rate: float = 0.05
    talus_deposition_rate: float = 0.1
    talus_max_height: float = 0.5
    talus_min_slope: float = 25.0
    talus_max_slope: float = 45.0

    slope_refresh_probability: float = 0.1

    def __post_init__(self) -> None:
        # Accept lists from message payloads but store immutable tuples.
        object.__setattr__(self, "scales", tuple(float(s) for s in self.scales))
        object.__setattr__(self, "scale_weights", tuple(float(w) for w in self.scale_weights))
        object.__setattr__(self, "sediment_sizes", tuple(_as_grain(g) for g in self.sediment_sizes))
        self._validate()

    def _validate(self) -> None:
        for name in (
            "sediment_capacity_factor",
            "deposition_rate",
            "evaporation_rate",
            "min_volume",
            "initial_volume",
            "initial_speed",
            "flow_accumulation_factor",
            "viscosity_factor",
            "micro_detail_scale",
            "micro_detail_strength",
            "talus_formation_rate",
            "talus_particle_size",
            "talus_stability_factor",
            "talus_erosion_rate",
            "talus_deposition_rate",
            "talus_max_height",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0.0:
                raise ParameterError(f"{name} must be a finite non-negative number, got {value!r}")

        for name in ("inertia", "friction", "slope_refresh_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ParameterError(f"{name} must be in [0, 1], got {value!r}")

        if self.max_droplet_lifetime < 1:
            raise ParameterError("max_droplet_lifetime must be >= 1")
        if not self.scales:
            raise ParameterError("scales must not be empty")
        if len(self.scales) != len(self.scale_weights):
            raise ParameterError(
                f"scales and scale_weights differ in length ({len(self.scales)} != {len(self.scale_weights)})"
            )
        if any(w < 0.0 for w in self.scale_weights):
            raise ParameterError("scale_weights must be non-negative")
        if len(self.sediment_sizes) != len(GRAIN_CLASSES):
            raise ParameterError(f"sediment_sizes must have {len(GRAIN_CLASSES)} grain classes")
        if any(g.capacity < 0.0 or g.size < 0.0 for g in self.sediment_sizes):
            raise ParameterError("grain sizes and capacities must be non-negative")
        if self.talus_min_slope >= self.talus_max_slope:
            raise ParameterError("talus_min_slope must be below talus_max_slope")

    @classmethod
    def for_grid(cls, width: int, height: int, overrides: Mapping[str, Any] | None = None) -> "ErosionParams":
        """Build resolution-scaled defaults for a grid and merge named overrides."""

        if width <= 0 or height <= 0:
            raise ValueError("width and height must be positive")

        rf = resolution_factor(width, height)
        inv_sqrt = math.pow(rf, -0.5)
        base = cls(
            inertia=min(0.01 * inv_sqrt, 1.0),
            friction=min(0.005 * inv_sqrt, 1.0),
            sediment_capacity_factor=1.0 * rf,
            deposition_rate=0.08 * rf,
            evaporation_rate=0.002 * inv_sqrt,
            min_volume=0.001 / rf,
            initial_volume=0.2 * rf,
            initial_speed=0.2 * math.sqrt(rf),
            max_droplet_lifetime=max(1, int(math.floor(120 * math.sqrt(rf)))),
            scales=tuple(s * rf for s in (1.0, 0.5, 0.25, 0.125, 0.0625)),
            sediment_sizes=default_grain_sizes(rf),
            flow_accumulation_factor=0.05 * rf,
            viscosity_factor=0.01 * inv_sqrt,
            micro_detail_scale=0.01 * rf,
            micro_detail_strength=0.1 * rf,
            talus_formation_rate=0.15 * rf,
            talus_particle_size=0.1 * rf,
            talus_erosion_rate=0.05 * rf,
            talus_deposition_rate=0.1 * rf,
            talus_max_height=0.5 * rf,
        )
        if not overrides:
            return base
        return base.merged(overrides)

    def merged(self, overrides: Mapping[str, Any]) -> "ErosionParams":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ParameterError(f"Unknown erosion parameters: {', '.join(unknown)}")
        return replace(self, **dict(overrides))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_grain(value: GrainSize | Mapping[str, float] | tuple[float, float, float]) -> GrainSize:
    if isinstance(value, GrainSize):
        return value
    if isinstance(value, Mapping):
        try:
            return GrainSize(
                size=float(value["size"]),
                capacity=float(value["capacity"]),
                angle_of_repose=float(value.get("angle_of_repose", 30.0)),
            )
        except KeyError as exc:
            raise ParameterError(f"grain size entry is missing {exc.args[0]!r}") from exc
    size, capacity, angle = value
    return GrainSize(float(size), float(capacity), float(angle))
