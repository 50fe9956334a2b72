"""Droplet hydraulic erosion over a resident height field."""

from __future__ import annotations

import math
from typing import Any, Callable, Mapping

import numpy as np
import structlog

from erosion.bilinear import bilinear_add, sample_gradient, sample_height
from erosion.config import ErosionParams, ParameterError, erosion_scale, resolution_factor, substep_count
from erosion.derive import slope_map_deg
from erosion.droplet import Droplet, spawn_droplet, spawn_pool
from erosion.metrics import StepMetrics
from erosion.noise import NoiseField, micro_detail_field
from erosion.rng import engine_rng

logger = structlog.get_logger(__name__)

GRAVITY = 9.81
MIN_SPEED = 0.01
FLOW_SATURATION = 200.0
MICRO_RESIDUE_FRACTION = 0.1

StepCallback = Callable[[np.ndarray], None]


def as_height_grid(height_field: Any, width: int, height: int) -> np.ndarray:
    """Copy a flat row-major or 2D field into a fresh (height, width) float32 grid."""

    if width <= 0 or height <= 0:
        raise ValueError(f"width and height must be positive, got {width}x{height}")

    values = np.asarray(height_field, dtype=np.float32)
    if values.size != width * height:
        raise ValueError(f"height field has {values.size} cells, expected {width}x{height}={width * height}")
    if values.ndim == 2 and values.shape != (height, width):
        raise ValueError(f"height field shape {values.shape} does not match ({height}, {width})")
    if not np.isfinite(values).all():
        raise ValueError("height field contains non-finite values")

    grid = values.reshape(height, width).copy()
    np.maximum(grid, 0.0, out=grid)
    return grid


class ErosionEngine:
    """Owns the height field, the auxiliary maps and the droplet pool.

    The engine is synchronous and single-threaded; whoever holds it is the only
    thing allowed to touch its arrays.
    """

    def __init__(
        self,
        width: int,
        height: int,
        height_field: Any,
        params: ErosionParams | Mapping[str, Any] | None = None,
        *,
        droplet_count: int = 0,
        rng: np.random.Generator | None = None,
        seed: int = 0,
    ) -> None:
        self.width = int(width)
        self.height = int(height)
        self.heights = as_height_grid(height_field, self.width, self.height)

        if params is None or isinstance(params, Mapping):
            params = ErosionParams.for_grid(self.width, self.height, params)
        elif not isinstance(params, ErosionParams):
            raise ParameterError(f"params must be ErosionParams or a mapping, got {type(params).__name__}")
        self.params = params

        self.resolution_factor = resolution_factor(self.width, self.height)
        self.erosion_scale = erosion_scale(self.resolution_factor)
        self.substeps = substep_count(self.resolution_factor)
        self._capacity_scale = math.pow(self.erosion_scale, 1.5)
        self._evaporation_keep = 1.0 - params.evaporation_rate * math.pow(self.erosion_scale, -0.5)

        self._rng = engine_rng(rng if rng is not None else seed)
        self._noise = NoiseField()
        self.active = False
        self.last_metrics: StepMetrics | None = None

        self.flow_map: np.ndarray | None = None
        self.slope_map: np.ndarray | None = None
        self.talus_map: np.ndarray | None = None
        self.micro_detail_map: np.ndarray | None = None
        self.micro_detail_noise: np.ndarray | None = None
        self._init_maps()

        self.droplets: list[Droplet] = []
        if droplet_count:
            self.reset_droplets(droplet_count)

    def _init_maps(self) -> None:
        p = self.params
        shape = (self.height, self.width)
        self.flow_map = np.zeros(shape, dtype=np.float32) if p.use_flow_accumulation else None
        if p.use_micro_details:
            self.micro_detail_map = np.zeros(shape, dtype=np.float32)
            self.micro_detail_noise = micro_detail_field(
                self.width,
                self.height,
                scale=p.micro_detail_scale,
                strength=p.micro_detail_strength,
                noise=self._noise,
            )
        else:
            self.micro_detail_map = None
            self.micro_detail_noise = None
        if p.use_talus_formation:
            self.talus_map = np.zeros(shape, dtype=np.float32)
            self.slope_map = slope_map_deg(self.heights)
        else:
            self.talus_map = None
            self.slope_map = None

    @property
    def droplet_count(self) -> int:
        return len(self.droplets)

    @property
    def alive_count(self) -> int:
        return sum(1 for d in self.droplets if d.alive)

    @property
    def any_alive(self) -> bool:
        return any(d.alive for d in self.droplets)

    def create_droplet(self, x: float | None = None, y: float | None = None) -> Droplet:
        return spawn_droplet(self._rng, self.width, self.height, self.params, x=x, y=y)

    def reset_droplets(self, count: int) -> None:
        self.droplets = spawn_pool(self._rng, count, self.width, self.height, self.params)
        self.active = True

    def sample_height(self, x: float, y: float) -> float:
        return sample_height(self.heights, x, y)

    def sample_gradient(self, x: float, y: float) -> tuple[float, float]:
        return sample_gradient(self.heights, x, y)

    def height_map(self) -> np.ndarray:
        return self.heights.copy()

    def clone_height_map(self) -> np.ndarray:
        """Height field with the micro-detail residue and overlay composited on top."""

        result = self.heights.copy()
        if self.micro_detail_map is not None:
            result += self.micro_detail_map * MICRO_RESIDUE_FRACTION
        if self.micro_detail_noise is not None:
            result += self.micro_detail_noise
        return result

    def reset(self, height_field: Any) -> None:
        """Restart against a new field, keeping the droplet pool size."""

        self.heights = as_height_grid(height_field, self.width, self.height)
        self.droplets = spawn_pool(self._rng, len(self.droplets), self.width, self.height, self.params)
        self._init_maps()
        self.last_metrics = None
        logger.debug("Engine reset", width=self.width, height=self.height, droplets=len(self.droplets))

    def pause(self) -> None:
        self.active = False

    def resume(self) -> None:
        self.active = True

    def step_droplets(self, batch_size: int, on_step: StepCallback | None = None) -> bool:
        """Advance up to `batch_size` alive droplets in pool order.

        Returns whether any droplet in the pool is still alive. `on_step` receives
        a detached copy of the height field once the batch is done.
        """

        if batch_size < 0:
            raise ValueError("batch_size must be non-negative")

        processed = 0
        total_erosion = 0.0
        total_deposition = 0.0
        for droplet in self.droplets:
            if processed >= batch_size:
                break
            if not droplet.alive:
                continue
            processed += 1
            for _ in range(self.substeps):
                eroded, deposited = self._advance(droplet)
                total_erosion += eroded
                total_deposition += deposited
                if not droplet.alive:
                    break

        slope_refreshed = False
        if self.params.use_talus_formation and self._rng.random() < self.params.slope_refresh_probability:
            self.slope_map = slope_map_deg(self.heights)
            slope_refreshed = True

        alive_count = self.alive_count
        self.last_metrics = StepMetrics(
            processed=processed,
            alive_count=alive_count,
            total_erosion=total_erosion,
            total_deposition=total_deposition,
            slope_refreshed=slope_refreshed,
        )
        if total_erosion > 0.0 or total_deposition > 0.0:
            logger.debug(
                "Droplet batch applied",
                processed=processed,
                alive=alive_count,
                erosion=round(total_erosion, 6),
                deposition=round(total_deposition, 6),
            )

        if on_step is not None:
            on_step(self.height_map())
        return alive_count > 0

    def _viscosity(self, water: float) -> float:
        p = self.params
        if not p.use_temperature:
            return 1.0
        return (1.0 / (1.0 + p.temperature * p.viscosity_factor)) * (1.0 - water * 0.1)

    def _carry_capacity(self, droplet: Droplet, delta_h: float) -> float:
        p = self.params
        base = droplet.speed * droplet.water * p.sediment_capacity_factor * self._capacity_scale
        if p.use_multi_scale:
            capacity = 0.0
            for scale, weight in zip(p.scales, p.scale_weights):
                capacity += max(-delta_h * scale, 0.001) * base * weight
        else:
            capacity = max(-delta_h, 0.001) * base

        if p.use_sediment_sizes and droplet.grains is not None:
            capacity = sum(
                capacity * grain.capacity * weight
                for grain, weight in zip(p.sediment_sizes, droplet.grains.weights())
            )
        return capacity

    def _advance(self, d: Droplet) -> tuple[float, float]:
        """Run one sub-step for a live droplet; returns (eroded, deposited)."""

        p = self.params
        heights = self.heights
        scale = self.erosion_scale

        cell_x = int(d.x)
        cell_y = int(d.y)
        off_x = d.x - cell_x
        off_y = d.y - cell_y

        old_h = sample_height(heights, d.x, d.y)
        grad_x, grad_y = sample_gradient(heights, d.x, d.y)
        viscosity = self._viscosity(d.water)

        d.dx = d.dx * p.inertia * viscosity - grad_x * (1.0 - p.inertia) * scale
        d.dy = d.dy * p.inertia * viscosity - grad_y * (1.0 - p.inertia) * scale
        length = math.hypot(d.dx, d.dy)
        if length == 0.0:
            # Nothing downhill and no momentum left: the droplet pools in place.
            d.speed = 0.0
            d.alive = False
            return 0.0, 0.0
        d.dx /= length
        d.dy /= length

        d.x += d.dx * scale
        d.y += d.dy * scale
        if d.x < 1.0 or d.x > self.width - 2 or d.y < 1.0 or d.y > self.height - 2:
            d.alive = False
            return 0.0, 0.0

        new_h = sample_height(heights, d.x, d.y)
        delta_h = new_h - old_h
        d.speed = math.sqrt(max(0.0, d.speed * d.speed - delta_h * GRAVITY * scale)) * (1.0 - p.friction)

        capacity = self._carry_capacity(d, delta_h)
        row = int(d.y)
        col = int(d.x)
        if self.flow_map is not None:
            self.flow_map[row, col] += d.water * d.speed * p.flow_accumulation_factor * scale
            capacity *= 1.0 + (float(self.flow_map[row, col]) / FLOW_SATURATION) * scale

        eroded = 0.0
        deposited = 0.0
        if d.sediment > capacity:
            deposit = (d.sediment - capacity) * p.deposition_rate * self._capacity_scale
            bilinear_add(heights, cell_x, cell_y, off_x, off_y, deposit)
            self._update_talus_formation(d.x, d.y, 0.0, deposit)
            self._add_micro_residue(cell_x, cell_y, off_x, off_y, row, col, deposit)
            d.sediment -= deposit
            deposited = deposit
        else:
            erode = min((capacity - d.sediment) * p.deposition_rate * self._capacity_scale, new_h)
            if erode > 0.0:
                bilinear_add(heights, cell_x, cell_y, off_x, off_y, -erode)
                self._update_talus_formation(d.x, d.y, erode, 0.0)
                self._add_micro_residue(cell_x, cell_y, off_x, off_y, row, col, -erode)
                d.sediment += erode
                eroded = erode

        d.water *= self._evaporation_keep
        d.lifetime += 1
        if d.water < p.min_volume or d.lifetime > p.max_droplet_lifetime or d.speed < MIN_SPEED:
            d.alive = False
        return eroded, deposited

    def _add_micro_residue(
        self,
        cell_x: int,
        cell_y: int,
        off_x: float,
        off_y: float,
        row: int,
        col: int,
        amount: float,
    ) -> None:
        if self.micro_detail_map is None or self.micro_detail_noise is None:
            return
        residue = amount * MICRO_RESIDUE_FRACTION * self.erosion_scale
        residue *= 1.0 + float(self.micro_detail_noise[row, col])
        bilinear_add(self.micro_detail_map, cell_x, cell_y, off_x, off_y, residue, clamp=False)

    def _update_talus_formation(self, x: float, y: float, erosion: float, deposition: float) -> None:
        """Build up loose material on mid-steep cells and bake it into the height."""

        if self.talus_map is None or self.slope_map is None:
            return

        p = self.params
        row = int(y)
        col = int(x)
        slope = float(self.slope_map[row, col])
        if not p.talus_min_slope <= slope <= p.talus_max_slope:
            return

        factor = (slope - p.talus_min_slope) / (p.talus_max_slope - p.talus_min_slope)
        change = (erosion * p.talus_erosion_rate - deposition * p.talus_deposition_rate) * factor * p.talus_formation_rate
        talus = min(max(float(self.talus_map[row, col]) + change, 0.0), p.talus_max_height)
        self.talus_map[row, col] = talus
        self.heights[row, col] += talus * p.talus_stability_factor
