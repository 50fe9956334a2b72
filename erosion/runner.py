"""Caller-side loop that batches steps until the droplets settle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

import numpy as np
import structlog

from erosion.buffer import HeightBuffer
from erosion.config import DEFAULT_BATCH_SIZE, DEFAULT_DROPLET_COUNT, ErosionParams
from erosion.coordinator import ProgressiveStepCoordinator
from erosion.derive import height_range, normalize_heights

logger = structlog.get_logger(__name__)

SETTLED = "settled"
PAUSED = "paused"
STEP_LIMIT = "step_limit"


@dataclass(frozen=True)
class ProgressFrame:
    """One batch worth of display data."""

    step: int
    alive: bool
    alive_count: int
    progress: float
    height_field: np.ndarray
    preview: np.ndarray
    min_height: float
    max_height: float


@dataclass(frozen=True)
class RunSummary:
    steps: int
    stop_reason: str
    height_field: np.ndarray | None


async def run_progressive(
    coordinator: ProgressiveStepCoordinator,
    width: int,
    height: int,
    height_field: HeightBuffer,
    *,
    params: ErosionParams | Mapping[str, Any] | None = None,
    droplet_count: int = DEFAULT_DROPLET_COUNT,
    batch_size: int = DEFAULT_BATCH_SIZE,
    seed: int = 0,
    max_steps: int | None = None,
    should_continue: Callable[[], bool] | None = None,
    on_frame: Callable[[ProgressFrame], None] | None = None,
) -> RunSummary:
    """Initialize `coordinator` and keep stepping until no droplet is alive.

    The loop pauses the worker and stops when `should_continue` returns False,
    and stops after `max_steps` batches when given. Invalid step payloads and
    worker failures propagate; nothing is retried.
    """

    await coordinator.init(width, height, height_field, params, droplet_count, seed=seed)
    logger.info("Erosion run started", droplets=droplet_count, batch_size=batch_size)

    steps = 0
    latest: np.ndarray | None = None
    while True:
        if should_continue is not None and not should_continue():
            await coordinator.pause()
            logger.info("Erosion run paused", steps=steps)
            return RunSummary(steps, PAUSED, latest)
        if max_steps is not None and steps >= max_steps:
            return RunSummary(steps, STEP_LIMIT, latest)

        result = await coordinator.step(batch_size)
        steps += 1
        latest = result.height_field.transfer()

        if on_frame is not None:
            lo, hi = height_range(latest)
            settled = droplet_count - result.alive_count
            on_frame(
                ProgressFrame(
                    step=steps,
                    alive=result.alive,
                    alive_count=result.alive_count,
                    progress=settled / droplet_count if droplet_count else 1.0,
                    height_field=latest,
                    preview=normalize_heights(latest, lo, hi),
                    min_height=lo,
                    max_height=hi,
                )
            )

        if not result.alive:
            logger.info("Erosion run completed", steps=steps)
            return RunSummary(steps, SETTLED, latest)
