"""Per-step erosion summaries."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StepMetrics:
    """What one `step_droplets` call did to the terrain."""

    processed: int
    alive_count: int
    total_erosion: float
    total_deposition: float
    slope_refreshed: bool

    @property
    def net_change(self) -> float:
        return self.total_deposition - self.total_erosion
