"""Droplet hydraulic erosion package."""

from .buffer import BufferTransferredError, HeightBuffer
from .config import DEFAULT_BATCH_SIZE, DEFAULT_DROPLET_COUNT, ErosionParams, GrainSize, ParameterError
from .coordinator import (
    EngineInitError,
    InvalidPayloadError,
    NotInitializedError,
    ProgressiveStepCoordinator,
    ProtocolError,
    StepResult,
    WorkerError,
)
from .engine import ErosionEngine
from .noise import NoiseField

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_DROPLET_COUNT",
    "BufferTransferredError",
    "EngineInitError",
    "ErosionEngine",
    "ErosionParams",
    "GrainSize",
    "HeightBuffer",
    "InvalidPayloadError",
    "NoiseField",
    "NotInitializedError",
    "ParameterError",
    "ProgressiveStepCoordinator",
    "ProtocolError",
    "StepResult",
    "WorkerError",
]
