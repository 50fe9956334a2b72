"""Seeded random sources for erosion runs."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np

SEED_MASK = (1 << 64) - 1
ENGINE_STREAM = "engine"


def stream_seed(seed: int, *labels: str) -> int:
    """Fold `labels` into `seed`, one blake2b round per label."""

    value = int(seed) & SEED_MASK
    for label in labels:
        if not label:
            raise ValueError("stream labels must be non-empty")
        digest = hashlib.blake2b(
            f"{value}:{label}".encode("utf-8"),
            digest_size=8,
            person=b"droplet0",
        ).digest()
        value = int.from_bytes(digest, byteorder="big", signed=False)
    return value


@dataclass(frozen=True)
class RngStream:
    """A run seed plus the labels that name one independent random stream.

    Two streams with the same seed and labels always yield identical
    generators, so an erosion run replays bit for bit.
    """

    seed: int
    labels: tuple[str, ...] = ()

    def fork(self, label: str) -> "RngStream":
        return RngStream(self.seed, self.labels + (label,))

    @property
    def derived_seed(self) -> int:
        return stream_seed(self.seed, *self.labels)

    def generator(self) -> np.random.Generator:
        return np.random.Generator(np.random.PCG64(np.uint64(self.derived_seed)))


def engine_rng(seed: int | np.random.Generator) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return RngStream(seed).fork(ENGINE_STREAM).generator()
