"""Move-only height-field handles passed across the worker boundary."""

from __future__ import annotations

from typing import Any, Iterator

import numpy as np


class BufferTransferredError(RuntimeError):
    """Raised when a height buffer is used after its contents moved elsewhere."""


class HeightBuffer:
    """Owning handle for a float32 height grid.

    `transfer()` hands the array to the receiver and leaves this handle empty, so
    the sender cannot observe or mutate the grid the receiver now owns.
    """

    __slots__ = ("_array",)

    def __init__(self, array: Any) -> None:
        self._array: np.ndarray | None = np.asarray(array, dtype=np.float32)

    @classmethod
    def copy_of(cls, array: Any) -> "HeightBuffer":
        return cls(np.array(array, dtype=np.float32, copy=True))

    @property
    def transferred(self) -> bool:
        return self._array is None

    @property
    def array(self) -> np.ndarray:
        if self._array is None:
            raise BufferTransferredError("height buffer was transferred and can no longer be used")
        return self._array

    @property
    def shape(self) -> tuple[int, ...]:
        return self.array.shape

    def transfer(self) -> np.ndarray:
        array = self.array
        self._array = None
        return array

    def __len__(self) -> int:
        return int(self.array.size)

    def __iter__(self) -> Iterator[float]:
        return iter(self.array.ravel())

    def __repr__(self) -> str:
        if self._array is None:
            return "HeightBuffer(<transferred>)"
        return f"HeightBuffer(shape={self._array.shape})"
