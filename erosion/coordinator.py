"""Async request/response front-end for an erosion worker."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import itertools
from typing import Any, Callable, Mapping

import numpy as np
import structlog

from erosion.buffer import HeightBuffer
from erosion.config import DEFAULT_DROPLET_COUNT, ErosionParams
from erosion.worker import NOT_INITIALIZED, ErosionWorker, Message

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[HeightBuffer], None]


class ProtocolError(RuntimeError):
    """The coordinator protocol was misused or a reply did not match its request."""


class NotInitializedError(ProtocolError):
    """A request other than `init` reached a worker without an engine."""


class InvalidPayloadError(ProtocolError):
    """A step reply carried something other than the expected height grid."""


class EngineInitError(RuntimeError):
    """The worker could not build (or rebuild) its engine from the given inputs."""


class WorkerError(RuntimeError):
    """The engine raised while serving a request."""


@dataclass(frozen=True)
class StepResult:
    alive: bool
    height_field: HeightBuffer
    alive_count: int = 0


class ProgressiveStepCoordinator:
    """Drive one `ErosionEngine` living on a worker thread.

    Only one request may be in flight per coordinator. Height buffers passed to
    `init` and `reset` are moved into the worker and become unusable for the
    caller; buffers returned from `step` belong to the caller.
    """

    def __init__(self, *, name: str = "erosion-worker") -> None:
        self._name = name
        self._worker: ErosionWorker | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._responses: asyncio.Queue[Message] | None = None
        self._seq = itertools.count(1)
        self._pending = False
        self._grid_cells: int | None = None

    async def __aenter__(self) -> "ProgressiveStepCoordinator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def initialized(self) -> bool:
        return self._grid_cells is not None

    def _ensure_worker(self) -> ErosionWorker:
        if self._worker is None:
            self._loop = asyncio.get_running_loop()
            self._responses = asyncio.Queue()
            self._worker = ErosionWorker(self._deliver, name=self._name)
            self._worker.start()
        return self._worker

    def _deliver(self, message: Message) -> None:
        # Runs on the worker thread.
        self._loop.call_soon_threadsafe(self._responses.put_nowait, message)

    async def _request(
        self,
        kind: str,
        payload: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> Message:
        if self._pending:
            raise ProtocolError(f"cannot send {kind!r}: another request is still outstanding")

        worker = self._ensure_worker()
        seq = next(self._seq)
        self._pending = True
        try:
            worker.post_message({"type": kind, "payload": payload or {}, "seq": seq})
            while True:
                message = await self._responses.get()
                if message.get("seq") != seq:
                    # Reply to a request whose caller gave up waiting.
                    continue
                reply_type = message.get("type")
                if reply_type == "progress":
                    if on_progress is not None:
                        on_progress(message["height_field"])
                    continue
                if reply_type == "error":
                    text = message.get("message", "worker error")
                    if message.get("reason") == NOT_INITIALIZED:
                        raise NotInitializedError(text)
                    raise WorkerError(text)
                if reply_type != kind:
                    raise ProtocolError(f"expected {kind!r} reply, got {reply_type!r}")
                return message
        finally:
            self._pending = False

    async def init(
        self,
        width: int,
        height: int,
        height_field: HeightBuffer,
        params: ErosionParams | Mapping[str, Any] | None = None,
        droplet_count: int = DEFAULT_DROPLET_COUNT,
        *,
        seed: int = 0,
    ) -> None:
        """Build the engine inside the worker; `height_field` is moved in."""

        if self._pending:
            raise ProtocolError("cannot send 'init': another request is still outstanding")
        array = _take(height_field)
        logger.info("Initializing erosion worker", width=width, height=height, droplets=droplet_count)
        # Kept if the caller cancels; the worker may still build this grid.
        self._grid_cells = int(width) * int(height)
        try:
            reply = await self._request(
                "init",
                {
                    "width": width,
                    "height": height,
                    "height_field": array,
                    "params": params,
                    "droplet_count": droplet_count,
                    "seed": seed,
                },
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            self._grid_cells = None
            raise
        if not reply.get("success"):
            self._grid_cells = None
            raise EngineInitError(reply.get("error") or "engine construction failed")

    async def step(self, batch_size: int, on_progress: ProgressCallback | None = None) -> StepResult:
        """Advance one batch; the returned height buffer is owned by the caller."""

        reply = await self._request(
            "step",
            {"batch_size": batch_size, "progress": on_progress is not None},
            on_progress=on_progress,
        )
        buffer = reply.get("height_field")
        if not self._valid_grid(buffer):
            logger.error("Invalid height field received", payload_type=type(buffer).__name__)
            raise InvalidPayloadError(f"step reply carried an invalid height field: {buffer!r}")
        return StepResult(
            alive=bool(reply.get("alive")),
            height_field=buffer,
            alive_count=int(reply.get("alive_count", 0)),
        )

    async def pause(self) -> None:
        await self._request("pause")

    async def resume(self) -> None:
        await self._request("resume")

    async def reset(self, height_field: HeightBuffer) -> None:
        """Restart the engine on a new field; `height_field` is moved in.

        A failed reset leaves the worker uninitialized, like a failed `init`.
        """

        array = _take(height_field)
        reply = await self._request("reset", {"height_field": array})
        if not reply.get("success"):
            self._grid_cells = None
            raise EngineInitError(reply.get("error") or "engine reset failed")
        logger.info("Erosion worker reset")

    async def close(self) -> None:
        if self._worker is None:
            return
        worker = self._worker
        self._worker = None
        self._grid_cells = None
        await asyncio.to_thread(worker.stop)

    def _valid_grid(self, buffer: Any) -> bool:
        if not isinstance(buffer, HeightBuffer) or buffer.transferred:
            return False
        array = buffer.array
        return (
            isinstance(array, np.ndarray)
            and array.dtype == np.float32
            and (self._grid_cells is None or array.size == self._grid_cells)
        )


def _take(height_field: HeightBuffer) -> np.ndarray:
    if not isinstance(height_field, HeightBuffer):
        raise TypeError(f"height_field must be a HeightBuffer, got {type(height_field).__name__}")
    return height_field.transfer()
