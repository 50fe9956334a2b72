"""Isolated execution context that owns one erosion engine."""

from __future__ import annotations

from queue import Queue
import threading
from typing import Any, Callable

import structlog

from erosion.buffer import HeightBuffer
from erosion.engine import ErosionEngine

logger = structlog.get_logger(__name__)

NOT_INITIALIZED = "not_initialized"

Message = dict[str, Any]
PostFn = Callable[[Message], None]

_STOP = object()


class ErosionWorker:
    """Message-driven host for an `ErosionEngine` running on its own thread.

    Requests are `{"type", "payload", "seq"}` dicts read from an inbox queue.
    Every reply goes through `post` and echoes the request's `seq`. Failures are
    always reported as reply messages; nothing raised inside the worker crosses
    back to the caller.
    """

    def __init__(self, post: PostFn, *, name: str = "erosion-worker") -> None:
        self._post = post
        self._inbox: Queue = Queue()
        self._engine: ErosionEngine | None = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._handlers: dict[str, Callable[[dict[str, Any], Any], None]] = {
            "init": self._on_init,
            "step": self._on_step,
            "pause": self._on_pause,
            "resume": self._on_resume,
            "reset": self._on_reset,
        }

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()
        logger.debug("Worker thread started", thread=self._thread.name)

    def post_message(self, message: Message) -> None:
        self._inbox.put(message)

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread.is_alive():
            return
        self._inbox.put(_STOP)
        self._thread.join(timeout=timeout)
        logger.debug("Worker thread stopped", thread=self._thread.name)

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            if message is _STOP:
                break
            self.handle(message)

    def handle(self, message: Message) -> None:
        """Dispatch one request on the calling thread.

        A handler failure of any kind becomes a reply. A failed `init` or
        `reset` also drops the engine, so later requests report
        `not_initialized` instead of running against stale state.
        """

        kind = message.get("type")
        seq = message.get("seq")
        payload = message.get("payload") or {}

        handler = self._handlers.get(kind)
        if handler is None:
            self._reply({"type": "error", "message": f"Unknown message type: {kind!r}"}, seq)
            return
        if kind != "init" and self._engine is None:
            self._reply(
                {"type": "error", "reason": NOT_INITIALIZED, "message": "Simulator not initialized"},
                seq,
            )
            return

        try:
            handler(payload, seq)
        except Exception as exc:
            logger.exception("Worker request failed", request=kind, error=str(exc))
            if kind in ("init", "reset"):
                self._engine = None
                self._reply({"type": kind, "success": False, "error": str(exc) or type(exc).__name__}, seq)
            else:
                self._reply({"type": "error", "message": str(exc) or type(exc).__name__}, seq)

    def _reply(self, message: Message, seq: Any) -> None:
        message["seq"] = seq
        self._post(message)

    def _on_init(self, payload: dict[str, Any], seq: Any) -> None:
        self._engine = None
        engine = ErosionEngine(
            payload["width"],
            payload["height"],
            payload["height_field"],
            payload.get("params"),
            seed=payload.get("seed", 0),
        )
        engine.reset_droplets(payload.get("droplet_count", 0))

        self._engine = engine
        logger.info(
            "Worker initialized",
            width=engine.width,
            height=engine.height,
            droplets=engine.droplet_count,
            substeps=engine.substeps,
        )
        self._reply({"type": "init", "success": True}, seq)

    def _on_step(self, payload: dict[str, Any], seq: Any) -> None:
        engine = self._engine
        on_step = None
        if payload.get("progress"):

            def on_step(snapshot: Any) -> None:
                self._reply({"type": "progress", "height_field": HeightBuffer(snapshot)}, seq)

        alive = engine.step_droplets(int(payload.get("batch_size", 0)), on_step)
        self._reply(
            {
                "type": "step",
                "alive": alive,
                "alive_count": engine.last_metrics.alive_count,
                "height_field": HeightBuffer(engine.height_map()),
            },
            seq,
        )

    def _on_pause(self, payload: dict[str, Any], seq: Any) -> None:
        self._engine.pause()
        self._reply({"type": "pause"}, seq)

    def _on_resume(self, payload: dict[str, Any], seq: Any) -> None:
        self._engine.resume()
        self._reply({"type": "resume"}, seq)

    def _on_reset(self, payload: dict[str, Any], seq: Any) -> None:
        self._engine.reset(payload["height_field"])
        self._reply({"type": "reset", "success": True}, seq)
