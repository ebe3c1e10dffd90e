"""Job Channel: message-passing contract between a host and a scoring worker.

The worker runs as its own asyncio task and talks to the host only through
two queues of JSON-shaped dicts. Model loading and inference run in worker
threads, so the host's event loop stays responsive during long batches.

Worker states:

    IDLE ──init──▶ LOADING ──ok──▶ READY ──job──▶ SCORING ──done/cancel──▶ READY
      ▲               │                              │
      └──── FAILED ◀──┴── load error       job error ─┘

Messages a state does not allow are answered with a protocol_violation
error and otherwise ignored; nothing is queued.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Sequence

from pydantic import ValidationError

from models.schemas.messages import (
    HostCancel,
    WorkerCancelled,
    WorkerComplete,
    WorkerError,
    WorkerProgress,
    WorkerReady,
    parse_host_message,
)
from models.schemas.qual_score import CompositeScore
from services.pipeline import batch_runner, model_registry
from services.pipeline.batch_runner import BatchResult, ProgressCallback
from services.pipeline.errors import (
    JobCancelled,
    JobFailed,
    ModelLoadFailure,
    ProtocolViolation,
    QualPipelineError,
)

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]

_CLOSE = object()

# Error kinds that leave the worker state unchanged
_RECOVERABLE_KINDS = {ProtocolViolation.kind, "invalid_message"}


class WorkerState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SCORING = "scoring"
    FAILED = "failed"


class QualWorker:
    """Worker side of the channel: an explicit state machine over host messages."""

    def __init__(
        self,
        send: Send,
        *,
        continue_on_error: bool | None = None,
        parallel_models: bool | None = None,
    ) -> None:
        self.state = WorkerState.IDLE
        self._send = send
        self._continue_on_error = continue_on_error
        self._parallel_models = parallel_models
        self._load_task: asyncio.Task | None = None
        self._job_task: asyncio.Task | None = None
        self._cancel_token: asyncio.Event | None = None
        self._progress_count = 0

    async def serve(self, inbox: asyncio.Queue) -> None:
        """Handle host messages until the channel is closed."""
        while True:
            data = await inbox.get()
            if data is _CLOSE:
                break
            await self.handle(data)
        await self.aclose()

    async def handle(self, data: Any) -> None:
        try:
            msg = parse_host_message(data)
        except ValidationError as e:
            await self._emit(WorkerError(error="invalid_message", message=str(e)))
            return

        if isinstance(msg, HostCancel):
            await self._on_cancel()
        elif msg.is_init:
            await self._on_init()
        else:
            await self._on_job(msg.comments)

    async def aclose(self) -> None:
        for task in (self._load_task, self._job_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    # --- transitions ---

    async def _on_init(self) -> None:
        if self.state not in (WorkerState.IDLE, WorkerState.FAILED):
            logger.debug("Init ignored while %s", self.state.value)
            return
        self.state = WorkerState.LOADING
        self._load_task = asyncio.create_task(self._load())

    async def _load(self) -> None:
        try:
            await asyncio.to_thread(model_registry.ensure_loaded)
        except ModelLoadFailure as e:
            self.state = WorkerState.FAILED
            await self._emit(WorkerError(error=e.kind, message=str(e)))
            return
        self.state = WorkerState.READY
        await self._emit(WorkerReady())

    async def _on_job(self, comments: list[str]) -> None:
        if self.state is not WorkerState.READY:
            await self._reject(f"Cannot accept a job while {self.state.value}")
            return
        self.state = WorkerState.SCORING
        self._cancel_token = asyncio.Event()
        self._progress_count = 0
        self._job_task = asyncio.create_task(self._run_job(comments))

    async def _on_cancel(self) -> None:
        if self.state is not WorkerState.SCORING or self._cancel_token is None:
            await self._reject("No job in flight to cancel")
            return
        self._cancel_token.set()

    async def _run_job(self, comments: list[str]) -> None:
        try:
            result = await batch_runner.run(
                comments,
                on_progress=self._on_progress,
                cancel_token=self._cancel_token,
                continue_on_error=self._continue_on_error,
                parallel_models=self._parallel_models,
            )
        except JobCancelled as e:
            self.state = WorkerState.READY
            await self._emit(WorkerCancelled(progress_count=e.progress_count))
            return
        except QualPipelineError as e:
            logger.error("Job aborted after %d comment(s): %s", self._progress_count, e)
            self.state = WorkerState.FAILED
            await self._emit(WorkerError(error=e.kind, message=str(e), progress_count=self._progress_count))
            return
        except Exception as e:
            logger.exception("Unexpected error while scoring")
            self.state = WorkerState.FAILED
            await self._emit(WorkerError(error=QualPipelineError.kind, message=str(e), progress_count=self._progress_count))
            return

        self.state = WorkerState.READY
        await self._emit(WorkerComplete(output=result.scores, failed_indices=result.failed_indices))

    async def _on_progress(self, count: int) -> None:
        self._progress_count = count
        await self._emit(WorkerProgress(progress_count=count))

    async def _reject(self, reason: str) -> None:
        logger.warning("Protocol violation: %s", reason)
        await self._emit(WorkerError(error=ProtocolViolation.kind, message=reason, progress_count=self._progress_count))

    async def _emit(self, msg) -> None:
        await self._send(msg.to_wire())


class JobChannel:
    """Host side of the channel. Owns the queues and the worker task.

    Usage:
        async with JobChannel() as channel:
            result = await channel.submit(comments, on_progress=report)
    """

    def __init__(
        self,
        *,
        continue_on_error: bool | None = None,
        parallel_models: bool | None = None,
    ) -> None:
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._worker = QualWorker(
            self._outbox.put,
            continue_on_error=continue_on_error,
            parallel_models=parallel_models,
        )
        self._task: asyncio.Task | None = None
        self._ready = False

    async def __aenter__(self) -> "JobChannel":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._worker.serve(self._inbox))

    async def close(self) -> None:
        if self._task is None:
            return
        await self._inbox.put(_CLOSE)
        await self._task
        self._task = None

    async def send(self, message: Any) -> None:
        await self._inbox.put({} if message is None else message)

    async def receive(self) -> dict:
        msg = await self._outbox.get()
        if msg.get("status") == "ready":
            self._ready = True
        elif msg.get("status") == "error" and msg.get("error") not in _RECOVERABLE_KINDS:
            self._ready = False
        return msg

    async def wait_ready(self) -> None:
        """Send the init ping and wait for the worker's ready signal."""
        if self._ready:
            return
        await self.send({})
        while True:
            msg = await self.receive()
            if msg["status"] == "ready":
                return
            if msg["status"] == "error":
                raise JobFailed(msg["error"], msg.get("message", ""), msg.get("progressCount", 0))

    async def cancel(self) -> None:
        await self.send({"action": "cancel"})

    async def submit(
        self,
        comments: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Run one job to completion and return its index-aligned results.

        Raises JobFailed on a worker error and JobCancelled if the job was
        cancelled.
        """
        await self.wait_ready()
        if not comments:
            return BatchResult()

        await self.send({"comments": list(comments)})
        while True:
            msg = await self.receive()
            status = msg["status"]
            if status == "progress":
                if on_progress is not None:
                    await on_progress(msg["progressCount"])
            elif status == "complete":
                return BatchResult(
                    scores=[CompositeScore.model_validate(o) if o is not None else None for o in msg["output"]],
                    failed_indices=msg.get("failedIndices", []),
                )
            elif status == "cancelled":
                raise JobCancelled(progress_count=msg.get("progressCount", 0))
            elif status == "error":
                raise JobFailed(msg["error"], msg.get("message", ""), msg.get("progressCount", 0))
