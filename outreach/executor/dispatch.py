"""Hand-off of a job to its next stage.

``dispatch()`` returns immediately: the current stage never waits for the
next one. What differs is where the next stage runs:

- ThreadPoolDispatcher: on a worker thread in this process (default)
- HttpDispatcher: behind POST /v1/agents/stage/{n}, possibly another process
- InlineDispatcher: synchronously, in the caller's thread (tests, scripts)

A stage that runs and fails is not a dispatch failure; it writes ERROR to
its own job. A dispatch failure is the hand-off itself going wrong
(stage rejected, endpoint unreachable, pool shut down). Those are logged
and kept in ``failures()`` so an operator can inspect and ``redispatch()``.
Nothing is retried automatically.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from outreach.executor.schemas import utc_now

logger = logging.getLogger(__name__)

StageRunner = Callable[[int, str, Optional[dict]], Any]


@dataclass
class DispatchFailure:
    stage_number: int
    job_id: str
    payload: dict[str, Any]
    error: str
    failed_at: str = field(default_factory=utc_now)


class Dispatcher:
    """Base class: failure bookkeeping shared by all dispatchers."""

    mode = "base"

    def __init__(self):
        self._runner: Optional[StageRunner] = None
        self._failures: list[DispatchFailure] = []
        self._failures_lock = threading.Lock()

    def bind(self, runner: StageRunner) -> None:
        """Attach the function that actually runs a stage."""
        self._runner = runner

    def dispatch(self, stage_number: int, job_id: str, payload: Optional[dict] = None) -> None:
        raise NotImplementedError

    def failures(self) -> list[DispatchFailure]:
        with self._failures_lock:
            return list(self._failures)

    def redispatch(self, failure: DispatchFailure) -> None:
        """Try a failed hand-off once more."""
        with self._failures_lock:
            if failure in self._failures:
                self._failures.remove(failure)
        logger.info(f"Re-dispatching stage {failure.stage_number} for job {failure.job_id}")
        self.dispatch(failure.stage_number, failure.job_id, failure.payload)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight stages. No-op where nothing runs asynchronously."""

    def shutdown(self) -> None:
        """Stop accepting work."""

    def _invoke(self, stage_number: int, job_id: str, payload: dict) -> Any:
        if self._runner is None:
            raise RuntimeError("Dispatcher is not bound to an orchestrator")
        return self._runner(stage_number, job_id, payload)

    def _record_failure(
        self, stage_number: int, job_id: str, payload: dict, error: BaseException
    ) -> None:
        failure = DispatchFailure(
            stage_number=stage_number,
            job_id=job_id,
            payload=payload,
            error=f"{type(error).__name__}: {error}",
        )
        with self._failures_lock:
            self._failures.append(failure)
        logger.error(
            f"Dispatch of stage {stage_number} for job {job_id} failed: {failure.error}"
        )


class InlineDispatcher(Dispatcher):
    """Runs the next stage immediately in the calling thread."""

    mode = "inline"

    def dispatch(self, stage_number: int, job_id: str, payload: Optional[dict] = None) -> None:
        payload = payload or {}
        try:
            self._invoke(stage_number, job_id, payload)
        except Exception as e:
            self._record_failure(stage_number, job_id, payload, e)


class ThreadPoolDispatcher(Dispatcher):
    """Runs stages on a bounded pool of worker threads."""

    mode = "thread"

    def __init__(self, max_workers: int = 4):
        super().__init__()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="outreach-stage"
        )
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

    def dispatch(self, stage_number: int, job_id: str, payload: Optional[dict] = None) -> None:
        payload = payload or {}
        try:
            future = self._executor.submit(self._invoke, stage_number, job_id, payload)
        except RuntimeError as e:
            # Pool already shut down
            self._record_failure(stage_number, job_id, payload, e)
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(
            lambda f: self._on_done(f, stage_number, job_id, payload)
        )
        logger.debug(f"Dispatched stage {stage_number} for job {job_id}")

    def _on_done(self, future: Future, stage_number: int, job_id: str, payload: dict) -> None:
        with self._pending_lock:
            self._pending.discard(future)
        if future.cancelled():
            self._record_failure(
                stage_number, job_id, payload, RuntimeError("Dispatch cancelled")
            )
            return
        error = future.exception()
        if error is not None:
            self._record_failure(stage_number, job_id, payload, error)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until no stage is running or queued.

        Stages dispatch their successor before their own future finishes,
        so a whole chain is drained, not just the first link.
        """
        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                raise TimeoutError(f"{len(not_done)} dispatched stage(s) still running")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
        logger.info(f"{type(self).__name__} shut down")


class HttpDispatcher(ThreadPoolDispatcher):
    """POSTs to the stage-invoke endpoint from a background thread.

    The POST is held open while the remote stage runs, so there is no read
    timeout. A 500 means the stage ran and failed, which the stage has
    already written to the job. Any other non-2xx answer, or no answer at
    all, is a dispatch failure.
    """

    mode = "http"

    def __init__(
        self,
        base_url: str,
        max_workers: int = 4,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(max_workers=max_workers)
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(connect=10.0, read=None, write=10.0, pool=10.0),
            transport=transport,
        )

    def _invoke(self, stage_number: int, job_id: str, payload: dict) -> Any:
        response = self._http.post(
            f"/v1/agents/stage/{stage_number}",
            json={"job_id": job_id, "payload": payload},
        )
        if response.status_code == 500:
            logger.warning(
                f"Stage {stage_number} for job {job_id} reported failure: {response.text[:200]}"
            )
            return None
        response.raise_for_status()
        return response.json()

    def shutdown(self) -> None:
        super().shutdown()
        self._http.close()
