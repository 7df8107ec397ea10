"""Tests for the stage dispatchers."""

import json
import threading

import httpx
import pytest

from outreach.executor.dispatch import (
    HttpDispatcher,
    InlineDispatcher,
    ThreadPoolDispatcher,
)
from outreach.executor.errors import StageConflictError


class TestInlineDispatcher:
    def test_runs_synchronously(self):
        calls = []
        dispatcher = InlineDispatcher()
        dispatcher.bind(lambda stage, job_id, payload: calls.append((stage, job_id, payload)))

        dispatcher.dispatch(2, "job-1", {"target_field": "Neuroscience"})

        assert calls == [(2, "job-1", {"target_field": "Neuroscience"})]
        assert dispatcher.failures() == []

    def test_rejected_hand_off_is_recorded_and_can_be_redispatched(self):
        attempts = []

        def runner(stage, job_id, payload):
            attempts.append(stage)
            if len(attempts) == 1:
                raise StageConflictError(f"Job {job_id} is already COMPLETE; stage {stage} will not run")

        dispatcher = InlineDispatcher()
        dispatcher.bind(runner)
        dispatcher.dispatch(3, "job-1", {"x": 1})

        [failure] = dispatcher.failures()
        assert failure.stage_number == 3
        assert failure.job_id == "job-1"
        assert failure.payload == {"x": 1}
        assert failure.error.startswith("StageConflictError: ")

        dispatcher.redispatch(failure)
        assert attempts == [3, 3]
        assert dispatcher.failures() == []

    def test_unbound_dispatcher_records_failure(self):
        dispatcher = InlineDispatcher()
        dispatcher.dispatch(1, "job-1")
        [failure] = dispatcher.failures()
        assert "not bound" in failure.error


class TestThreadPoolDispatcher:
    def test_drain_waits_for_chained_stages(self):
        done = []
        dispatcher = ThreadPoolDispatcher(max_workers=2)

        def runner(stage, job_id, payload):
            done.append(stage)
            if stage < 4:
                dispatcher.dispatch(stage + 1, job_id, payload)

        dispatcher.bind(runner)
        try:
            dispatcher.dispatch(1, "job-1", {})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        assert done == [1, 2, 3, 4]

    def test_exception_in_runner_is_recorded(self):
        def runner(stage, job_id, payload):
            raise StageConflictError("rejected")

        dispatcher = ThreadPoolDispatcher(max_workers=1)
        dispatcher.bind(runner)
        try:
            dispatcher.dispatch(2, "job-1", {})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        [failure] = dispatcher.failures()
        assert failure.error == "StageConflictError: rejected"

    def test_drain_times_out(self):
        release = threading.Event()
        dispatcher = ThreadPoolDispatcher(max_workers=1)
        dispatcher.bind(lambda *args: release.wait(10))
        try:
            dispatcher.dispatch(1, "job-1", {})
            with pytest.raises(TimeoutError):
                dispatcher.drain(timeout=0.05)
        finally:
            release.set()
            dispatcher.shutdown()

    def test_dispatch_after_shutdown_is_recorded(self):
        dispatcher = ThreadPoolDispatcher(max_workers=1)
        dispatcher.bind(lambda *args: None)
        dispatcher.shutdown()

        dispatcher.dispatch(2, "job-1", {"a": 1})

        [failure] = dispatcher.failures()
        assert failure.stage_number == 2
        assert failure.error.startswith("RuntimeError")


class TestHttpDispatcher:
    def _dispatcher(self, handler) -> HttpDispatcher:
        return HttpDispatcher(
            "http://orchestrator.test/",
            max_workers=1,
            transport=httpx.MockTransport(handler),
        )

    def test_posts_to_stage_endpoint(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        dispatcher = self._dispatcher(handler)
        try:
            dispatcher.dispatch(3, "job-1", {"prospects": []})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        [request] = requests
        assert request.method == "POST"
        assert request.url == "http://orchestrator.test/v1/agents/stage/3"
        assert json.loads(request.content) == {"job_id": "job-1", "payload": {"prospects": []}}
        assert dispatcher.failures() == []

    def test_stage_failure_is_not_a_dispatch_failure(self):
        dispatcher = self._dispatcher(
            lambda request: httpx.Response(500, json={"success": False, "message": "boom"})
        )
        try:
            dispatcher.dispatch(2, "job-1", {})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        assert dispatcher.failures() == []

    def test_rejected_stage_is_a_dispatch_failure(self):
        dispatcher = self._dispatcher(
            lambda request: httpx.Response(409, json={"detail": "stage 2 has already started"})
        )
        try:
            dispatcher.dispatch(2, "job-1", {})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        [failure] = dispatcher.failures()
        assert failure.error.startswith("HTTPStatusError")

    def test_unreachable_endpoint_is_a_dispatch_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = self._dispatcher(handler)
        try:
            dispatcher.dispatch(1, "job-1", {})
            dispatcher.drain(timeout=10)
        finally:
            dispatcher.shutdown()

        [failure] = dispatcher.failures()
        assert failure.error == "ConnectError: connection refused"
