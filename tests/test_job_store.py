"""Tests for JobStore: transitions, terminal immutability, append-only logs."""

import threading

import pytest

from outreach.executor.db import Transaction
from outreach.executor.errors import (
    ArtifactAlreadyWrittenError,
    InvalidTransitionError,
    JobNotFoundError,
    JobTerminalError,
)
from outreach.executor.schemas import (
    CVInsight,
    JobStatus,
    LogEntry,
    Prospect,
    can_transition,
)
from tests.conftest import advance, make_job


class TestCanTransition:
    def test_forward_moves_allowed(self):
        assert can_transition(JobStatus.PENDING, JobStatus.STAGE_1_ANALYZING_CV)
        assert can_transition(JobStatus.STAGE_1_ANALYZING_CV, JobStatus.STAGE_2_FINDING_PROSPECTS)
        assert can_transition(JobStatus.STAGE_4_WRITING_EMAILS, JobStatus.COMPLETE)

    def test_staying_in_place_allowed(self):
        assert can_transition(JobStatus.STAGE_2_FINDING_PROSPECTS, JobStatus.STAGE_2_FINDING_PROSPECTS)

    def test_skipping_a_step_rejected(self):
        assert not can_transition(JobStatus.STAGE_1_ANALYZING_CV, JobStatus.STAGE_3_VERIFYING_PUBLICATIONS)
        assert not can_transition(JobStatus.PENDING, JobStatus.STAGE_2_FINDING_PROSPECTS)
        assert not can_transition(JobStatus.PENDING, JobStatus.COMPLETE)

    def test_backward_move_rejected(self):
        assert not can_transition(JobStatus.STAGE_3_VERIFYING_PUBLICATIONS, JobStatus.STAGE_1_ANALYZING_CV)
        assert not can_transition(JobStatus.STAGE_1_ANALYZING_CV, JobStatus.PENDING)

    def test_error_reachable_from_any_non_terminal(self):
        for status in (
            JobStatus.PENDING,
            JobStatus.STAGE_1_ANALYZING_CV,
            JobStatus.STAGE_4_WRITING_EMAILS,
        ):
            assert can_transition(status, JobStatus.ERROR)

    def test_terminal_states_are_final(self):
        for terminal in (JobStatus.COMPLETE, JobStatus.ERROR):
            for status in JobStatus:
                assert not can_transition(terminal, status)


class TestCreateAndGet:
    def test_round_trip(self, job_store):
        job = make_job(user_id="user-1", target_institution="MIT")
        job_store.create(job)

        loaded = job_store.get(job.job_id)
        assert loaded.job_id == job.job_id
        assert loaded.status == JobStatus.PENDING
        assert loaded.target_institution == "MIT"
        assert loaded.prospects == []
        assert loaded.cv_insights is None
        assert [e.message for e in loaded.logs] == ["Job created. Initializing agent workflow..."]

    def test_missing_job_raises(self, job_store):
        with pytest.raises(JobNotFoundError):
            job_store.get("job-does-not-exist")
        assert not job_store.exists("job-does-not-exist")

    def test_update_missing_job_raises(self, job_store):
        with pytest.raises(JobNotFoundError):
            job_store.append_log("job-does-not-exist", 1, "hello")


class TestUpdate:
    def test_status_and_log_written_together(self, job_store):
        job = make_job()
        job_store.create(job)

        job_store.update(
            job.job_id,
            {"status": JobStatus.STAGE_1_ANALYZING_CV, "current_stage_index": 1},
            log=LogEntry(stage_number=1, message="Stage 1 initialized. Analyzing CV..."),
        )

        loaded = job_store.get(job.job_id)
        assert loaded.status == JobStatus.STAGE_1_ANALYZING_CV
        assert loaded.current_stage_index == 1
        assert loaded.logs[-1].message == "Stage 1 initialized. Analyzing CV..."
        assert loaded.updated_at >= job.updated_at

    def test_backward_transition_rejected_and_state_unchanged(self, job_store):
        job = make_job()
        job_store.create(job)
        advance(job_store, job.job_id, JobStatus.STAGE_2_FINDING_PROSPECTS)

        with pytest.raises(InvalidTransitionError):
            job_store.update(
                job.job_id,
                {"status": JobStatus.STAGE_1_ANALYZING_CV},
                log=LogEntry(stage_number=1, message="should not be written"),
            )

        loaded = job_store.get(job.job_id)
        assert loaded.status == JobStatus.STAGE_2_FINDING_PROSPECTS
        assert all(e.message != "should not be written" for e in loaded.logs)

    def test_skipped_step_rejected_and_state_unchanged(self, job_store):
        job = make_job()
        job_store.create(job)

        with pytest.raises(InvalidTransitionError):
            job_store.update(job.job_id, {"status": JobStatus.COMPLETE})
        with pytest.raises(InvalidTransitionError):
            job_store.update(job.job_id, {"status": JobStatus.STAGE_3_VERIFYING_PUBLICATIONS})

        assert job_store.get(job.job_id).status == JobStatus.PENDING

    def test_unknown_field_rejected(self, job_store):
        job = make_job()
        job_store.create(job)
        with pytest.raises(ValueError, match="job_id"):
            job_store.update(job.job_id, {"job_id": "job-other"})

    def test_artifacts_are_write_once(self, job_store):
        job = make_job()
        job_store.create(job)
        prospects = [Prospect(id="prospect-1", name="Dr. Ada Lovelace")]
        job_store.update(job.job_id, {"prospects": prospects})

        with pytest.raises(ArtifactAlreadyWrittenError):
            job_store.update(job.job_id, {"prospects": [Prospect(id="prospect-2", name="Someone Else")]})

        loaded = job_store.get(job.job_id)
        assert [p.name for p in loaded.prospects] == ["Dr. Ada Lovelace"]

    def test_cv_insights_round_trip(self, job_store):
        job = make_job()
        job_store.create(job)
        job_store.update(job.job_id, {"cv_insights": CVInsight(profile_id="profile-x", skills=["Python"])})

        loaded = job_store.get(job.job_id)
        assert loaded.cv_insights.skills == ["Python"]
        assert loaded.cv_insights.profile_id == "profile-x"


class TestTerminalStates:
    def test_mark_failed_sets_error_and_logs(self, job_store):
        job = make_job()
        job_store.create(job)
        advance(job_store, job.job_id, JobStatus.STAGE_2_FINDING_PROSPECTS)

        job_store.mark_failed(job.job_id, 2, "No prospects found for 'Neuroscience'")

        loaded = job_store.get(job.job_id)
        assert loaded.status == JobStatus.ERROR
        assert loaded.error == "No prospects found for 'Neuroscience'"
        assert loaded.logs[-1].stage_number == 2
        assert loaded.logs[-1].message == "Stage 2 failed: No prospects found for 'Neuroscience'"

    @pytest.mark.parametrize("terminal", [JobStatus.COMPLETE, JobStatus.ERROR])
    def test_no_mutation_after_terminal(self, job_store, terminal):
        job = make_job()
        job_store.create(job)
        if terminal == JobStatus.COMPLETE:
            advance(job_store, job.job_id, JobStatus.COMPLETE)
        else:
            job_store.mark_failed(job.job_id, 0, "boom")
        before = job_store.get(job.job_id)

        with pytest.raises(JobTerminalError):
            job_store.append_log(job.job_id, 3, "late message")
        with pytest.raises(JobTerminalError):
            job_store.mark_failed(job.job_id, 3, "late failure")

        assert job_store.get(job.job_id) == before


class TestLogs:
    def test_entries_never_change_once_written(self, job_store):
        job = make_job()
        job_store.create(job)
        job_store.append_log(job.job_id, 1, "first")
        first_snapshot = job_store.get(job.job_id).logs

        job_store.update(job.job_id, {"status": JobStatus.STAGE_1_ANALYZING_CV})
        job_store.append_log(job.job_id, 1, "second")

        logs = job_store.get(job.job_id).logs
        assert logs[: len(first_snapshot)] == first_snapshot
        assert [e.message for e in logs[-2:]] == ["first", "second"]

    def test_concurrent_appends_are_all_kept(self, job_store):
        job = make_job()
        job_store.create(job)

        def writer(n):
            for i in range(10):
                job_store.append_log(job.job_id, 3, f"writer {n} entry {i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        messages = [e.message for e in job_store.get(job.job_id).logs]
        assert len(messages) == 1 + 60
        for n in range(6):
            own = [m for m in messages if m.startswith(f"writer {n} ")]
            assert own == [f"writer {n} entry {i}" for i in range(10)]

    def test_append_survives_a_status_change_mid_update(self, job_store, monkeypatch):
        job = make_job()
        job_store.create(job)

        original_execute = Transaction.execute
        raced = []

        def execute(tx, sql, params=(), fetch="none"):
            result = original_execute(tx, sql, params, fetch=fetch)
            # Advance the job from another thread right after the append read it
            if not raced and sql.lstrip().startswith("SELECT status"):
                raced.append(True)
                mover = threading.Thread(
                    target=job_store.update,
                    args=(job.job_id, {"status": JobStatus.STAGE_1_ANALYZING_CV}),
                )
                mover.start()
                mover.join()
            return result

        monkeypatch.setattr(Transaction, "execute", execute)
        job_store.append_log(job.job_id, 1, "Searching publications for Dr. Ada Lovelace...")
        monkeypatch.undo()

        loaded = job_store.get(job.job_id)
        assert raced
        assert loaded.status == JobStatus.STAGE_1_ANALYZING_CV
        assert loaded.logs[-1].message == "Searching publications for Dr. Ada Lovelace..."


class TestListJobs:
    def test_most_recent_first_and_filtered_by_user(self, job_store):
        older = make_job(user_id="user-1", created_at="2026-01-01T00:00:00+00:00")
        newer = make_job(user_id="user-1", created_at="2026-02-01T00:00:00+00:00")
        other = make_job(user_id="user-2", created_at="2026-03-01T00:00:00+00:00")
        for job in (older, newer, other):
            job_store.create(job)

        mine = job_store.list_jobs(user_id="user-1")
        assert [j.job_id for j in mine] == [newer.job_id, older.job_id]

        everyone = job_store.list_jobs()
        assert [j.job_id for j in everyone] == [other.job_id, newer.job_id, older.job_id]

        assert len(job_store.list_jobs(limit=1)) == 1

    def test_summary_counts(self, job_store):
        job = make_job()
        job_store.create(job)
        job_store.update(job.job_id, {"prospects": [
            Prospect(id="prospect-1", name="A"),
            Prospect(id="prospect-2", name="B"),
        ]})

        [summary] = job_store.list_jobs()
        assert summary.prospect_count == 2
        assert summary.draft_count == 0
