"""Top-level job orchestration.

The orchestrator:
1. Deploys a job (validates inputs, creates it in PENDING, dispatches stage 1)
2. Runs one stage at a time for a job:
   - claims the job (one active stage per job in this process)
   - moves the job to the stage's in-progress status and logs the start
   - lets the stage do its work
   - stores the stage's artifact with a completion log entry, then the
     normalized per-collection copy
   - dispatches the next stage, or marks the job COMPLETE after stage 4
3. Converts any failure inside a stage into the job's terminal ERROR state

There is no retry and no timeout: a failed stage ends the job, and a stage
hanging on a collaborator holds its job until the process goes away.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Optional, Sequence

from outreach.collaborators.base import Collaborators
from outreach.executor.artifact_store import COLLECTIONS, ArtifactStore
from outreach.executor.db import Database
from outreach.executor.dispatch import Dispatcher
from outreach.executor.errors import (
    JobTerminalError,
    ProfileNotFoundError,
    StageConflictError,
    ValidationError,
)
from outreach.executor.job_store import JobStore
from outreach.executor.profile_store import ProfileStore
from outreach.executor.schemas import (
    STATUS_ORDER,
    Job,
    JobStatus,
    JobSummary,
    LogEntry,
    StageResult,
    is_terminal,
    utc_now,
)
from outreach.executor.stages import PIPELINE, Stage, StageContext

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
        self,
        db: Database,
        collaborators: Collaborators,
        dispatcher: Dispatcher,
        stages: Sequence[Stage] = PIPELINE,
    ):
        self.db = db
        self.jobs = JobStore(db)
        self.profiles = ProfileStore(db)
        self.artifacts = ArtifactStore(db)
        self.collaborators = collaborators
        self.dispatcher = dispatcher
        self.stages = {stage.number: stage for stage in stages}
        self.last_stage = max(self.stages)

        # Jobs with a stage currently running in this process
        self._active_jobs: set[str] = set()
        self._active_jobs_lock = threading.Lock()

        dispatcher.bind(self.run_stage)

    # --- Deploy / query ---

    def deploy(
        self,
        profile_id: str,
        target_field: str,
        target_institution: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Create a job for a profile and start the pipeline. Returns the job_id."""
        profile_id = (profile_id or "").strip()
        target_field = (target_field or "").strip()
        if not profile_id or not target_field:
            raise ValidationError("Profile ID and target field are required")

        if self.profiles.get(profile_id) is None:
            raise ProfileNotFoundError(profile_id)

        institution = (target_institution or "").strip() or None
        job = Job(
            user_id=user_id,
            profile_id=profile_id,
            target_field=target_field,
            target_institution=institution,
            logs=[LogEntry(stage_number=0, message="Job created. Initializing agent workflow...")],
        )
        job_id = self.jobs.create(job)

        self._dispatch(1, job_id, {
            "profile_id": profile_id,
            "target_field": target_field,
            "target_institution": institution,
        })
        logger.info(f"Deployed job {job_id} for profile {profile_id}")
        return job_id

    def get_job(self, job_id: str) -> Job:
        return self.jobs.get(job_id)

    def list_jobs(self, user_id: Optional[str] = None, limit: int = 20) -> list[JobSummary]:
        return self.jobs.list_jobs(user_id=user_id, limit=limit)

    # --- Stage execution ---

    def run_stage(
        self,
        stage_number: int,
        job_id: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> StageResult:
        """Run one stage for one job.

        Raises before touching the job if the job is unknown or cannot
        accept this stage (JobNotFoundError, StageConflictError). Everything
        after that point is caught: the job goes to ERROR and a failed
        StageResult is returned.
        """
        stage = self.stages.get(stage_number)
        if stage is None:
            raise ValidationError(f"Unknown stage: {stage_number}")
        payload = dict(payload or {})

        with self._claim(job_id, stage):
            job = self.jobs.get(job_id)
            self._check_entry(job, stage)

            try:
                output = self._execute(stage, job, payload)
            except Exception as e:
                logger.error(f"Stage {stage.number} ({stage.name}) failed for job {job_id}: {e}", exc_info=True)
                self._record_failure(job_id, stage, e)
                return StageResult(
                    success=False, stage_number=stage.number, job_id=job_id, message=str(e)
                )

        if stage.number < self.last_stage:
            self._dispatch(stage.number + 1, job_id, output.next_payload)

        return StageResult(
            success=True, stage_number=stage.number, job_id=job_id, artifact=output.artifact
        )

    def _execute(self, stage: Stage, job: Job, payload: dict):
        job_id = job.job_id
        self.jobs.update(
            job_id,
            {"status": stage.status, "current_stage_index": stage.number},
            log=LogEntry(stage_number=stage.number, message=stage.start_message),
        )
        logger.info(f"[Job {job_id}] Stage {stage.number} ({stage.name}) started")

        # Re-read so the stage sees what its predecessors wrote
        job = self.jobs.get(job_id)
        ctx = StageContext(
            job=job,
            payload=payload,
            collaborators=self.collaborators,
            profiles=self.profiles,
            log=lambda message: self.jobs.append_log(job_id, stage.number, message),
        )
        output = stage.execute(ctx)

        fields = dict(output.fields)
        if stage.number == self.last_stage:
            fields["status"] = JobStatus.COMPLETE
            fields["completed_at"] = utc_now()
        self.jobs.update(
            job_id,
            fields,
            log=LogEntry(stage_number=stage.number, message=output.message),
        )

        # Normalized copies only once the job itself accepted the artifact
        for collection in COLLECTIONS:
            if collection in output.fields:
                value = output.fields[collection]
                self.artifacts.save(collection, job_id, value if isinstance(value, list) else [value])

        logger.info(f"[Job {job_id}] Stage {stage.number} ({stage.name}) done: {output.message}")
        return output

    def _check_entry(self, job: Job, stage: Stage) -> None:
        if is_terminal(job.status):
            raise StageConflictError(
                f"Job {job.job_id} is already {job.status.value}; "
                f"stage {stage.number} will not run"
            )
        if STATUS_ORDER[job.status] >= STATUS_ORDER[stage.status]:
            raise StageConflictError(
                f"Job {job.job_id} is at {job.status.value}; "
                f"stage {stage.number} has already started"
            )
        if STATUS_ORDER[job.status] != STATUS_ORDER[stage.status] - 1:
            raise StageConflictError(
                f"Job {job.job_id} is at {job.status.value}; "
                f"stage {stage.number} needs the previous stage to run first"
            )

    def _record_failure(self, job_id: str, stage: Stage, error: Exception) -> None:
        message = str(error) or type(error).__name__
        try:
            self.jobs.mark_failed(job_id, stage.number, message)
        except JobTerminalError:
            logger.warning(f"Job {job_id} already terminal; not recording failure: {message}")
        except Exception as e:
            logger.error(
                f"Could not record failure of stage {stage.number} for job {job_id} "
                f"({message}): {e}",
                exc_info=True,
            )

    def _dispatch(self, stage_number: int, job_id: str, payload: dict) -> None:
        try:
            self.dispatcher.dispatch(stage_number, job_id, payload)
        except Exception as e:
            logger.error(f"Could not dispatch stage {stage_number} for job {job_id}: {e}")

    @contextmanager
    def _claim(self, job_id: str, stage: Stage):
        """Guard against two stages of the same job running at once."""
        with self._active_jobs_lock:
            if job_id in self._active_jobs:
                logger.warning(
                    f"DUPLICATE STAGE BLOCKED: job {job_id} already has a stage running; "
                    f"rejecting stage {stage.number}"
                )
                raise StageConflictError(
                    f"Job {job_id} already has a stage running; stage {stage.number} rejected"
                )
            self._active_jobs.add(job_id)
        try:
            yield
        finally:
            with self._active_jobs_lock:
                self._active_jobs.discard(job_id)

    def shutdown(self) -> None:
        """Stop dispatching, release collaborators and the database pool."""
        self.dispatcher.shutdown()
        self.collaborators.close()
        self.db.close()
        logger.info("Orchestrator shut down")
