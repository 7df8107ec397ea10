"""Durable storage for job documents and their append-only logs.

A job row holds the scalar state plus denormalized JSON copies of every
stage artifact. Log entries live in ``job_logs`` and are only ever
INSERTed, so two racing updates can never overwrite each other's entries.

Every ``update`` runs in one transaction:
1. Read the current status and artifact columns
2. Validate the status transition, terminal state and write-once artifacts
3. UPDATE: a status change compare-and-sets on the status that was read;
   anything else only requires the job to still be non-terminal
4. INSERT the log entry, if any
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel

from outreach.executor.db import Database, json_dumps, json_loads
from outreach.executor.errors import (
    ArtifactAlreadyWrittenError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    JobNotFoundError,
    JobTerminalError,
)
from outreach.executor.schemas import (
    Job,
    JobStatus,
    JobSummary,
    LogEntry,
    can_transition,
    is_terminal,
    utc_now,
)

logger = logging.getLogger(__name__)

# Columns a caller may set through update()
UPDATABLE_FIELDS = frozenset({
    "status",
    "current_stage_index",
    "prospects",
    "research_analyses",
    "cv_insights",
    "email_drafts",
    "error",
    "completed_at",
})

# Artifact columns: stored as JSON, written by exactly one stage
ARTIFACT_FIELDS = frozenset({
    "prospects",
    "research_analyses",
    "cv_insights",
    "email_drafts",
})

TERMINAL_VALUES = (JobStatus.COMPLETE.value, JobStatus.ERROR.value)


def _to_storable(key: str, value: Any) -> Any:
    """Convert a field value into what the column stores."""
    if isinstance(value, JobStatus):
        return value.value
    if key not in ARTIFACT_FIELDS:
        return value
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return json_dumps(value.model_dump(mode="json"))
    if isinstance(value, list):
        return json_dumps([
            v.model_dump(mode="json") if isinstance(v, BaseModel) else v
            for v in value
        ])
    return json_dumps(value)


def _is_populated(value: Any) -> bool:
    return value is not None and value != [] and value != {}


class JobStore:
    """Job documents keyed by job_id."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, job: Job) -> str:
        """Insert a new job together with any initial log entries."""
        with self.db.transaction() as tx:
            tx.execute(
                """INSERT INTO jobs
                   (job_id, user_id, profile_id, target_field, target_institution,
                    status, current_stage_index, prospects, research_analyses,
                    cv_insights, email_drafts, error, created_at, updated_at,
                    completed_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                (
                    job.job_id, job.user_id, job.profile_id, job.target_field,
                    job.target_institution, job.status.value, job.current_stage_index,
                    _to_storable("prospects", job.prospects),
                    _to_storable("research_analyses", job.research_analyses),
                    _to_storable("cv_insights", job.cv_insights),
                    _to_storable("email_drafts", job.email_drafts),
                    job.error, job.created_at, job.updated_at, job.completed_at,
                ),
            )
            for entry in job.logs:
                self._insert_log(tx, job.job_id, entry)

        logger.info(f"Created job {job.job_id} for profile {job.profile_id} ({job.target_field})")
        return job.job_id

    def get(self, job_id: str) -> Job:
        """Load the full job document. Raises JobNotFoundError."""
        with self.db.transaction() as tx:
            row = tx.execute(
                "SELECT * FROM jobs WHERE job_id = %s", (job_id,), fetch="one"
            )
            if row is None:
                raise JobNotFoundError(job_id)
            log_rows = tx.execute(
                """SELECT stage_number, message, timestamp FROM job_logs
                   WHERE job_id = %s ORDER BY id""",
                (job_id,),
                fetch="all",
            )

        row["prospects"] = json_loads(row.get("prospects"), default=[])
        row["research_analyses"] = json_loads(row.get("research_analyses"), default=[])
        row["cv_insights"] = json_loads(row.get("cv_insights"), default=None)
        row["email_drafts"] = json_loads(row.get("email_drafts"), default=[])
        row["logs"] = log_rows
        return Job.model_validate(row)

    def exists(self, job_id: str) -> bool:
        row = self.db.execute(
            "SELECT job_id FROM jobs WHERE job_id = %s", (job_id,), fetch="one"
        )
        return row is not None

    def update(
        self,
        job_id: str,
        fields: Optional[dict[str, Any]] = None,
        log: Optional[LogEntry] = None,
    ) -> None:
        """Merge ``fields`` into the job and append ``log`` atomically.

        Raises:
            ValueError: unknown field name
            JobNotFoundError: no such job
            JobTerminalError: job already COMPLETE or ERROR
            InvalidTransitionError: status would move backwards or skip a step
            ArtifactAlreadyWrittenError: artifact column already populated
            ConcurrentUpdateError: status changed between read and write
        """
        fields = dict(fields or {})
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update job fields: {', '.join(sorted(unknown))}")

        with self.db.transaction() as tx:
            row = tx.execute(
                """SELECT status, prospects, research_analyses, cv_insights, email_drafts
                   FROM jobs WHERE job_id = %s""",
                (job_id,),
                fetch="one",
            )
            if row is None:
                raise JobNotFoundError(job_id)

            current = JobStatus(row["status"])
            if is_terminal(current):
                raise JobTerminalError(
                    f"Job {job_id} is {current.value}; no further updates allowed"
                )

            new_status = JobStatus(fields["status"]) if "status" in fields else current
            if not can_transition(current, new_status):
                raise InvalidTransitionError(
                    f"Job {job_id}: cannot move from {current.value} to {new_status.value}"
                )

            for key in ARTIFACT_FIELDS & fields.keys():
                if _is_populated(json_loads(row.get(key))):
                    raise ArtifactAlreadyWrittenError(
                        f"Job {job_id}: {key} has already been written"
                    )

            assignments = []
            params: list[Any] = []
            for key, value in fields.items():
                assignments.append(f"{key} = %s")
                params.append(_to_storable(key, value))
            assignments.append("updated_at = %s")
            params.append(utc_now())

            if "status" in fields:
                # Status changes compare-and-set on the status that was read
                updated = tx.execute(
                    f"UPDATE jobs SET {', '.join(assignments)} "
                    f"WHERE job_id = %s AND status = %s",
                    (*params, job_id, current.value),
                    fetch="rowcount",
                )
                if updated == 0:
                    raise ConcurrentUpdateError(
                        f"Job {job_id} changed status while updating from {current.value}"
                    )
            else:
                # Log appends and artifact writes only need a live job
                updated = tx.execute(
                    f"UPDATE jobs SET {', '.join(assignments)} "
                    f"WHERE job_id = %s AND status NOT IN (%s, %s)",
                    (*params, job_id, *TERMINAL_VALUES),
                    fetch="rowcount",
                )
                if updated == 0:
                    raise JobTerminalError(
                        f"Job {job_id} became terminal; no further updates allowed"
                    )

            if log is not None:
                self._insert_log(tx, job_id, log)

        if "status" in fields and new_status != current:
            logger.info(f"Job {job_id} status → {new_status.value}")

    def append_log(self, job_id: str, stage_number: int, message: str) -> None:
        self.update(job_id, log=LogEntry(stage_number=stage_number, message=message))

    def mark_failed(self, job_id: str, stage_number: int, message: str) -> None:
        """Move the job to ERROR with ``message`` as its error."""
        self.update(
            job_id,
            {"status": JobStatus.ERROR, "error": message},
            log=LogEntry(stage_number=stage_number, message=f"Stage {stage_number} failed: {message}"),
        )

    def list_jobs(self, user_id: Optional[str] = None, limit: int = 20) -> list[JobSummary]:
        """Most recent jobs first, optionally for one user."""
        columns = """job_id, profile_id, target_field, status, current_stage_index,
                     prospects, email_drafts, error, created_at, updated_at, completed_at"""
        if user_id:
            rows = self.db.execute(
                f"""SELECT {columns} FROM jobs WHERE user_id = %s
                    ORDER BY created_at DESC LIMIT %s""",
                (user_id, limit),
                fetch="all",
            )
        else:
            rows = self.db.execute(
                f"""SELECT {columns} FROM jobs
                    ORDER BY created_at DESC LIMIT %s""",
                (limit,),
                fetch="all",
            )

        summaries = []
        for row in rows:
            prospects = json_loads(row.pop("prospects"), default=[])
            drafts = json_loads(row.pop("email_drafts"), default=[])
            summaries.append(JobSummary(
                **row,
                prospect_count=len(prospects),
                draft_count=len(drafts),
            ))
        return summaries

    @staticmethod
    def _insert_log(tx, job_id: str, entry: LogEntry) -> None:
        tx.execute(
            """INSERT INTO job_logs (job_id, stage_number, message, timestamp)
               VALUES (%s, %s, %s, %s)""",
            (job_id, entry.stage_number, entry.message, entry.timestamp),
        )
