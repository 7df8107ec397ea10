"""Job, artifact and API schemas.

The job document embeds denormalized copies of every stage artifact so a
poller can render full progress from one read.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class JobStatus(str, Enum):
    """Job lifecycle states, in pipeline order."""
    PENDING = "PENDING"
    STAGE_1_ANALYZING_CV = "STAGE_1_ANALYZING_CV"
    STAGE_2_FINDING_PROSPECTS = "STAGE_2_FINDING_PROSPECTS"
    STAGE_3_VERIFYING_PUBLICATIONS = "STAGE_3_VERIFYING_PUBLICATIONS"
    STAGE_4_WRITING_EMAILS = "STAGE_4_WRITING_EMAILS"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


# Position along the forward path. ERROR sits outside it.
STATUS_ORDER: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.STAGE_1_ANALYZING_CV: 1,
    JobStatus.STAGE_2_FINDING_PROSPECTS: 2,
    JobStatus.STAGE_3_VERIFYING_PUBLICATIONS: 3,
    JobStatus.STAGE_4_WRITING_EMAILS: 4,
    JobStatus.COMPLETE: 5,
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.ERROR})


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """Whether a job in ``current`` may move to ``new``.

    Jobs move one step at a time along the forward path, or to ERROR.
    Staying in place is allowed (artifact writes, log appends) for
    non-terminal jobs.
    """
    if is_terminal(current):
        return False
    if new == JobStatus.ERROR:
        return True
    return STATUS_ORDER[new] - STATUS_ORDER[current] in (0, 1)


# --- Stage artifacts ---


class Prospect(BaseModel):
    """A candidate contact discovered for outreach."""

    id: str = ""
    name: str
    title: str = ""
    institution: str = ""
    email: Optional[str] = None
    profile_url: Optional[str] = None
    research_areas: list[str] = Field(default_factory=list)
    found_by: str = "stage_2"


class Publication(BaseModel):
    title: str
    year: Optional[int] = None
    summary: str = ""
    relevance: str = ""
    url: Optional[str] = None
    verified: bool = False
    verified_url: Optional[str] = None


class ResearchAnalysis(BaseModel):
    prospect_id: str
    prospect_name: str
    publications: list[Publication] = Field(default_factory=list)
    key_themes: list[str] = Field(default_factory=list)
    talking_points: list[str] = Field(default_factory=list)
    analyzed_by: str = "stage_3"


class Experience(BaseModel):
    role: str = ""
    organization: str = ""
    highlights: list[str] = Field(default_factory=list)


class CVInsight(BaseModel):
    profile_id: str = ""
    skills: list[str] = Field(default_factory=list)
    experience: list[Experience] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)
    relevant_strengths: list[str] = Field(default_factory=list)
    analyzed_by: str = "stage_1"


class PersonalizedElements(BaseModel):
    """Which publication, CV strength and theme an email leaned on."""

    publication_mention: str
    cv_match: str
    shared_interest: str


class DraftContent(BaseModel):
    subject: str
    body: str


class EmailDraft(BaseModel):
    job_id: str
    prospect_name: str
    subject: str
    body: str
    personalized_elements: PersonalizedElements
    generated_by: str = "stage_4"
    created_at: str = Field(default_factory=utc_now)


class Profile(BaseModel):
    profile_id: str = Field(default_factory=lambda: new_id("profile"))
    user_id: Optional[str] = None
    bio: str
    research_interests: str
    cv_text: str
    cv_file_name: str = ""
    uploaded_at: str = Field(default_factory=utc_now)


# --- Job document ---


class LogEntry(BaseModel):
    stage_number: int
    message: str
    timestamp: str = Field(default_factory=utc_now)


class Job(BaseModel):
    """Full job state: one end-to-end pipeline run."""

    job_id: str = Field(default_factory=lambda: new_id("job"))
    user_id: Optional[str] = None
    profile_id: str
    target_field: str
    target_institution: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    current_stage_index: int = 0

    prospects: list[Prospect] = Field(default_factory=list)
    research_analyses: list[ResearchAnalysis] = Field(default_factory=list)
    cv_insights: Optional[CVInsight] = None
    email_drafts: list[EmailDraft] = Field(default_factory=list)

    logs: list[LogEntry] = Field(default_factory=list)
    error: Optional[str] = None

    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    completed_at: Optional[str] = None


class JobSummary(BaseModel):
    """Lightweight job listing entry."""

    job_id: str
    profile_id: str
    target_field: str
    status: JobStatus
    current_stage_index: int
    prospect_count: int = 0
    draft_count: int = 0
    error: Optional[str] = None
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None


# --- Stage invocation ---


class StageResult(BaseModel):
    """Outcome of one stage run, returned to whoever invoked it."""

    success: bool
    stage_number: int
    job_id: str
    artifact: Any = None
    message: Optional[str] = None


# --- API requests/responses ---


class DeployRequest(BaseModel):
    profile_id: str
    target_field: str
    target_institution: Optional[str] = None


class DeployResponse(BaseModel):
    success: bool = True
    job_id: str
    message: str = "Agents deployed successfully"


class StageInvokeRequest(BaseModel):
    """Body of an internal stage invocation.

    ``payload`` carries inputs forwarded by the previous stage so the
    next stage does not have to re-read them from the store.
    """

    job_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ProfileResponse(BaseModel):
    success: bool = True
    profile_id: str
    message: str = "CV uploaded and profile created successfully"


class JobStatusResponse(BaseModel):
    success: bool = True
    job: Job
