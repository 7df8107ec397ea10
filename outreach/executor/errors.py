"""Exception hierarchy for the orchestrator.

Store and entry-guard errors surface to the HTTP layer with a status code.
``StageError`` subclasses are raised inside a stage and end up as the job's
ERROR message.
"""


class OutreachError(Exception):
    """Base class for all orchestrator errors."""

    status_code = 500


class ValidationError(OutreachError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(OutreachError):
    status_code = 404


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class ProfileNotFoundError(NotFoundError):
    def __init__(self, profile_id: str):
        super().__init__(f"Profile not found: {profile_id}")
        self.profile_id = profile_id


class StageConflictError(OutreachError):
    """A stage was invoked for a job that cannot accept it right now."""

    status_code = 409


class InvalidTransitionError(OutreachError):
    """A status change would move the job backwards."""

    status_code = 409


class JobTerminalError(OutreachError):
    """The job is COMPLETE or ERROR and can no longer be mutated."""

    status_code = 409


class ArtifactAlreadyWrittenError(OutreachError):
    """A write-once artifact (prospects, analyses, insights, drafts) is already set."""

    status_code = 409


class ConcurrentUpdateError(OutreachError):
    """The job status changed between read and write."""

    status_code = 409


# --- Failures raised inside a stage ---


class StageError(OutreachError):
    """A stage could not produce its artifact."""


class EmptyResultError(StageError):
    """A collaborator returned nothing where at least one result is required."""


class PreconditionError(StageError):
    """Upstream artifacts a stage depends on are missing."""


class CollaboratorError(StageError):
    """A collaborator returned something that fails the shape contract."""
