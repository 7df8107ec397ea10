"""Shared fixtures: temp SQLite database, fake collaborators, orchestrator."""

import pytest

from outreach.executor.db import Database
from outreach.executor.dispatch import InlineDispatcher
from outreach.executor.job_store import JobStore
from outreach.executor.orchestrator import Orchestrator
from outreach.executor.schemas import STATUS_ORDER, Job, JobStatus, LogEntry, Profile
from tests.fixtures.collaborators import CV_TEXT, make_collaborators


@pytest.fixture
def db(tmp_path):
    database = Database(sqlite_path=tmp_path / "outreach-test.db")
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def job_store(db) -> JobStore:
    return JobStore(db)


@pytest.fixture
def collaborators():
    return make_collaborators()


@pytest.fixture
def orchestrator(db, collaborators) -> Orchestrator:
    """Orchestrator that runs every dispatched stage inline."""
    return Orchestrator(db=db, collaborators=collaborators, dispatcher=InlineDispatcher())


@pytest.fixture
def profile_id(orchestrator) -> str:
    return orchestrator.profiles.create(Profile(
        user_id="user-1",
        bio="I am a neuroscience undergraduate looking for research experience.",
        research_interests="Working memory, cortical dynamics",
        cv_text=CV_TEXT,
        cv_file_name="cv.txt",
    ))


def make_job(profile_id: str = "profile-x", target_field: str = "Neuroscience", **kwargs) -> Job:
    return Job(
        profile_id=profile_id,
        target_field=target_field,
        logs=[LogEntry(stage_number=0, message="Job created. Initializing agent workflow...")],
        **kwargs,
    )


def advance(job_store: JobStore, job_id: str, target: JobStatus) -> None:
    """Walk a job forward one status at a time up to ``target``."""
    current = STATUS_ORDER[job_store.get(job_id).status]
    for status, order in STATUS_ORDER.items():
        if current < order <= STATUS_ORDER[target]:
            job_store.update(job_id, {"status": status})
