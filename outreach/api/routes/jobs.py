"""Job API routes: deploy and status polling.

Endpoints:
    POST /v1/jobs/deploy        Create a job and start the pipeline
    GET  /v1/jobs               The caller's latest profile and jobs, most recent first
    GET  /v1/jobs/{job_id}      Full job document (primary polling endpoint)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from outreach.api.dependencies import get_orchestrator
from outreach.executor.errors import OutreachError
from outreach.executor.orchestrator import Orchestrator
from outreach.executor.schemas import DeployRequest, DeployResponse, JobStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/deploy", response_model=DeployResponse)
def deploy_job(
    request: DeployRequest,
    x_user_id: Optional[str] = Header(default=None),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Create a job in PENDING and dispatch stage 1.

    Returns immediately; poll GET /v1/jobs/{job_id} for progress.
    """
    try:
        job_id = orchestrator.deploy(
            profile_id=request.profile_id,
            target_field=request.target_field,
            target_institution=request.target_institution,
            user_id=x_user_id,
        )
    except OutreachError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return DeployResponse(job_id=job_id)


@router.get("")
def list_jobs(
    limit: int = Query(20, ge=1, le=100),
    x_user_id: Optional[str] = Header(default=None),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """List jobs, most recent first.

    With ``X-User-Id`` the caller's latest profile is included so a client
    can offer to deploy again without re-uploading the CV.
    """
    jobs = orchestrator.list_jobs(user_id=x_user_id, limit=limit)
    profile = orchestrator.profiles.latest_for_user(x_user_id) if x_user_id else None
    return {
        "success": True,
        "profile_id": profile.profile_id if profile else None,
        "cv_file_name": profile.cv_file_name if profile else None,
        "jobs": jobs,
        "count": len(jobs),
    }


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job_status(
    job_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Get the full job document.

    Clients should stop polling once status is COMPLETE or ERROR.
    """
    try:
        job = orchestrator.get_job(job_id)
    except OutreachError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return JobStatusResponse(job=job)
