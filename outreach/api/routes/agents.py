"""Internal stage invocation routes.

Called by the HttpDispatcher, not by end users.

Endpoints:
    POST /v1/agents/stage/{stage_number}                 Run one stage for a job
    GET  /v1/agents/dispatch-failures                    Failed hand-offs
    POST /v1/agents/dispatch-failures/{index}/retry      Re-dispatch one of them
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Path
from fastapi.responses import JSONResponse

from outreach.api.dependencies import get_orchestrator
from outreach.executor.errors import OutreachError
from outreach.executor.orchestrator import Orchestrator
from outreach.executor.schemas import StageInvokeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


@router.post("/stage/{stage_number}")
def invoke_stage(
    request: StageInvokeRequest,
    stage_number: int = Path(..., ge=1, le=4),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Run a stage synchronously and return its artifact.

    ``payload`` carries what the previous stage forwarded (e.g. the
    prospect list for stage 3), so the stage need not re-read the store.
    """
    try:
        result = orchestrator.run_stage(stage_number, request.job_id, request.payload)
    except OutreachError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(mode="json"))
    return result.model_dump(mode="json")


@router.get("/dispatch-failures")
def list_dispatch_failures(orchestrator: Orchestrator = Depends(get_orchestrator)):
    failures = orchestrator.dispatcher.failures()
    return {
        "failures": [asdict(f) for f in failures],
        "count": len(failures),
    }


@router.post("/dispatch-failures/{index}/retry")
def retry_dispatch_failure(
    index: int,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    failures = orchestrator.dispatcher.failures()
    if index < 0 or index >= len(failures):
        raise HTTPException(status_code=404, detail=f"No dispatch failure at index {index}")
    failure = failures[index]
    orchestrator.dispatcher.redispatch(failure)
    return {"job_id": failure.job_id, "stage_number": failure.stage_number, "redispatched": True}
