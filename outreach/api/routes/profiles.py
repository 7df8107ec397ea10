"""Profile API routes.

Endpoints:
    POST /v1/profiles           Upload a CV with bio and research interests
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile

from outreach.api.dependencies import get_orchestrator
from outreach.executor.errors import ValidationError
from outreach.executor.orchestrator import Orchestrator
from outreach.executor.profile_store import validate_cv_text
from outreach.executor.schemas import Profile, ProfileResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiles", tags=["profiles"])

TEXT_CONTENT_TYPES = ("text/plain",)
TEXT_EXTENSIONS = (".txt",)


@router.post("", response_model=ProfileResponse)
def create_profile(
    cv: UploadFile = File(...),
    bio: str = Form(...),
    research_interests: str = Form(...),
    x_user_id: Optional[str] = Header(default=None),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Create a profile from an uploaded plain-text CV."""
    if not bio.strip() or not research_interests.strip():
        raise HTTPException(status_code=400, detail="Bio and research interests are required")

    filename = cv.filename or ""
    if not (
        (cv.content_type or "").startswith(TEXT_CONTENT_TYPES)
        or filename.lower().endswith(TEXT_EXTENSIONS)
    ):
        raise HTTPException(
            status_code=415,
            detail="Unsupported file type. Please upload the CV as plain text (.txt).",
        )

    try:
        cv_text = cv.file.read().decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CV file is not valid UTF-8 text")

    try:
        validate_cv_text(cv_text)
    except ValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    profile = Profile(
        user_id=x_user_id,
        bio=bio.strip(),
        research_interests=research_interests.strip(),
        cv_text=cv_text,
        cv_file_name=filename,
    )
    profile_id = orchestrator.profiles.create(profile)
    return ProfileResponse(profile_id=profile_id)
