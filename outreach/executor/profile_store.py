"""Store and retrieve user profiles (bio, interests and CV text)."""

import logging
from typing import Optional

from outreach.executor.db import Database
from outreach.executor.errors import ValidationError
from outreach.executor.schemas import Profile

logger = logging.getLogger(__name__)

MIN_CV_CHARS = 100
CV_KEYWORDS = (
    "experience",
    "education",
    "skills",
    "university",
    "degree",
    "work",
    "project",
)


def validate_cv_text(text: str) -> None:
    """Reject text that is too short or does not read like a CV."""
    if not text or len(text.strip()) < MIN_CV_CHARS:
        raise ValidationError("CV text is too short. Please upload a complete CV document.")

    lowered = text.lower()
    found = [kw for kw in CV_KEYWORDS if kw in lowered]
    if len(found) < 2:
        raise ValidationError("Document does not appear to be a CV. Please upload your resume/CV.")


class ProfileStore:
    def __init__(self, db: Database):
        self.db = db

    def create(self, profile: Profile) -> str:
        self.db.execute(
            """INSERT INTO profiles
               (profile_id, user_id, bio, research_interests, cv_text,
                cv_file_name, uploaded_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)""",
            (
                profile.profile_id, profile.user_id, profile.bio,
                profile.research_interests, profile.cv_text,
                profile.cv_file_name, profile.uploaded_at,
            ),
        )
        logger.info(
            f"Stored profile {profile.profile_id}: {profile.cv_file_name} "
            f"({len(profile.cv_text)} chars)"
        )
        return profile.profile_id

    def get(self, profile_id: str) -> Optional[Profile]:
        row = self.db.execute(
            "SELECT * FROM profiles WHERE profile_id = %s",
            (profile_id,),
            fetch="one",
        )
        if row is None:
            return None
        return Profile.model_validate(row)

    def latest_for_user(self, user_id: str) -> Optional[Profile]:
        """The user's most recently uploaded profile, if any."""
        row = self.db.execute(
            """SELECT * FROM profiles WHERE user_id = %s
               ORDER BY uploaded_at DESC LIMIT 1""",
            (user_id,),
            fetch="one",
        )
        if row is None:
            return None
        return Profile.model_validate(row)
