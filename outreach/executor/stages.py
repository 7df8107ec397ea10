"""The four pipeline stages.

Each stage only does its own unit of work: resolve inputs, call its
collaborator, validate and package the artifact. Status transitions,
persistence of the returned fields, failure handling and dispatch of the
next stage are done by the orchestrator, identically for every stage.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from outreach.collaborators.base import Collaborators
from outreach.executor.errors import (
    CollaboratorError,
    EmptyResultError,
    PreconditionError,
    ProfileNotFoundError,
)
from outreach.executor.profile_store import ProfileStore
from outreach.executor.schemas import (
    CVInsight,
    DraftContent,
    EmailDraft,
    Job,
    JobStatus,
    PersonalizedElements,
    Prospect,
    Publication,
    ResearchAnalysis,
    new_id,
)
from outreach.executor.themes import build_analysis

logger = logging.getLogger(__name__)

MAX_PUBLICATIONS_PER_PROSPECT = 3

ModelT = TypeVar("ModelT", bound=BaseModel)


def _coerce(value: Any, model: Type[ModelT], what: str) -> ModelT:
    """Accept a model instance or a plain dict from a collaborator."""
    if isinstance(value, model):
        return value
    if isinstance(value, dict):
        try:
            return model.model_validate(value)
        except PydanticValidationError as e:
            raise CollaboratorError(f"{what} does not match {model.__name__}: {e}") from e
    raise CollaboratorError(f"{what} returned {type(value).__name__}, expected {model.__name__}")


@dataclass
class StageContext:
    """What a stage gets to work with."""

    job: Job
    payload: dict[str, Any]
    collaborators: Collaborators
    profiles: ProfileStore
    log: Callable[[str], None]


@dataclass
class StageOutput:
    """What a stage hands back to the orchestrator.

    ``fields`` are persisted onto the job in one update together with
    ``message`` as the completion log entry. ``next_payload`` is forwarded
    to the next stage.
    """

    fields: dict[str, Any]
    message: str
    artifact: Any = None
    next_payload: dict[str, Any] = field(default_factory=dict)


class Stage:
    number: int = 0
    name: str = ""
    status: JobStatus = JobStatus.PENDING
    start_message: str = ""

    def execute(self, ctx: StageContext) -> StageOutput:
        raise NotImplementedError


class CVAnalysisStage(Stage):
    """Stage 1: extract skills, experience and strengths from the user's CV."""

    number = 1
    name = "cv_analysis"
    status = JobStatus.STAGE_1_ANALYZING_CV
    start_message = "Stage 1 initialized. Analyzing CV..."

    def execute(self, ctx: StageContext) -> StageOutput:
        profile_id = ctx.payload.get("profile_id") or ctx.job.profile_id
        target_field = ctx.payload.get("target_field") or ctx.job.target_field

        profile = ctx.profiles.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)

        insight = _coerce(
            ctx.collaborators.cv_analyzer.analyze_cv(profile.cv_text, target_field),
            CVInsight,
            "CV analysis",
        )
        insight = insight.model_copy(update={"profile_id": profile_id})

        return StageOutput(
            fields={"cv_insights": insight},
            message=(
                f"Extracted {len(insight.skills)} skills and "
                f"{len(insight.experience)} experiences from CV"
            ),
            artifact=insight,
            next_payload={
                "target_field": target_field,
                "target_institution": ctx.payload.get("target_institution")
                or ctx.job.target_institution,
            },
        )


class ProspectDiscoveryStage(Stage):
    """Stage 2: find researchers in the target field."""

    number = 2
    name = "prospect_discovery"
    status = JobStatus.STAGE_2_FINDING_PROSPECTS
    start_message = "Stage 2 searching for prospects in the target field..."

    def execute(self, ctx: StageContext) -> StageOutput:
        target_field = ctx.payload.get("target_field") or ctx.job.target_field
        institution = ctx.payload.get("target_institution") or ctx.job.target_institution

        found = ctx.collaborators.prospect_finder.find_prospects(target_field, institution)
        if not found:
            raise EmptyResultError(f"No prospects found for '{target_field}'")

        prospects = [
            _coerce(p, Prospect, "Prospect discovery").model_copy(
                update={"id": new_id("prospect"), "found_by": "stage_2"}
            )
            for p in found
        ]

        names = ", ".join(p.name for p in prospects)
        return StageOutput(
            fields={"prospects": prospects},
            message=f"Found {len(prospects)} prospects: {names}",
            artifact=prospects,
            next_payload={"prospects": [p.model_dump(mode="json") for p in prospects]},
        )


class PublicationAnalysisStage(Stage):
    """Stage 3: verify each prospect's publications and derive talking points.

    A prospect with no verified publications gets no analysis; the skip is
    recorded in the job log.
    """

    number = 3
    name = "publication_analysis"
    status = JobStatus.STAGE_3_VERIFYING_PUBLICATIONS
    start_message = "Stage 3 initialized. Finding and verifying publications..."

    def execute(self, ctx: StageContext) -> StageOutput:
        forwarded = ctx.payload.get("prospects")
        if forwarded is not None:
            prospects = [_coerce(p, Prospect, "Forwarded prospect") for p in forwarded]
        else:
            prospects = list(ctx.job.prospects)
        if not prospects:
            raise PreconditionError("Missing required data from previous stages: prospects")

        search = ctx.collaborators.publication_search
        analyses: list[ResearchAnalysis] = []
        for prospect in prospects:
            ctx.log(f"Searching publications for {prospect.name}...")
            found = search.search_publications(prospect.name)[:MAX_PUBLICATIONS_PER_PROSPECT]
            publications = [
                pub for pub in (_coerce(p, Publication, "Publication search") for p in found)
                if pub.verified and pub.title
            ]

            if not publications:
                ctx.log(f"No verified publications found for {prospect.name}; skipping")
                continue
            analyses.append(build_analysis(prospect, publications))

        verified = sum(1 for a in analyses for p in a.publications if p.verified)
        return StageOutput(
            fields={"research_analyses": analyses},
            message=f"Found {verified} verified publications for {len(analyses)} prospects",
            artifact=analyses,
        )


class EmailDraftingStage(Stage):
    """Stage 4: draft one email per prospect that has an analysis."""

    number = 4
    name = "email_drafting"
    status = JobStatus.STAGE_4_WRITING_EMAILS
    start_message = "Stage 4 reviewing analysis and drafting personalized emails..."

    def execute(self, ctx: StageContext) -> StageOutput:
        job = ctx.job
        missing = []
        if not job.prospects:
            missing.append("prospects")
        if job.cv_insights is None:
            missing.append("CV insights")
        if missing:
            raise PreconditionError(
                f"Missing required data from previous stages: {', '.join(missing)}"
            )

        profile = ctx.profiles.get(job.profile_id)
        bio = profile.bio if profile else ""
        insight = job.cv_insights

        analyses = {a.prospect_id: a for a in job.research_analyses}
        drafts: list[EmailDraft] = []
        for prospect in job.prospects:
            analysis = analyses.get(prospect.id)
            if analysis is None:
                continue

            ctx.log(f"Drafting email to {prospect.name}...")
            content = _coerce(
                ctx.collaborators.email_drafter.draft_email(prospect, analysis, insight, bio),
                DraftContent,
                "Email drafting",
            )
            if not content.subject.strip() or not content.body.strip():
                raise CollaboratorError(
                    f"Email draft for {prospect.name} is missing a subject or body"
                )

            drafts.append(EmailDraft(
                job_id=job.job_id,
                prospect_name=prospect.name,
                subject=content.subject,
                body=content.body,
                personalized_elements=PersonalizedElements(
                    publication_mention=(
                        analysis.publications[0].title
                        if analysis.publications else "your recent work"
                    ),
                    cv_match=(
                        insight.relevant_strengths[0]
                        if insight.relevant_strengths else "background"
                    ),
                    shared_interest=analysis.key_themes[0] if analysis.key_themes else "research",
                ),
            ))

        return StageOutput(
            fields={"email_drafts": drafts},
            message=f"Successfully drafted {len(drafts)} personalized emails. Job complete!",
            artifact=drafts,
        )


PIPELINE: tuple[Stage, ...] = (
    CVAnalysisStage(),
    ProspectDiscoveryStage(),
    PublicationAnalysisStage(),
    EmailDraftingStage(),
)
