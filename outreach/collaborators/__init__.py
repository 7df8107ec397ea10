"""External collaborators invoked by the pipeline stages.

Provides the collaborator protocols plus the default adapters:
- Anthropic-backed CV analysis, prospect discovery and email drafting
- Semantic Scholar publication search
"""

from outreach.collaborators.base import (
    Collaborators,
    CVAnalyzer,
    EmailDrafter,
    ProspectFinder,
    PublicationSearch,
)
from outreach.collaborators.llm_agents import (
    LLMCVAnalyzer,
    LLMEmailDrafter,
    LLMProspectFinder,
)
from outreach.collaborators.llm_client import LLMClient
from outreach.collaborators.semantic_scholar import SemanticScholarClient
from outreach.config import Settings


def build_default_collaborators(settings: Settings) -> Collaborators:
    """Wire the production collaborators from settings."""
    llm = LLMClient(
        api_key=settings.anthropic_api_key,
        model=settings.llm_model,
        fallback_model=settings.llm_fallback_model,
    )
    return Collaborators(
        cv_analyzer=LLMCVAnalyzer(llm),
        prospect_finder=LLMProspectFinder(llm),
        publication_search=SemanticScholarClient(
            base_url=settings.semantic_scholar_url,
            api_key=settings.semantic_scholar_api_key,
        ),
        email_drafter=LLMEmailDrafter(llm),
    )


__all__ = [
    "Collaborators",
    "CVAnalyzer",
    "EmailDrafter",
    "ProspectFinder",
    "PublicationSearch",
    "LLMClient",
    "LLMCVAnalyzer",
    "LLMEmailDrafter",
    "LLMProspectFinder",
    "SemanticScholarClient",
    "build_default_collaborators",
]
