"""Protocols for the external collaborators a stage depends on.

Stages only see these interfaces. The default implementations call
Anthropic (CV analysis, prospect discovery, email drafting) and Semantic
Scholar (publication search); tests substitute fakes.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from outreach.executor.schemas import (
    CVInsight,
    DraftContent,
    Prospect,
    Publication,
    ResearchAnalysis,
)


@runtime_checkable
class CVAnalyzer(Protocol):
    def analyze_cv(self, cv_text: str, research_field: str) -> CVInsight: ...


@runtime_checkable
class ProspectFinder(Protocol):
    def find_prospects(
        self, research_field: str, institution: Optional[str] = None
    ) -> list[Prospect]: ...


@runtime_checkable
class PublicationSearch(Protocol):
    def search_publications(self, author_name: str) -> list[Publication]: ...


@runtime_checkable
class EmailDrafter(Protocol):
    def draft_email(
        self,
        prospect: Prospect,
        analysis: ResearchAnalysis,
        insight: CVInsight,
        bio: str,
    ) -> DraftContent: ...


@dataclass
class Collaborators:
    """Everything the four stages call out to."""

    cv_analyzer: CVAnalyzer
    prospect_finder: ProspectFinder
    publication_search: PublicationSearch
    email_drafter: EmailDrafter

    def close(self) -> None:
        for collaborator in (
            self.cv_analyzer,
            self.prospect_finder,
            self.publication_search,
            self.email_drafter,
        ):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()
