"""LLM-backed collaborators: CV analysis, prospect discovery, email drafting."""

import logging
from typing import Optional

from outreach.collaborators.llm_client import LLMClient
from outreach.collaborators.parsing import parse_array, parse_object, validate_items
from outreach.collaborators.prompts import (
    SYSTEM_PROMPT,
    build_cv_prompt,
    build_email_prompt,
    build_prospect_prompt,
)
from outreach.executor.schemas import (
    CVInsight,
    DraftContent,
    Prospect,
    ResearchAnalysis,
)

logger = logging.getLogger(__name__)


class LLMCVAnalyzer:
    def __init__(self, client: LLMClient):
        self.client = client

    def analyze_cv(self, cv_text: str, research_field: str) -> CVInsight:
        response = self.client.complete(
            build_cv_prompt(cv_text, research_field),
            system_prompt=SYSTEM_PROMPT,
            temperature=0.5,
        )
        insight = parse_object(response.text, CVInsight)
        logger.info(
            f"CV analysis via {response.model_used}: {len(insight.skills)} skills, "
            f"{len(insight.experience)} experiences"
        )
        return insight

    def close(self) -> None:
        self.client.close()


class LLMProspectFinder:
    def __init__(self, client: LLMClient):
        self.client = client

    def find_prospects(
        self, research_field: str, institution: Optional[str] = None
    ) -> list[Prospect]:
        response = self.client.complete(
            build_prospect_prompt(research_field, institution),
            system_prompt=SYSTEM_PROMPT,
        )
        result = parse_array(response.text)
        prospects = validate_items(result.items, Prospect)
        logger.info(
            f"Prospect discovery via {response.model_used} ({result.strategy}): "
            f"{len(prospects)} prospects for '{research_field}'"
        )
        return prospects

    def close(self) -> None:
        self.client.close()


class LLMEmailDrafter:
    def __init__(self, client: LLMClient):
        self.client = client

    def draft_email(
        self,
        prospect: Prospect,
        analysis: ResearchAnalysis,
        insight: CVInsight,
        bio: str,
    ) -> DraftContent:
        response = self.client.complete(
            build_email_prompt(prospect, analysis, insight, bio),
            system_prompt=SYSTEM_PROMPT,
        )
        return parse_object(response.text, DraftContent)

    def close(self) -> None:
        self.client.close()
