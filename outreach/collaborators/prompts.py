"""Prompt builders for the LLM-backed collaborators."""

import json
from typing import Optional

from outreach.executor.schemas import CVInsight, Prospect, ResearchAnalysis

SYSTEM_PROMPT = (
    "You help students prepare academic outreach. "
    "Always answer with JSON only: no prose, no markdown fences."
)

MAX_CV_CHARS = 10_000


def build_cv_prompt(cv_text: str, research_field: str) -> str:
    lines = [
        f"Analyze this CV for someone interested in {research_field} research.",
        "Extract skills, experience, achievements and relevant strengths for academic outreach.",
        "",
        "Return a JSON object with exactly these keys:",
        '  "skills": [string],',
        '  "experience": [{"role": string, "organization": string, "highlights": [string]}],',
        '  "achievements": [string],',
        '  "relevant_strengths": [string]',
        "",
        "CV:",
        cv_text[:MAX_CV_CHARS],
    ]
    return "\n".join(lines)


def build_prospect_prompt(research_field: str, institution: Optional[str] = None) -> str:
    where = f" at {institution}" if institution else ""
    lines = [
        f'Find 2-3 prominent professors or researchers in the field of "{research_field}"{where}.',
        "",
        'Return a JSON object {"prospects": [...]} where each prospect has:',
        '  "name": string,',
        '  "title": string,',
        '  "institution": string,',
        '  "research_areas": [string]',
    ]
    return "\n".join(lines)


def build_email_prompt(
    prospect: Prospect,
    analysis: ResearchAnalysis,
    insight: CVInsight,
    bio: str,
) -> str:
    research = analysis.model_dump(mode="json", exclude={"prospect_id", "analyzed_by"})
    cv = insight.model_dump(mode="json", exclude={"profile_id", "analyzed_by"})
    lines = [
        f"Write a personalized academic outreach email to {prospect.name} "
        f"({prospect.title} at {prospect.institution}).",
        "",
        "Context:",
        f"- Their research: {json.dumps(research, ensure_ascii=False)}",
        f"- Student's CV insights: {json.dumps(cv, ensure_ascii=False)}",
        f"- Student's bio: {bio}",
        "",
        "Write a professional, genuine email that:",
        "1. References specific publications",
        "2. Connects the student's experience to the professor's work",
        "3. Shows genuine interest",
        "4. Requests a conversation",
        "",
        'Return a JSON object: {"subject": string, "body": string}',
    ]
    return "\n".join(lines)
