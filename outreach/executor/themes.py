"""Lightweight theme extraction from publication titles.

No LLM involved: themes are the most frequent long words across a
prospect's verified titles, merged with the areas the prospect declares.
"""

from typing import Iterable, Sequence

from outreach.executor.schemas import Prospect, Publication, ResearchAnalysis

MIN_WORD_LENGTH = 6
MAX_TITLE_THEMES = 5
MAX_DECLARED_AREAS = 2
MAX_THEMES = 5
FALLBACK_THEMES = ["Research", "Analysis", "Study"]


def rank_title_keywords(titles: Iterable[str], limit: int = MAX_TITLE_THEMES) -> list[str]:
    """Most frequent words (length >= MIN_WORD_LENGTH) across ``titles``.

    Ties keep first-seen order. Words come back with the first letter
    capitalised.
    """
    counts: dict[str, int] = {}
    for title in titles:
        for word in title.lower().split():
            if len(word) < MIN_WORD_LENGTH:
                continue
            counts[word] = counts.get(word, 0) + 1

    # dicts keep insertion order and sorted() is stable, so ties stay first-seen
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [word[0].upper() + word[1:] for word, _ in ranked[:limit]]


def merge_themes(title_themes: Sequence[str], research_areas: Sequence[str]) -> list[str]:
    merged: list[str] = []
    for theme in list(title_themes) + list(research_areas[:MAX_DECLARED_AREAS]):
        if theme and theme not in merged:
            merged.append(theme)
    merged = merged[:MAX_THEMES]
    return merged or list(FALLBACK_THEMES)


def talking_point(publication: Publication) -> str:
    return f'Their work on "{publication.title}" is relevant to your interests'


def build_analysis(prospect: Prospect, publications: Sequence[Publication]) -> ResearchAnalysis:
    """Assemble a ResearchAnalysis from a prospect's verified publications."""
    title_themes = rank_title_keywords(p.title for p in publications)
    return ResearchAnalysis(
        prospect_id=prospect.id,
        prospect_name=prospect.name,
        publications=list(publications),
        key_themes=merge_themes(title_themes, prospect.research_areas),
        talking_points=[talking_point(p) for p in publications],
    )
