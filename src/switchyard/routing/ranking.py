"""Optional ranking pass over candidate responses.

Scores candidates by source confidence, entity overlap with the query,
content length and intent alignment. Used to order supplementary evidence
for display; it never changes which source is primary.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping

from switchyard.features import extract_entities
from switchyard.models import (
    EntityKind,
    EntitySet,
    IntentCategory,
    MergedResponse,
    SourceKind,
    SourceResult,
)

CONFIDENCE_WEIGHT = 0.4
DEFAULT_CANDIDATE_CONFIDENCE = 0.5
ENTITY_MATCH_BONUS = 0.15
ENTITY_MATCH_BONUS_MAX = 0.3
LENGTH_BONUS = 0.2
MIN_GOOD_LENGTH = 100
MAX_GOOD_LENGTH = 2000
MIN_TOP_SCORE = 0.3

INTENT_ALIGNMENT_BONUS: dict[tuple[SourceKind, IntentCategory], float] = {
    (SourceKind.LIVE_DATA, IntentCategory.LIVE_DATA): 0.1,
    (SourceKind.PRIVATE_DOCUMENTS, IntentCategory.KNOWLEDGE_LOOKUP): 0.1,
    (SourceKind.KNOWLEDGE_BASE, IntentCategory.KNOWLEDGE_LOOKUP): 0.05,
}


@dataclass(frozen=True)
class RankedResponse:
    result: SourceResult
    rank_score: float


def entity_matches(query_entities: EntitySet, response_entities: EntitySet) -> int:
    """Count query entities that appear (as substrings) among the response's."""
    matches = 0
    for kind in EntityKind:
        found = [e.lower() for e in response_entities.get(kind)]
        for entity in query_entities.get(kind):
            needle = entity.lower()
            if any(needle in candidate for candidate in found):
                matches += 1
    return matches


def score_response(
    result: SourceResult,
    query_entities: EntitySet,
    intent: IntentCategory,
) -> float:
    score = (result.confidence or DEFAULT_CANDIDATE_CONFIDENCE) * CONFIDENCE_WEIGHT

    matches = entity_matches(query_entities, extract_entities(result.content))
    score += min(matches * ENTITY_MATCH_BONUS, ENTITY_MATCH_BONUS_MAX)

    if MIN_GOOD_LENGTH < len(result.content) < MAX_GOOD_LENGTH:
        score += LENGTH_BONUS

    score += INTENT_ALIGNMENT_BONUS.get((result.source, intent), 0.0)
    return min(score, 1.0)


def rank_responses(
    candidates: Iterable[SourceResult],
    query: str,
    intent: IntentCategory,
) -> list[RankedResponse]:
    """Score candidates and sort them best first (stable for equal scores)."""
    query_entities = extract_entities(query)
    ranked = [
        RankedResponse(result=c, rank_score=score_response(c, query_entities, intent))
        for c in candidates
    ]
    return sorted(ranked, key=lambda r: r.rank_score, reverse=True)


def top_ranked(
    candidates: Iterable[SourceResult],
    query: str = "",
    intent: IntentCategory = IntentCategory.CONVERSATIONAL,
) -> RankedResponse | None:
    """Best candidate, or None when nothing clears the quality threshold."""
    ranked = rank_responses(candidates, query, intent)
    if not ranked or ranked[0].rank_score < MIN_TOP_SCORE:
        return None
    return ranked[0]


def rerank_supplementary(
    merged: MergedResponse,
    source_results: Mapping[SourceKind, SourceResult],
    query: str,
    intent: IntentCategory,
) -> MergedResponse:
    """Reorder supplementary attributions by rank score.

    The primary attribution stays first.
    """
    if len(merged.attributions) <= 2:
        return merged

    primary, *supplementary = merged.attributions
    ranked = rank_responses(
        (source_results[a.source] for a in supplementary if a.source in source_results),
        query,
        intent,
    )
    order = {r.result.source: i for i, r in enumerate(ranked)}
    reordered = sorted(supplementary, key=lambda a: order.get(a.source, len(order)))

    return merged.model_copy(
        update={
            "attributions": [primary, *reordered],
            "used_sources": [primary.source, *(a.source for a in reordered)],
        }
    )


__all__ = [
    "RankedResponse",
    "entity_matches",
    "rank_responses",
    "rerank_supplementary",
    "score_response",
    "top_ranked",
]
