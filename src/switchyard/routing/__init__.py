"""Source fan-out, response merging and ranking."""

from switchyard.routing.fanout import SourceFanout
from switchyard.routing.merger import (
    PRIORITY_ORDER,
    content_preview,
    format_response,
    merge_responses,
)
from switchyard.routing.ranking import (
    RankedResponse,
    rank_responses,
    rerank_supplementary,
    top_ranked,
)

__all__ = [
    # Fan-out
    "SourceFanout",
    # Merger
    "PRIORITY_ORDER",
    "content_preview",
    "format_response",
    "merge_responses",
    # Ranking
    "RankedResponse",
    "rank_responses",
    "rerank_supplementary",
    "top_ranked",
]
