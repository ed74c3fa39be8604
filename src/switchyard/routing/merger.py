"""Response merger: pick a primary source by intent priority, attach the rest.

Merging is a pure function of its inputs. The intent's fixed priority order
is the only tie-break, so lookup completion order never affects the result.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from switchyard.models import (
    IntentCategory,
    MergedResponse,
    SourceAttribution,
    SourceKind,
    SourceResult,
)

logger = logging.getLogger(__name__)

PRIORITY_ORDER: dict[IntentCategory, tuple[SourceKind, ...]] = {
    IntentCategory.LIVE_DATA: (
        SourceKind.LIVE_DATA,
        SourceKind.KNOWLEDGE_BASE,
        SourceKind.PRIVATE_DOCUMENTS,
    ),
    IntentCategory.KNOWLEDGE_LOOKUP: (
        SourceKind.PRIVATE_DOCUMENTS,
        SourceKind.KNOWLEDGE_BASE,
        SourceKind.LIVE_DATA,
    ),
    IntentCategory.CONVERSATIONAL: (
        SourceKind.GENERIC_GENERATION,
        SourceKind.KNOWLEDGE_BASE,
        SourceKind.PRIVATE_DOCUMENTS,
        SourceKind.LIVE_DATA,
    ),
}

PRIMARY_DEFAULT_CONFIDENCE = 0.8
SUPPLEMENTARY_DEFAULT_CONFIDENCE = 0.6
PREVIEW_LENGTH = 100


def content_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    """Truncate content to a bounded preview."""
    if len(content) <= length:
        return content
    return content[:length] + "..."


def merge_responses(
    source_results: Mapping[SourceKind, SourceResult],
    query: str,
    intent: IntentCategory,
) -> MergedResponse:
    """Merge per-source results into one response.

    The first successful source in the intent's priority order becomes
    primary. Every other successful source is attached, in the same order,
    as supplementary evidence with a content preview.

    Args:
        source_results: Results keyed by source.
        query: The original message.
        intent: The message's intent category.

    Returns:
        MergedResponse; empty primary content and zero confidence when no
        source succeeded.
    """
    priority = PRIORITY_ORDER[intent]
    merged = MergedResponse()

    primary: SourceKind | None = None
    for source in priority:
        result = source_results.get(source)
        if result is not None and result.success:
            primary = source
            confidence = result.confidence or PRIMARY_DEFAULT_CONFIDENCE
            merged.primary_content = result.content
            merged.overall_confidence = confidence
            merged.used_sources.append(source)
            merged.attributions.append(
                SourceAttribution(
                    source=source,
                    confidence=confidence,
                    metadata=dict(result.metadata),
                )
            )
            break

    for source in priority:
        if source == primary:
            continue
        result = source_results.get(source)
        if result is not None and result.success:
            merged.attributions.append(
                SourceAttribution(
                    source=source,
                    confidence=result.confidence or SUPPLEMENTARY_DEFAULT_CONFIDENCE,
                    metadata=dict(result.metadata),
                    content_preview=content_preview(result.content),
                )
            )
            merged.used_sources.append(source)

    logger.info(
        f"Responses merged for {intent.value} query ({len(query)} chars): "
        f"primary={primary.value if primary else None}, "
        f"confidence={merged.overall_confidence}"
    )
    return merged


def format_response(merged: MergedResponse) -> dict[str, Any]:
    """Shape a merged response for the caller-facing API."""
    return {
        "reply": merged.primary_content,
        "confidence_score": merged.overall_confidence,
        "sources": [
            {
                "source": detail.source.value,
                "confidence": detail.confidence,
                "metadata": detail.metadata,
            }
            for detail in merged.attributions
        ],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


__all__ = [
    "PRIORITY_ORDER",
    "content_preview",
    "format_response",
    "merge_responses",
]
