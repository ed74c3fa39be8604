"""Source collaborators consulted during fan-out."""

from switchyard.sources.base import (
    DocumentHit,
    KnowledgeBaseSearcher,
    LiveData,
    LiveDataFetcher,
    PrivateDocumentSearcher,
    SourceAuthError,
    SourceError,
    SourceParseError,
    SourceTimeoutError,
)
from switchyard.sources.documents import (
    KnowledgeBase,
    PrivateDocumentStore,
    split_into_chunks,
    term_overlap_score,
)
from switchyard.sources.live_data import LiveDataProvider, lookup_params

__all__ = [
    "DocumentHit",
    "KnowledgeBase",
    "KnowledgeBaseSearcher",
    "LiveData",
    "LiveDataFetcher",
    "LiveDataProvider",
    "PrivateDocumentSearcher",
    "PrivateDocumentStore",
    "SourceAuthError",
    "SourceError",
    "SourceParseError",
    "SourceTimeoutError",
    "lookup_params",
    "split_into_chunks",
    "term_overlap_score",
]
