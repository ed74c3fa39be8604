"""Source collaborator protocols and error hierarchy.

Every source a message can fan out to implements one of the protocols
below. Errors raised by a source are isolated to that source by the fan-out
layer; they never fail the request as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from switchyard.models import LiveDataSubtype


@dataclass(frozen=True)
class LiveData:
    """Payload returned by a live-data provider.

    Attributes:
        content: JSON-serialisable data from the upstream.
        api_used: Identifier of the upstream API that produced it.
        error: Upstream-reported problem; content is unusable when set.
    """

    content: dict[str, Any] = field(default_factory=dict)
    api_used: str = ""
    error: str | None = None


@dataclass(frozen=True)
class DocumentHit:
    """One scored chunk returned by a document search."""

    content: str
    source_id: str
    score: float
    title: str | None = None


@runtime_checkable
class LiveDataFetcher(Protocol):
    """Live-data provider keyed by subtype."""

    async def fetch(self, subtype: LiveDataSubtype, params: dict[str, Any]) -> LiveData:
        """Fetch live data for a subtype.

        Raises:
            SourceTimeoutError: If the upstream times out.
            SourceParseError: If the upstream response cannot be used.
            SourceAuthError: If credentials are missing or rejected.
        """
        ...


@runtime_checkable
class PrivateDocumentSearcher(Protocol):
    """Search over one owner's private documents."""

    async def search(self, query: str, owner: str, limit: int) -> list[DocumentHit]: ...


@runtime_checkable
class KnowledgeBaseSearcher(Protocol):
    """Search over the shared knowledge base."""

    async def search(self, query: str, limit: int) -> list[DocumentHit]: ...


class SourceError(Exception):
    """Base exception for all source errors.

    Attributes:
        source_name: The source that raised this error.
        message: Human-readable error description.
    """

    def __init__(self, source_name: str, message: str) -> None:
        self.source_name = source_name
        self.message = message
        super().__init__(f"[{source_name}] {message}")


class SourceTimeoutError(SourceError):
    """Raised when a source request times out."""

    def __init__(self, source_name: str, timeout_seconds: float | None = None) -> None:
        msg = "Request timed out"
        if timeout_seconds is not None:
            msg = f"Request timed out after {timeout_seconds}s"
        super().__init__(source_name, msg)
        self.timeout_seconds = timeout_seconds


class SourceParseError(SourceError):
    """Raised when an upstream response cannot be parsed or used."""

    def __init__(self, source_name: str, details: str | None = None) -> None:
        msg = "Failed to parse upstream response"
        if details:
            msg = f"Failed to parse upstream response: {details}"
        super().__init__(source_name, msg)
        self.details = details


class SourceAuthError(SourceError):
    """Raised when upstream credentials are missing or rejected.

    Callers should NOT retry without fixing credentials.
    """

    def __init__(self, source_name: str, details: str | None = None) -> None:
        msg = "Authentication failed"
        if details:
            msg = f"Authentication failed: {details}"
        super().__init__(source_name, msg)
        self.details = details


__all__ = [
    "DocumentHit",
    "KnowledgeBaseSearcher",
    "LiveData",
    "LiveDataFetcher",
    "PrivateDocumentSearcher",
    "SourceAuthError",
    "SourceError",
    "SourceParseError",
    "SourceTimeoutError",
]
