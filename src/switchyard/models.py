"""Pydantic models for Switchyard query routing."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator


class IntentCategory(str, Enum):
    """Coarse category a message is routed under."""

    LIVE_DATA = "live_data"
    KNOWLEDGE_LOOKUP = "knowledge_lookup"
    CONVERSATIONAL = "conversational"


class LiveDataSubtype(str, Enum):
    """Concrete upstream family for live-data messages."""

    WEATHER = "weather"
    NEWS = "news"
    CURRENCY = "currency"
    TIME = "time"


class ClassificationMethod(str, Enum):
    """Which classifier path produced the verdict."""

    STATISTICAL = "statistical"
    RULE_BASED = "rule_based"


class EntityKind(str, Enum):
    """Kinds of coarse named entity recognised in text."""

    LOCATION = "location"
    DATE = "date"
    CURRENCY = "currency"
    NUMBER = "number"


class SourceKind(str, Enum):
    """Collaborators consulted (or implied) when building a response."""

    LIVE_DATA = "live_data"
    PRIVATE_DOCUMENTS = "private_documents"
    KNOWLEDGE_BASE = "knowledge_base"
    GENERIC_GENERATION = "generic_generation"


class EntitySet(BaseModel):
    """Entity kind -> literal strings found in one piece of text.

    Duplicates are collapsed and order is irrelevant.
    """

    model_config = ConfigDict(frozen=True)

    locations: frozenset[str] = frozenset()
    dates: frozenset[str] = frozenset()
    currencies: frozenset[str] = frozenset()
    numbers: frozenset[str] = frozenset()

    def get(self, kind: EntityKind) -> frozenset[str]:
        """Return the literals recorded for one entity kind."""
        return {
            EntityKind.LOCATION: self.locations,
            EntityKind.DATE: self.dates,
            EntityKind.CURRENCY: self.currencies,
            EntityKind.NUMBER: self.numbers,
        }[kind]

    def has(self, kind: EntityKind) -> bool:
        return bool(self.get(kind))

    @property
    def total(self) -> int:
        """Total number of entity literals across all kinds."""
        return sum(len(self.get(kind)) for kind in EntityKind)

    def as_dict(self) -> dict[str, list[str]]:
        return {kind.value: sorted(self.get(kind)) for kind in EntityKind}


class ClassificationResult(BaseModel):
    """Intent verdict for one message. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    category: IntentCategory
    subtype: LiveDataSubtype | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    method: ClassificationMethod
    scores: dict[str, float] = Field(default_factory=dict)
    entities: EntitySet = Field(default_factory=EntitySet)
    # Statistical path confidence, surfaced even when the rule path decided
    statistical_confidence: float | None = None
    error: str | None = None


class SourceResult(BaseModel):
    """Outcome of one source lookup during fan-out."""

    model_config = ConfigDict(frozen=True)

    source: SourceKind
    success: bool
    content: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_content_on_success(self) -> SourceResult:
        """A successful result must carry a non-blank payload."""
        if self.success and not self.content.strip():
            raise ValueError(f"successful {self.source.value} result has no content")
        return self

    @classmethod
    def ok(
        cls,
        source: SourceKind,
        content: str,
        confidence: float | None = None,
        **metadata: Any,
    ) -> SourceResult:
        """Build a successful result."""
        return cls(
            source=source,
            success=True,
            content=content,
            confidence=confidence,
            metadata=metadata,
        )

    @classmethod
    def failed(cls, source: SourceKind, error: str, **metadata: Any) -> SourceResult:
        """Build a failed result carrying the failure reason in metadata."""
        return cls(source=source, success=False, metadata={"error": error, **metadata})


class SourceAttribution(BaseModel):
    """Attribution for one source used in a merged response."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source: SourceKind
    confidence: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    content_preview: str | None = None


class MergedResponse(BaseModel):
    """Merged evidence handed back to the caller.

    An empty ``primary_content`` is a valid terminal state that tells the
    caller to fall back to source-free generation.
    """

    primary_content: str = ""
    attributions: list[SourceAttribution] = Field(default_factory=list)
    overall_confidence: float = 0.0
    used_sources: list[SourceKind] = Field(default_factory=list)

    @property
    def primary_source(self) -> SourceKind | None:
        return self.attributions[0].source if self.attributions else None

    @property
    def is_empty(self) -> bool:
        return not self.primary_content


class Identity(BaseModel):
    """Who is asking: session, user and network address."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    session: str | None = None
    user: str | None = None
    address: str | None = None


class AdmissionDecision(BaseModel):
    """Admission verdict for one inbound request."""

    allowed: bool
    reason: Literal["ok", "rate_limited", "blocked"] = "ok"
    scope: str | None = None
    retry_after_seconds: int | None = None
    remaining: int | None = None


class RouteResult(BaseModel):
    """Everything the router produced for one message."""

    query: str
    classification: ClassificationResult
    merged: MergedResponse
    source_results: dict[SourceKind, SourceResult] = Field(default_factory=dict)
    system_prompt: str = ""
    elapsed_ms: float = 0.0
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("completed_at")
    def serialize_dt(self, dt: datetime) -> str:
        """Serialize datetime to ISO 8601 format with timezone."""
        return dt.isoformat()

    @property
    def failed_sources(self) -> list[SourceKind]:
        return [kind for kind, result in self.source_results.items() if not result.success]


class ChatOutcome(BaseModel):
    """Combined validate -> admit -> route outcome."""

    status: Literal["ok", "denied", "bad_request"]
    admission: AdmissionDecision | None = None
    result: RouteResult | None = None
    error: str | None = None


__all__ = [
    "AdmissionDecision",
    "ChatOutcome",
    "ClassificationMethod",
    "ClassificationResult",
    "EntityKind",
    "EntitySet",
    "Identity",
    "IntentCategory",
    "LiveDataSubtype",
    "MergedResponse",
    "RouteResult",
    "SourceAttribution",
    "SourceKind",
    "SourceResult",
]
