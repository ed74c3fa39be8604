"""Query router: the inbound facade over admission, classification and fan-out.

A request flows validate -> admit -> classify -> fan out -> merge. Only a
malformed message escapes as an exception. Source failures, shared-cache
outages and classifier faults all degrade to fewer (or no) sources.
"""

import logging
import threading
import time
from collections import deque
from typing import Any

from switchyard.cache import TieredCache
from switchyard.config import Settings, get_settings
from switchyard.intent import IntentClassifier
from switchyard.models import (
    AdmissionDecision,
    ChatOutcome,
    Identity,
    IntentCategory,
    RouteResult,
    SourceKind,
    SourceResult,
)
from switchyard.prompts import system_prompt_for
from switchyard.ratelimit import AdmissionController, RateLimiter
from switchyard.routing import SourceFanout, merge_responses, rerank_supplementary

logger = logging.getLogger(__name__)

LATENCY_WINDOW = 100


class MalformedMessageError(ValueError):
    """Message is empty or not text. Raised before any processing."""


def validate_message(message: object) -> str:
    """Return the message if it is usable, else raise MalformedMessageError."""
    if not isinstance(message, str):
        raise MalformedMessageError(f"message must be text, got {type(message).__name__}")
    if not message.strip():
        raise MalformedMessageError("message is empty")
    return message


class RouterMetrics:
    """In-process request counters with a rolling latency average."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_queries = 0
        self.queries_by_category: dict[str, int] = {c.value: 0 for c in IntentCategory}
        self.cache_hits = 0
        self.cache_misses = 0
        self.errors = 0
        self.documents_uploaded = 0
        self._latencies: deque[float] = deque(maxlen=LATENCY_WINDOW)

    def record_query(self, category: IntentCategory, elapsed_ms: float) -> None:
        with self._lock:
            self.total_queries += 1
            self.queries_by_category[category.value] += 1
            self._latencies.append(elapsed_ms)

    def record_cache_event(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self.cache_hits += 1
            else:
                self.cache_misses += 1

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def record_document_upload(self) -> None:
        with self._lock:
            self.documents_uploaded += 1

    @property
    def average_latency_ms(self) -> float:
        with self._lock:
            if not self._latencies:
                return 0.0
            return round(sum(self._latencies) / len(self._latencies), 2)

    def summary(self) -> dict[str, Any]:
        average = self.average_latency_ms
        with self._lock:
            lookups = self.cache_hits + self.cache_misses
            return {
                "total_queries": self.total_queries,
                "queries_by_category": dict(self.queries_by_category),
                "cache": {
                    "hits": self.cache_hits,
                    "misses": self.cache_misses,
                    "hit_rate": round(self.cache_hits / lookups, 3) if lookups else 0.0,
                },
                "documents_uploaded": self.documents_uploaded,
                "average_latency_ms": average,
                "errors": self.errors,
            }


class QueryRouter:
    """Routes one inbound message to its sources and merges the answers.

    Example:
        router = QueryRouter(classifier, cache, limiter, fanout)
        outcome = await router.chat("What's the weather in Paris?", identity)
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        cache: TieredCache,
        limiter: RateLimiter,
        fanout: SourceFanout,
        settings: Settings | None = None,
    ) -> None:
        self._classifier = classifier
        self._cache = cache
        self._admission = AdmissionController(limiter)
        self._fanout = fanout
        self._settings = settings or get_settings()
        self.metrics = RouterMetrics()

    @property
    def limiter(self) -> RateLimiter:
        return self._admission.limiter

    @property
    def cache(self) -> TieredCache:
        return self._cache

    def admit(self, identity: Identity) -> AdmissionDecision:
        """Decide whether the request is accepted at all."""
        decision = self._admission.admit(identity)
        if not decision.allowed:
            logger.warning(
                f"Request denied ({decision.reason}) on {decision.scope} scope, "
                f"retry after {decision.retry_after_seconds}s"
            )
        return decision

    async def route(self, message: str, identity: Identity) -> RouteResult:
        """Classify a message, query its sources and merge the results.

        Args:
            message: Inbound user text.
            identity: Caller identity; the user (else the session) owns the
                private documents searched.

        Returns:
            RouteResult with the verdict, the merged response and every
            per-source outcome, failures included.

        Raises:
            MalformedMessageError: If the message is empty or not text.
        """
        validate_message(message)
        started = time.perf_counter()

        classification = self._classifier.classify(message)
        owner = identity.user or identity.session
        source_results = await self._fanout.gather(message, classification, owner)

        merged = merge_responses(source_results, message, classification.category)
        merged = rerank_supplementary(merged, source_results, message, classification.category)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        self._record(classification.category, source_results, elapsed_ms)

        logger.info(
            f"Routed {classification.category.value} query via "
            f"{classification.method.value}: primary="
            f"{merged.primary_source.value if merged.primary_source else None}, "
            f"confidence={merged.overall_confidence}, {elapsed_ms}ms"
        )
        return RouteResult(
            query=message,
            classification=classification,
            merged=merged,
            source_results=source_results,
            system_prompt=system_prompt_for(classification.category),
            elapsed_ms=elapsed_ms,
        )

    async def chat(self, message: str, identity: Identity) -> ChatOutcome:
        """Validate, admit and route one request.

        A malformed message is rejected before admission, so it leaves the
        limiter untouched.
        """
        try:
            validate_message(message)
        except MalformedMessageError as e:
            logger.info(f"Rejected malformed message: {e}")
            self.metrics.record_error()
            return ChatOutcome(status="bad_request", error=str(e))

        decision = self.admit(identity)
        if not decision.allowed:
            return ChatOutcome(status="denied", admission=decision)

        result = await self.route(message, identity)
        return ChatOutcome(status="ok", admission=decision, result=result)

    def _record(
        self,
        category: IntentCategory,
        source_results: dict[SourceKind, SourceResult],
        elapsed_ms: float,
    ) -> None:
        self.metrics.record_query(category, elapsed_ms)
        live = source_results.get(SourceKind.LIVE_DATA)
        if live is not None and "cached" in live.metadata:
            self.metrics.record_cache_event(bool(live.metadata["cached"]))

    def stats(self) -> dict[str, Any]:
        """Aggregate router, cache, limiter and model statistics."""
        return {
            "router": self.metrics.summary(),
            "cache": self._cache.stats(),
            "rate_limiter": self.limiter.stats(),
            "classifier": self._classifier.stats(),
        }


__all__ = [
    "MalformedMessageError",
    "QueryRouter",
    "RouterMetrics",
    "validate_message",
]
