"""End-to-end tests for the query router."""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from switchyard.cache import LocalCache, TieredCache, cache_key
from switchyard.config import Settings
from switchyard.intent import IntentClassifier
from switchyard.models import (
    Identity,
    IntentCategory,
    LiveDataSubtype,
    SourceKind,
)
from switchyard.prompts import system_prompt_for
from switchyard.ratelimit import RateLimiter, RateScope
from switchyard.router import MalformedMessageError, QueryRouter, RouterMetrics, validate_message
from switchyard.routing import SourceFanout
from switchyard.sources import KnowledgeBase, LiveData, LiveDataProvider, PrivateDocumentStore

GEOCODING_RESPONSE = {
    "results": [{"name": "Paris", "country": "France", "latitude": 48.85, "longitude": 2.35}]
}
FORECAST_RESPONSE = {
    "current": {"temperature_2m": 18.4, "relative_humidity_2m": 62, "weather_code": 3}
}
PARIS_KEY = cache_key("live_data", "weather", city="paris")


def build_router(
    classifier: IntentClassifier,
    clock,
    settings: Settings,
    live_data=None,
    documents: PrivateDocumentStore | None = None,
) -> QueryRouter:
    cache = TieredCache(local=LocalCache(clock=clock))
    fanout = SourceFanout(
        documents=documents or PrivateDocumentStore(),
        knowledge_base=KnowledgeBase(),
        cache=cache,
        live_data=live_data,
        settings=settings,
    )
    return QueryRouter(
        classifier=classifier,
        cache=cache,
        limiter=RateLimiter.from_settings(settings, clock=clock),
        fanout=fanout,
        settings=settings,
    )


class TestValidateMessage:
    @pytest.mark.parametrize("message", ["", "   ", None, 42, b"bytes"])
    def test_rejects_empty_and_non_text(self, message) -> None:
        with pytest.raises(MalformedMessageError):
            validate_message(message)

    def test_accepts_text(self) -> None:
        assert validate_message("hi") == "hi"


class TestWeatherScenario:
    @pytest.mark.asyncio
    async def test_weather_in_paris(self, httpx_mock, classifier, clock, settings) -> None:
        httpx_mock.add_response(url=re.compile(r".*geocoding-api.*"), json=GEOCODING_RESPONSE)
        httpx_mock.add_response(url=re.compile(r".*/v1/forecast.*"), json=FORECAST_RESPONSE)
        provider = LiveDataProvider(settings)
        router = build_router(classifier, clock, settings, live_data=provider)

        result = await router.route("What's the weather in Paris?", Identity(session="s1"))

        assert result.classification.category == IntentCategory.LIVE_DATA
        assert result.classification.subtype == LiveDataSubtype.WEATHER
        assert result.merged.primary_source == SourceKind.LIVE_DATA
        assert 0.9 <= result.merged.overall_confidence <= 0.95
        assert "Paris, France" in result.merged.primary_content
        assert result.source_results[SourceKind.LIVE_DATA].metadata["cached"] is False
        assert SourceKind.PRIVATE_DOCUMENTS in result.failed_sources
        assert result.system_prompt == system_prompt_for(IntentCategory.LIVE_DATA)

        # Cached for 30 minutes
        clock.advance(1799)
        assert await router.cache.get(PARIS_KEY) is not None
        clock.advance(2)
        assert await router.cache.get(PARIS_KEY) is None

        await provider.close()

    @pytest.mark.asyncio
    async def test_repeat_question_is_served_from_cache(
        self, httpx_mock, classifier, clock, settings
    ) -> None:
        httpx_mock.add_response(url=re.compile(r".*geocoding-api.*"), json=GEOCODING_RESPONSE)
        httpx_mock.add_response(url=re.compile(r".*/v1/forecast.*"), json=FORECAST_RESPONSE)
        provider = LiveDataProvider(settings)
        router = build_router(classifier, clock, settings, live_data=provider)

        await router.route("What's the weather in Paris?", Identity(session="s1"))
        second = await router.route("What's the weather in Paris?", Identity(session="s1"))

        assert second.source_results[SourceKind.LIVE_DATA].metadata["cached"] is True
        assert len(httpx_mock.get_requests()) == 2
        metrics = router.stats()["router"]
        assert metrics["cache"]["hits"] == 1
        assert metrics["cache"]["misses"] == 1

        await provider.close()

    @pytest.mark.asyncio
    async def test_upstream_outage_degrades_to_other_sources(
        self, classifier, clock, settings
    ) -> None:
        live_data = AsyncMock()
        live_data.fetch.side_effect = ConnectionError("upstream down")
        router = build_router(classifier, clock, settings, live_data=live_data)

        result = await router.route("What's the weather in Paris?", Identity(session="s1"))

        assert result.source_results[SourceKind.LIVE_DATA].success is False
        assert result.merged.primary_source == SourceKind.KNOWLEDGE_BASE


class TestEmptyMessageScenario:
    @pytest.mark.asyncio
    async def test_empty_message_touches_nothing(self, classifier, clock, settings) -> None:
        spy = MagicMock(wraps=classifier)
        live_data = AsyncMock()
        router = build_router(spy, clock, settings, live_data=live_data)

        outcome = await router.chat("", Identity(session="s1", user="u1", address="10.0.0.1"))

        assert outcome.status == "bad_request"
        assert outcome.result is None
        spy.classify.assert_not_called()
        live_data.fetch.assert_not_awaited()
        assert router.limiter.stats()["active_windows"] == {"session": 0, "user": 0, "address": 0}
        cache_stats = router.cache.stats()
        assert cache_stats["hits"] == 0
        assert cache_stats["misses"] == 0
        assert cache_stats["local_size"] == 0
        assert router.stats()["router"]["errors"] == 1

    @pytest.mark.asyncio
    async def test_route_raises_on_empty_message(self, classifier, clock, settings) -> None:
        router = build_router(classifier, clock, settings)

        with pytest.raises(MalformedMessageError):
            await router.route("   ", Identity(session="s1"))


class TestRateLimitScenario:
    @pytest.mark.asyncio
    async def test_51st_request_denied_and_52nd_blocked(self, classifier, clock, settings) -> None:
        router = build_router(classifier, clock, settings)
        identity = Identity(session="s1")
        message = "Tell me about machine learning"

        for _ in range(50):
            outcome = await router.chat(message, identity)
            assert outcome.status == "ok"

        denied = await router.chat(message, identity)
        assert denied.status == "denied"
        assert denied.admission is not None
        assert denied.admission.reason == "rate_limited"
        assert denied.admission.scope == "session"
        assert router.limiter.is_blocked("s1")
        count_after_denial = router.limiter.window("s1", RateScope.SESSION).request_count

        clock.advance(30)
        blocked = await router.chat(message, identity)

        assert blocked.status == "denied"
        assert blocked.admission.reason == "blocked"
        assert blocked.admission.retry_after_seconds == 270
        assert router.limiter.window("s1", RateScope.SESSION).request_count == count_after_denial
        assert router.stats()["router"]["total_queries"] == 50


class TestKnowledgeScenario:
    @pytest.mark.asyncio
    async def test_private_documents_ground_knowledge_answers(
        self, classifier, clock, settings
    ) -> None:
        documents = PrivateDocumentStore()
        documents.add_document("alice", "ml-notes.txt", "Machine learning notes: gradient descent.")
        router = build_router(classifier, clock, settings, documents=documents)

        result = await router.route(
            "Tell me about machine learning", Identity(session="s1", user="alice")
        )

        assert result.classification.category == IntentCategory.KNOWLEDGE_LOOKUP
        assert SourceKind.LIVE_DATA not in result.source_results
        assert result.merged.primary_source == SourceKind.PRIVATE_DOCUMENTS
        assert "gradient descent" in result.merged.primary_content
        assert result.merged.used_sources[1] == SourceKind.KNOWLEDGE_BASE

    @pytest.mark.asyncio
    async def test_other_users_documents_are_not_used(self, classifier, clock, settings) -> None:
        documents = PrivateDocumentStore()
        documents.add_document("alice", "ml-notes.txt", "Machine learning notes: gradient descent.")
        router = build_router(classifier, clock, settings, documents=documents)

        result = await router.route(
            "Tell me about machine learning", Identity(session="s2", user="bob")
        )

        assert result.source_results[SourceKind.PRIVATE_DOCUMENTS].success is False
        assert result.merged.primary_source == SourceKind.KNOWLEDGE_BASE


class TestChat:
    @pytest.mark.asyncio
    async def test_ok_outcome_carries_admission(self, classifier, clock, settings) -> None:
        live_data = AsyncMock()
        live_data.fetch.return_value = LiveData(content={"time": "12:00:00"}, api_used="local-clock")
        router = build_router(classifier, clock, settings, live_data=live_data)

        outcome = await router.chat("What time is it?", Identity(session="s1", user="u1"))

        assert outcome.status == "ok"
        assert outcome.admission is not None
        assert outcome.admission.allowed is True
        assert outcome.admission.remaining == 49
        assert outcome.result is not None

    @pytest.mark.asyncio
    async def test_stats_aggregate_components(self, classifier, clock, settings) -> None:
        router = build_router(classifier, clock, settings)
        await router.chat("Tell me about machine learning", Identity(session="s1"))

        stats = router.stats()

        assert stats["router"]["total_queries"] == 1
        assert stats["router"]["queries_by_category"]["knowledge_lookup"] == 1
        assert stats["rate_limiter"]["active_windows"]["session"] == 1
        assert stats["classifier"]["is_trained"] is True
        assert "hit_rate" in stats["cache"]


class TestRouterMetrics:
    def test_rolling_average_uses_last_100(self) -> None:
        metrics = RouterMetrics()
        metrics.record_query(IntentCategory.CONVERSATIONAL, 1000.0)
        for _ in range(100):
            metrics.record_query(IntentCategory.LIVE_DATA, 10.0)

        summary = metrics.summary()

        assert summary["total_queries"] == 101
        assert summary["average_latency_ms"] == 10.0
        assert summary["queries_by_category"]["live_data"] == 100

    def test_cache_hit_rate(self) -> None:
        metrics = RouterMetrics()
        metrics.record_cache_event(True)
        metrics.record_cache_event(False)
        metrics.record_cache_event(True)

        assert metrics.summary()["cache"] == {"hits": 2, "misses": 1, "hit_rate": 0.667}
