"""Tests for the FastMCP server tools."""

import json
from unittest.mock import AsyncMock, patch

import pytest

import switchyard.server as server
from switchyard.cache import LocalCache, TieredCache
from switchyard.ratelimit import RateLimiter
from switchyard.router import QueryRouter
from switchyard.routing import SourceFanout
from switchyard.server import add_document, chat, report_load, router_stats
from switchyard.sources import KnowledgeBase, PrivateDocumentStore


@pytest.fixture
def documents() -> PrivateDocumentStore:
    return PrivateDocumentStore()


@pytest.fixture
def router(classifier, clock, settings, documents) -> QueryRouter:
    cache = TieredCache(local=LocalCache(clock=clock))
    fanout = SourceFanout(
        documents=documents,
        knowledge_base=KnowledgeBase(),
        cache=cache,
        settings=settings,
    )
    return QueryRouter(
        classifier=classifier,
        cache=cache,
        limiter=RateLimiter.from_settings(settings, clock=clock),
        fanout=fanout,
        settings=settings,
    )


class TestChatTool:
    @pytest.mark.asyncio
    async def test_chat_returns_merged_reply(self, router: QueryRouter) -> None:
        with patch("switchyard.server._get_router", AsyncMock(return_value=router)):
            raw = await chat.fn("Tell me about machine learning", session_id="s1")

        payload = json.loads(raw)
        assert payload["status"] == "ok"
        assert payload["intent"] == "knowledge_lookup"
        assert payload["reply"]
        assert payload["sources"][0]["source"] == "knowledge_base"
        assert payload["failed_sources"] == {"private_documents": "no matching documents"}
        assert payload["confidence_score"] == 0.8

    @pytest.mark.asyncio
    async def test_chat_empty_message_is_bad_request(self, router: QueryRouter) -> None:
        with patch("switchyard.server._get_router", AsyncMock(return_value=router)):
            raw = await chat.fn("", session_id="s1")

        assert json.loads(raw) == {"status": "bad_request", "error": "message is empty"}

    @pytest.mark.asyncio
    async def test_chat_denied_when_blocked(self, router: QueryRouter) -> None:
        router.limiter.block("s1", 120)

        with patch("switchyard.server._get_router", AsyncMock(return_value=router)):
            raw = await chat.fn("hello", session_id="s1")

        payload = json.loads(raw)
        assert payload["status"] == "denied"
        assert payload["reason"] == "blocked"
        assert payload["retry_after_seconds"] == 120

    @pytest.mark.asyncio
    async def test_chat_unexpected_error_is_reported(self) -> None:
        broken = AsyncMock()
        broken.chat.side_effect = RuntimeError("boom")

        with patch("switchyard.server._get_router", AsyncMock(return_value=broken)):
            raw = await chat.fn("hello", session_id="s1")

        assert json.loads(raw)["status"] == "error"


class TestAddDocumentTool:
    @pytest.mark.asyncio
    async def test_document_then_grounded_answer(
        self, router: QueryRouter, documents: PrivateDocumentStore
    ) -> None:
        with (
            patch("switchyard.server._get_router", AsyncMock(return_value=router)),
            patch("switchyard.server._get_documents", return_value=documents),
        ):
            confirmation = await add_document.fn(
                "alice", "ml.txt", "Machine learning notes: gradient descent."
            )
            raw = await chat.fn("Tell me about machine learning", session_id="s1", user_id="alice")

        assert "Stored 'ml.txt'" in confirmation
        assert "(1 chunks)" in confirmation
        payload = json.loads(raw)
        assert payload["sources"][0]["source"] == "private_documents"
        assert "gradient descent" in payload["reply"]
        assert router.stats()["router"]["documents_uploaded"] == 1

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected(self) -> None:
        result = await add_document.fn("alice", "blank.txt", "   ")

        assert result == "Document 'blank.txt' has no text to store."

    @pytest.mark.asyncio
    async def test_owner_required(self) -> None:
        assert await add_document.fn(" ", "a.txt", "text") == "Owner is required to store a document."


class TestRouterStatsTool:
    @pytest.mark.asyncio
    async def test_stats_are_json(self, router: QueryRouter) -> None:
        with patch("switchyard.server._get_router", AsyncMock(return_value=router)):
            payload = json.loads(await router_stats.fn())

        assert set(payload) == {"router", "cache", "rate_limiter", "classifier"}


class TestReportLoadTool:
    @pytest.mark.asyncio
    async def test_high_then_normal_load(self, router: QueryRouter) -> None:
        with patch("switchyard.server._get_limiter", return_value=router.limiter):
            high = await report_load.fn(cpu_percent=95, memory_percent=50)
            normal = await report_load.fn(cpu_percent=20, memory_percent=30)

        assert high.startswith("High load")
        assert normal.startswith("Normal load")


class TestLazyInitialisation:
    @pytest.mark.asyncio
    async def test_router_built_once_and_cleaned_up(self) -> None:
        try:
            first = await server._get_router()
            second = await server._get_router()

            assert first is second
            assert server._limiter is not None
        finally:
            await server._cleanup_resources()

        assert server._router is None
        assert server._limiter is None
        assert server._cache is None
