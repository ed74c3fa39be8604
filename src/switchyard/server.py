"""FastMCP server exposing the Switchyard query router."""

import asyncio
import atexit
import json
import logging
from typing import Any

from fastmcp import FastMCP

from switchyard.cache import TieredCache, build_cache
from switchyard.config import configure_logging, get_settings
from switchyard.intent import get_default_classifier
from switchyard.models import ChatOutcome, Identity
from switchyard.ratelimit import RateLimiter
from switchyard.router import QueryRouter
from switchyard.routing import SourceFanout, format_response
from switchyard.sources import KnowledgeBase, LiveDataProvider, PrivateDocumentStore

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("switchyard")

# Global instances (initialized on first use)
_cache: TieredCache | None = None
_live_data: LiveDataProvider | None = None
_documents: PrivateDocumentStore | None = None
_knowledge_base: KnowledgeBase | None = None
_limiter: RateLimiter | None = None
_router: QueryRouter | None = None


async def _get_cache() -> TieredCache:
    global _cache
    if _cache is None:
        cache = build_cache(get_settings())
        await cache.connect()
        _cache = cache
    return _cache


def _get_live_data() -> LiveDataProvider:
    global _live_data
    if _live_data is None:
        _live_data = LiveDataProvider(get_settings())
    return _live_data


def _get_documents() -> PrivateDocumentStore:
    global _documents
    if _documents is None:
        _documents = PrivateDocumentStore()
    return _documents


def _get_knowledge_base() -> KnowledgeBase:
    global _knowledge_base
    if _knowledge_base is None:
        _knowledge_base = KnowledgeBase(get_settings().knowledge_base_path)
        _knowledge_base.load()
    return _knowledge_base


def _get_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = RateLimiter.from_settings(settings)
        _limiter.start_sweeper(settings.sweep_interval_seconds)
    return _limiter


async def _get_router() -> QueryRouter:
    global _router
    if _router is None:
        settings = get_settings()
        cache = await _get_cache()
        fanout = SourceFanout(
            documents=_get_documents(),
            knowledge_base=_get_knowledge_base(),
            cache=cache,
            live_data=_get_live_data(),
            settings=settings,
        )
        _router = QueryRouter(
            classifier=get_default_classifier(),
            cache=cache,
            limiter=_get_limiter(),
            fanout=fanout,
            settings=settings,
        )
    return _router


async def _cleanup_resources() -> None:
    """Close all open resources (sweeper, live-data client, cache connections)."""
    global _cache, _live_data, _documents, _knowledge_base, _limiter, _router

    _router = None
    _documents = None
    _knowledge_base = None

    if _limiter is not None:
        await _limiter.stop_sweeper()
        _limiter = None

    if _live_data is not None:
        await _live_data.close()
        _live_data = None

    if _cache is not None:
        await _cache.close()
        _cache = None

    logger.debug("All resources cleaned up")


def _atexit_cleanup() -> None:
    """Synchronous atexit handler that runs async cleanup."""
    try:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(_cleanup_resources())
        else:
            loop.create_task(_cleanup_resources())
    except Exception as e:
        # Don't let cleanup errors prevent shutdown
        logger.debug(f"Cleanup error (non-fatal): {e}")


atexit.register(_atexit_cleanup)


def _outcome_payload(outcome: ChatOutcome) -> dict[str, Any]:
    if outcome.status == "bad_request":
        return {"status": "bad_request", "error": outcome.error}

    if outcome.status == "denied":
        decision = outcome.admission
        return {
            "status": "denied",
            "reason": decision.reason if decision else None,
            "scope": decision.scope if decision else None,
            "retry_after_seconds": decision.retry_after_seconds if decision else None,
        }

    result = outcome.result
    assert result is not None
    classification = result.classification
    return {
        "status": "ok",
        **format_response(result.merged),
        "intent": classification.category.value,
        "subtype": classification.subtype.value if classification.subtype else None,
        "classification_method": classification.method.value,
        "classification_confidence": classification.confidence,
        "entities": classification.entities.as_dict(),
        "failed_sources": {
            kind.value: result.source_results[kind].metadata.get("error")
            for kind in result.failed_sources
        },
        "system_prompt": result.system_prompt,
        "elapsed_ms": result.elapsed_ms,
    }


@mcp.tool()
async def chat(
    message: str,
    session_id: str | None = None,
    user_id: str | None = None,
    address: str | None = None,
) -> str:
    """Route a chat message to live data, private documents and the knowledge base.

    The message is classified by intent, the matching sources are queried
    concurrently and their answers are merged into one grounded reply.

    Args:
        message: The user's message (e.g., "What's the weather in Paris?")
        session_id: Conversation session identifier, used for rate limiting
        user_id: Authenticated user identifier; owns the private documents searched
        address: Caller network address, used for rate limiting

    Returns:
        JSON document with status ("ok", "denied" or "bad_request"), the
        merged reply, its confidence and per-source attribution.
    """
    try:
        router = await _get_router()
        identity = Identity(session=session_id, user=user_id, address=address)
        outcome = await router.chat(message, identity)
        return json.dumps(_outcome_payload(outcome), default=str)
    except Exception as e:
        logger.exception(f"Unexpected error routing message: {e}")
        return json.dumps({"status": "error", "error": "An unexpected error occurred."})


@mcp.tool()
async def add_document(owner: str, filename: str, text: str) -> str:
    """Store a private document so it can ground later answers for its owner.

    Args:
        owner: User (or session) identifier that owns the document
        filename: Display name of the document (e.g., 'handbook.pdf')
        text: Extracted plain text of the document

    Returns:
        Confirmation message with the document id and chunk count.
    """
    if not owner.strip():
        return "Owner is required to store a document."
    if not text.strip():
        return f"Document '{filename}' has no text to store."

    try:
        router = await _get_router()
        document = _get_documents().add_document(owner, filename, text)
        router.metrics.record_document_upload()
        return (
            f"Stored '{document.filename}' as {document.document_id} "
            f"({len(document.chunks)} chunks)."
        )
    except Exception as e:
        logger.exception(f"Error storing document {filename}: {e}")
        return f"Error storing document: {e}"


@mcp.tool()
async def router_stats() -> str:
    """Report routing, cache, rate-limit and classifier statistics.

    Returns:
        JSON document of current statistics.
    """
    router = await _get_router()
    return json.dumps(router.stats(), default=str)


@mcp.tool()
async def report_load(cpu_percent: float, memory_percent: float) -> str:
    """Feed host load into the rate limiter.

    Under high load newly opened rate windows get half the normal limit.

    Args:
        cpu_percent: Current CPU utilisation (0-100)
        memory_percent: Current memory utilisation (0-100)

    Returns:
        Message describing the resulting limiter mode.
    """
    high_load = _get_limiter().adjust_limits_based_on_load(cpu_percent, memory_percent)
    if high_load:
        return "High load: new rate windows use reduced limits."
    return "Normal load: new rate windows use default limits."


def main() -> None:
    """Run the Switchyard MCP server."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting Switchyard MCP server")
    mcp.run()


if __name__ == "__main__":
    main()
