"""Concurrent source fan-out with per-source failure isolation.

Issues the live-data, private-document and knowledge-base lookups for one
message concurrently and joins on all of them. A failure, empty result or
timeout in one lookup turns into a failed SourceResult for that source only.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable

from switchyard.cache import TieredCache, cache_key
from switchyard.config import Settings, get_settings
from switchyard.models import (
    ClassificationResult,
    IntentCategory,
    LiveDataSubtype,
    SourceKind,
    SourceResult,
)
from switchyard.sources.base import (
    DocumentHit,
    KnowledgeBaseSearcher,
    LiveDataFetcher,
    PrivateDocumentSearcher,
    SourceError,
)
from switchyard.sources.live_data import lookup_params

logger = logging.getLogger(__name__)

LIVE_DATA_CACHE_NAMESPACE = "live_data"


class SourceFanout:
    """Runs the per-source lookups for a classified message."""

    def __init__(
        self,
        documents: PrivateDocumentSearcher,
        knowledge_base: KnowledgeBaseSearcher,
        cache: TieredCache,
        live_data: LiveDataFetcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._documents = documents
        self._knowledge_base = knowledge_base
        self._cache = cache
        self._live_data = live_data
        self._settings = settings or get_settings()
        # Strong references so detached lookups are not garbage collected
        self._inflight: set[asyncio.Task[SourceResult]] = set()

    async def gather(
        self,
        message: str,
        classification: ClassificationResult,
        owner: str | None,
    ) -> dict[SourceKind, SourceResult]:
        """Query every applicable source concurrently and wait for all.

        Cancelling the caller does not cancel the lookups: they keep running
        so their results still reach the cache.

        Args:
            message: The inbound message.
            classification: Intent verdict for the message.
            owner: Identity whose private documents may be searched.

        Returns:
            Dict mapping each attempted source to its result.
        """
        settings = self._settings
        lookups: dict[SourceKind, tuple[Awaitable[SourceResult], float]] = {}

        if classification.category == IntentCategory.LIVE_DATA:
            lookups[SourceKind.LIVE_DATA] = (
                self._query_live_data(message, classification.subtype),
                settings.timeout_live_data,
            )
        lookups[SourceKind.PRIVATE_DOCUMENTS] = (
            self._query_private_documents(message, owner or ""),
            settings.timeout_private_documents,
        )
        lookups[SourceKind.KNOWLEDGE_BASE] = (
            self._query_knowledge_base(message),
            settings.timeout_knowledge_base,
        )

        tasks: dict[SourceKind, asyncio.Task[SourceResult]] = {}
        for kind, (lookup, timeout) in lookups.items():
            task = asyncio.ensure_future(self._guarded(kind, lookup, timeout))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks[kind] = task

        await asyncio.shield(asyncio.gather(*tasks.values()))

        results = {kind: task.result() for kind, task in tasks.items()}
        succeeded = [k.value for k, r in results.items() if r.success]
        logger.info(
            f"Fan-out complete: {len(succeeded)}/{len(results)} sources succeeded "
            f"({', '.join(succeeded) or 'none'})"
        )
        return results

    async def _guarded(
        self, kind: SourceKind, lookup: Awaitable[SourceResult], timeout: float
    ) -> SourceResult:
        try:
            return await asyncio.wait_for(lookup, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Source {kind.value} timed out after {timeout}s")
            return SourceResult.failed(kind, f"timed out after {timeout}s")
        except SourceError as e:
            logger.warning(f"Source {kind.value} failed: {e}")
            return SourceResult.failed(kind, e.message, upstream=e.source_name)
        except Exception as e:
            logger.error(f"Unexpected error from {kind.value}: {e}")
            return SourceResult.failed(kind, str(e) or type(e).__name__)

    async def _query_live_data(
        self, message: str, subtype: LiveDataSubtype | None
    ) -> SourceResult:
        kind = SourceKind.LIVE_DATA
        if subtype is None:
            return SourceResult.failed(kind, "no live-data subtype")
        if self._live_data is None:
            return SourceResult.failed(kind, "no live-data provider configured", type=subtype.value)

        params = lookup_params(subtype, message)
        key = cache_key(LIVE_DATA_CACHE_NAMESPACE, subtype.value, **params)
        ttl = self._settings.ttl_for(subtype.value)
        confidence = self._settings.confidence_live_data

        if ttl > 0:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.info(f"Using cached {subtype.value} data for {params}")
                return SourceResult.ok(
                    kind,
                    json.dumps(cached["content"]),
                    confidence,
                    type=subtype.value,
                    cached=True,
                    api_used=cached.get("api_used"),
                )

        data = await self._live_data.fetch(subtype, params)
        if data.error:
            logger.warning(f"Live-data upstream {data.api_used or subtype.value} error: {data.error}")
            return SourceResult.failed(kind, data.error, type=subtype.value, api_used=data.api_used)

        if ttl > 0:
            await self._cache.set(key, {"content": data.content, "api_used": data.api_used}, ttl)

        return SourceResult.ok(
            kind,
            json.dumps(data.content),
            confidence,
            type=subtype.value,
            cached=False,
            api_used=data.api_used,
        )

    async def _query_private_documents(self, message: str, owner: str) -> SourceResult:
        kind = SourceKind.PRIVATE_DOCUMENTS
        hits = await self._documents.search(message, owner, self._settings.private_document_limit)
        if not hits:
            return SourceResult.failed(kind, "no matching documents", documents_found=0)

        logger.info(f"Found {len(hits)} private document results")
        return SourceResult.ok(
            kind,
            "\n".join(hit.content for hit in hits),
            self._settings.confidence_private_documents,
            documents_found=len(hits),
            documents=[_hit_metadata(hit) for hit in hits],
        )

    async def _query_knowledge_base(self, message: str) -> SourceResult:
        kind = SourceKind.KNOWLEDGE_BASE
        hits = await self._knowledge_base.search(message, self._settings.knowledge_base_limit)
        if not hits:
            return SourceResult.failed(kind, "no matching articles", documents_found=0)

        logger.info(f"Found {len(hits)} knowledge base results")
        return SourceResult.ok(
            kind,
            "\n".join(hit.content for hit in hits),
            self._settings.confidence_knowledge_base,
            documents_found=len(hits),
            documents=[_hit_metadata(hit) for hit in hits],
        )


def _hit_metadata(hit: DocumentHit) -> dict[str, Any]:
    return {"source_id": hit.source_id, "title": hit.title, "score": hit.score}


__all__ = ["SourceFanout", "LIVE_DATA_CACHE_NAMESPACE"]
