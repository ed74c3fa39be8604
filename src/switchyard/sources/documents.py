"""In-memory private document store and shared knowledge base.

Both are searched by literal term overlap: every occurrence of a query
term in a chunk adds one to its score.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from switchyard.features import tokenize
from switchyard.sources.base import DocumentHit

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500
CHUNK_OVERLAP = 50


def split_into_chunks(
    text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP
) -> list[str]:
    """Split text into fixed-size overlapping character chunks."""
    if chunk_size <= overlap:
        raise ValueError("chunk_size must be larger than overlap")
    step = chunk_size - overlap
    return [text[i : i + chunk_size] for i in range(0, len(text), step)]


def term_overlap_score(terms: list[str], text: str) -> int:
    """Count literal occurrences of every query term in text (case-insensitive)."""
    text_lower = text.lower()
    return sum(text_lower.count(term) for term in terms if term)


@dataclass(frozen=True)
class DocumentChunk:
    chunk_id: str
    index: int
    text: str


@dataclass
class StoredDocument:
    """A private document already reduced to text and chunked."""

    document_id: str
    owner: str
    filename: str
    chunks: list[DocumentChunk]
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PrivateDocumentStore:
    """Caller-private documents, searchable only by their owner."""

    def __init__(self) -> None:
        self._documents: dict[str, StoredDocument] = {}
        self._lock = threading.Lock()

    def add_document(self, owner: str, filename: str, text: str) -> StoredDocument:
        """Chunk and store extracted document text for an owner.

        Args:
            owner: Identity the document belongs to.
            filename: Original file name, kept for attribution.
            text: Extracted plain text.

        Returns:
            The stored document record.
        """
        document_id = uuid.uuid4().hex
        chunks = [
            DocumentChunk(chunk_id=f"{document_id}_chunk_{i}", index=i, text=chunk)
            for i, chunk in enumerate(split_into_chunks(text))
        ]
        document = StoredDocument(
            document_id=document_id, owner=owner, filename=filename, chunks=chunks
        )
        with self._lock:
            self._documents[document_id] = document
        logger.info(f"Document stored: {document_id} ({len(chunks)} chunks) for {owner}")
        return document

    def remove_document(self, document_id: str) -> bool:
        with self._lock:
            return self._documents.pop(document_id, None) is not None

    def documents_for(self, owner: str) -> list[StoredDocument]:
        with self._lock:
            return [d for d in self._documents.values() if d.owner == owner]

    async def search(self, query: str, owner: str, limit: int = 5) -> list[DocumentHit]:
        """Return the owner's top chunks by term-overlap score.

        Chunks with zero score are dropped.
        """
        terms = tokenize(query)
        hits: list[DocumentHit] = []
        for document in self.documents_for(owner):
            for chunk in document.chunks:
                score = term_overlap_score(terms, chunk.text)
                if score > 0:
                    hits.append(
                        DocumentHit(
                            content=chunk.text,
                            source_id=chunk.chunk_id,
                            score=score,
                            title=document.filename,
                        )
                    )
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]


DEFAULT_ARTICLES: tuple[dict[str, str], ...] = (
    {
        "id": "1",
        "title": "What is Artificial Intelligence?",
        "content": (
            "Artificial Intelligence (AI) is the simulation of human intelligence processes "
            "by machines, especially computer systems. These processes include learning, "
            "reasoning, and self-correction."
        ),
        "category": "AI Basics",
    },
    {
        "id": "2",
        "title": "Machine Learning Fundamentals",
        "content": (
            "Machine Learning is a subset of AI that enables systems to learn and improve "
            "from experience without being explicitly programmed. It uses algorithms to "
            "analyze data and make predictions."
        ),
        "category": "Machine Learning",
    },
    {
        "id": "3",
        "title": "Natural Language Processing",
        "content": (
            "Natural Language Processing (NLP) is a branch of AI that focuses on the "
            "interaction between computers and human language. It enables machines to "
            "understand, interpret, and generate human language."
        ),
        "category": "NLP",
    },
    {
        "id": "4",
        "title": "Deep Learning",
        "content": (
            "Deep Learning is a subset of machine learning that uses artificial neural "
            "networks with multiple layers to learn representations of data. It powers "
            "modern AI applications like image recognition and language models."
        ),
        "category": "Deep Learning",
    },
    {
        "id": "5",
        "title": "Data Science Overview",
        "content": (
            "Data Science combines statistics, programming, and domain expertise to extract "
            "meaningful insights from data. It involves data collection, processing, "
            "analysis, and visualization."
        ),
        "category": "Data Science",
    },
)


class KnowledgeBase:
    """Shared knowledge base loaded from a JSON article list."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path else None
        self._articles: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._articles)

    def load(self) -> int:
        """(Re)load articles from the configured file.

        Falls back to the built-in articles when no file is configured or it
        cannot be read.

        Returns:
            Number of articles loaded.
        """
        articles: list[dict[str, Any]] = list(DEFAULT_ARTICLES)
        if self._path is not None:
            try:
                loaded = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"Error loading knowledge base from {self._path}: {e}")
            else:
                if isinstance(loaded, list) and all(isinstance(a, dict) for a in loaded):
                    articles = loaded
                else:
                    logger.error(
                        f"Knowledge base at {self._path} is not a list of articles, "
                        "using built-in articles"
                    )

        with self._lock:
            self._articles = articles
        logger.info(f"Loaded {len(articles)} articles into knowledge base")
        return len(articles)

    def reload(self) -> int:
        return self.load()

    async def search(self, query: str, limit: int = 3) -> list[DocumentHit]:
        """Return the top articles by term-overlap score over title and content."""
        if self.size == 0:
            self.load()

        terms = tokenize(query)
        with self._lock:
            articles = list(self._articles)

        hits = []
        for article in articles:
            content = str(article.get("content", ""))
            title = str(article.get("title", ""))
            score = term_overlap_score(terms, f"{content} {title}")
            if score > 0:
                hits.append(
                    DocumentHit(
                        content=content,
                        source_id=str(article.get("id", "")),
                        score=score,
                        title=title or None,
                    )
                )
        hits.sort(key=lambda hit: hit.score, reverse=True)
        logger.debug(f"Knowledge base query returned {len(hits[:limit])} results")
        return hits[:limit]


__all__ = [
    "DEFAULT_ARTICLES",
    "DocumentChunk",
    "KnowledgeBase",
    "PrivateDocumentStore",
    "StoredDocument",
    "split_into_chunks",
    "term_overlap_score",
]
