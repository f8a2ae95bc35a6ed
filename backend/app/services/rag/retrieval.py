"""Document chunk store with naive vector search.

Public API:
    - chunk_text(text, size) → list[str]
    - cosine_similarity(a, b) → float
    - RetrievalStore.ingest(filename, content) → int
    - RetrievalStore.search(query, limit) → list[ScoredChunk]

search() scores every stored chunk in Python. That is a full scan and
is meant for document volumes in the low thousands of chunks.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol, Sequence

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import EmbeddingUnavailableError, IngestionError
from app.models.document import DocumentChunk

logger = structlog.get_logger(__name__)


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...

    async def has_embedding_capability(self) -> bool: ...


@dataclass(frozen=True)
class ScoredChunk:
    """A stored chunk paired with its similarity to the query."""

    id: int
    filename: str
    content: str
    score: float


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def chunk_text(text: str, size: int) -> list[str]:
    """Split text into contiguous fixed-size character chunks, no overlap."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between a and b.

    Empty, length-mismatched or zero-norm vectors score 0.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RetrievalStore:
    """Ingests and searches DocumentChunk rows within one DB session."""

    def __init__(
        self,
        db: AsyncSession,
        embedder: Embedder,
        chunk_size: int | None = None,
    ) -> None:
        self._db = db
        self._embedder = embedder
        self._chunk_size = chunk_size or settings.chunk_size

    async def ingest(self, filename: str, content: str) -> int:
        """Chunk, embed and persist ``content``. Returns the number of chunks stored.

        Raises:
            EmbeddingUnavailableError: no embedding credential is configured.
            IngestionError: an embedding call failed or returned nothing.
        """
        if not await self._embedder.has_embedding_capability():
            raise EmbeddingUnavailableError()

        chunks = chunk_text(content, self._chunk_size)
        rows: list[DocumentChunk] = []
        for index, chunk in enumerate(chunks):
            try:
                vector = await self._embedder.embed(chunk)
            except Exception as e:
                logger.error("chunk_embed_failed", filename=filename, chunk_index=index, error=str(e))
                raise IngestionError(f"Embedding failed for chunk {index} of {filename}: {e}") from e
            if not vector:
                raise IngestionError(f"Empty embedding for chunk {index} of {filename}")
            rows.append(DocumentChunk(filename=filename, content=chunk, embedding=vector))

        self._db.add_all(rows)
        await self._db.flush()
        logger.info("document_ingested", filename=filename, chunks=len(rows))
        return len(rows)

    async def search(self, query: str, limit: int | None = None) -> list[ScoredChunk]:
        """Top ``limit`` chunks by cosine similarity, best first.

        Never raises: missing embedding capability or any failure yields [].
        """
        limit = settings.retrieval_limit if limit is None else limit
        try:
            query_vector = await self._embedder.embed(query)
            if not query_vector:
                return []
            rows = (await self._db.execute(select(DocumentChunk))).scalars().all()
        except Exception as e:
            logger.warning("retrieval_search_failed", error=str(e))
            return []

        scored = [
            ScoredChunk(
                id=row.id,
                filename=row.filename,
                content=row.content,
                score=cosine_similarity(query_vector, row.embedding or []),
            )
            for row in rows
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        results = scored[:limit]
        logger.debug("retrieval_search_ok", candidates=len(rows), returned=len(results))
        return results

    # -- Admin helpers ------------------------------------------------------

    async def count_chunks(self) -> int:
        return int((await self._db.execute(select(func.count(DocumentChunk.id)))).scalar_one())

    async def list_documents(self) -> list[dict]:
        """One entry per filename with its chunk count and first ingestion time."""
        stmt = (
            select(
                DocumentChunk.filename,
                func.count(DocumentChunk.id),
                func.min(DocumentChunk.created_at),
            )
            .group_by(DocumentChunk.filename)
            .order_by(func.min(DocumentChunk.created_at).desc())
        )
        result = await self._db.execute(stmt)
        return [
            {"filename": filename, "chunks": count, "created_at": created_at}
            for filename, count, created_at in result.all()
        ]

    async def delete_document(self, filename: str) -> int:
        """Delete every chunk of ``filename``. Returns rows removed."""
        result = await self._db.execute(
            delete(DocumentChunk).where(DocumentChunk.filename == filename)
        )
        logger.info("document_deleted", filename=filename, chunks=result.rowcount)
        return result.rowcount or 0
