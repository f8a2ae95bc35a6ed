"""Shared pytest fixtures for the DeskChat test suite.

Provides:
  - FakeGateway: stand-in for LLMGateway with call tracking
  - FakeRetrieval: stand-in for RetrievalStore.search with call tracking
  - FakeTransport: records outbound WhatsApp sends
  - db_engine / session_factory / db: in-memory SQLite (aiosqlite), seeded
  - store, gateway, retrieval, chat_engine: engine wired to the fakes

All external service calls are faked in every test; no real SDK usage.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.database import init_db
from app.services.chat.engine import ChatEngine
from app.services.chat.store import ConversationStore
from app.services.rag.retrieval import ScoredChunk


# ---------------------------------------------------------------------------
# Fake LLM gateway
# ---------------------------------------------------------------------------


class FakeGateway:
    """Fake LLMGateway. Returns configurable completions and embeddings.

    ``intent_label`` answers intent classification prompts; every other
    prompt gets ``answer``.
    """

    def __init__(
        self,
        answer: str = "Resposta gerada",
        intent_label: str = "QUESTION",
        embed_vector: list[float] | None = None,
        embedding_enabled: bool = True,
    ) -> None:
        self.answer = answer
        self.intent_label = intent_label
        self.embed_vector = embed_vector if embed_vector is not None else [1.0, 0.0, 0.0]
        self.embedding_enabled = embedding_enabled
        self.complete_calls: list[str] = []
        self.embed_calls: list[str] = []

    @property
    def classification_calls(self) -> list[str]:
        return [p for p in self.complete_calls if p.startswith("Classifique a intenção")]

    @property
    def answer_calls(self) -> list[str]:
        return [p for p in self.complete_calls if not p.startswith("Classifique a intenção")]

    async def complete(self, prompt: str, system_prompt: str = "") -> str:
        self.complete_calls.append(prompt)
        if prompt.startswith("Classifique a intenção"):
            return self.intent_label
        return self.answer

    async def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        if not self.embedding_enabled:
            return []
        return list(self.embed_vector)

    async def has_embedding_capability(self) -> bool:
        return self.embedding_enabled


# ---------------------------------------------------------------------------
# Fake retrieval
# ---------------------------------------------------------------------------


class FakeRetrieval:
    """Fake RetrievalStore.search returning fixed chunks."""

    def __init__(self, contents: Sequence[str] = ()) -> None:
        self._chunks = [
            ScoredChunk(id=i, filename="doc.txt", content=c, score=1.0 - i * 0.1)
            for i, c in enumerate(contents)
        ]
        self.search_calls: list[str] = []

    async def search(self, query: str, limit: int | None = None) -> list[ScoredChunk]:
        self.search_calls.append(query)
        return list(self._chunks)


# ---------------------------------------------------------------------------
# Fake WhatsApp transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Records every send; raises ``error`` instead when set."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[dict[str, Any]] = []

    async def send(self, to: str, text: str, options: Sequence[Any] | None = None) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "text": text, "options": list(options) if options else None})


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine() -> AsyncIterator[Any]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: Any) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(bind=db_engine, session_factory=factory)
    return factory


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db: AsyncSession) -> ConversationStore:
    return ConversationStore(db)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def retrieval() -> FakeRetrieval:
    return FakeRetrieval(["Horário: 8h às 18h.", "Garantia de 90 dias."])


@pytest.fixture
def chat_engine(
    store: ConversationStore,
    retrieval: FakeRetrieval,
    gateway: FakeGateway,
) -> ChatEngine:
    return ChatEngine(store=store, retrieval=retrieval, llm=gateway)
