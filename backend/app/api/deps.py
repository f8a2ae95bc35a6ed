"""Shared FastAPI dependencies: auth, database sessions, service injection.

The LLM gateway, WhatsApp transport, connection supervisor and turn lock
are created once during the FastAPI lifespan and stored on app.state.
All downstream code retrieves them via Depends(), never by direct import.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidTokenError
from app.core.security import admin_subject
from app.db.database import get_async_session
from app.services.chat.control import ControlService
from app.services.chat.engine import ChatEngine
from app.services.chat.locking import TurnLock
from app.services.chat.store import ConversationStore
from app.services.llm.gateway import LLMGateway
from app.services.rag.retrieval import RetrievalStore
from app.services.whatsapp.base import WhatsAppTransport
from app.services.whatsapp.supervisor import ConnectionSupervisor

_bearer = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

async def get_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncSession:
    """Yield an async database session."""
    return session


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

async def get_current_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    """Validate the admin bearer token and return the username."""
    if credentials is None or not credentials.credentials:
        raise InvalidTokenError()
    return admin_subject(credentials.credentials)


# ---------------------------------------------------------------------------
# Singletons: retrieved from app.state (set during lifespan)
# ---------------------------------------------------------------------------

def get_llm_gateway(request: Request) -> LLMGateway:
    return request.app.state.llm_gateway


def get_turn_lock(request: Request) -> TurnLock:
    return request.app.state.turn_lock


def get_whatsapp_transport(request: Request) -> WhatsAppTransport:
    return request.app.state.whatsapp_transport


def get_connection_supervisor(request: Request) -> ConnectionSupervisor:
    return request.app.state.whatsapp_supervisor


# ---------------------------------------------------------------------------
# Service constructors: wired via Depends()
# ---------------------------------------------------------------------------

async def get_conversation_store(
    db: AsyncSession = Depends(get_db),
) -> ConversationStore:
    return ConversationStore(db)


async def get_retrieval_store(
    db: AsyncSession = Depends(get_db),
    gateway: LLMGateway = Depends(get_llm_gateway),
) -> RetrievalStore:
    return RetrievalStore(db=db, embedder=gateway)


async def get_chat_engine(
    store: ConversationStore = Depends(get_conversation_store),
    retrieval: RetrievalStore = Depends(get_retrieval_store),
    gateway: LLMGateway = Depends(get_llm_gateway),
) -> ChatEngine:
    """Return a ChatEngine wired to this request's DB session."""
    return ChatEngine(store=store, retrieval=retrieval, llm=gateway)


async def get_control_service(
    store: ConversationStore = Depends(get_conversation_store),
    transport: WhatsAppTransport = Depends(get_whatsapp_transport),
) -> ControlService:
    return ControlService(store=store, transport=transport)
