"""Admin panel endpoints: inbox, takeover, departments, settings, knowledge base.

Every route requires an admin bearer token from /v1/auth/login.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_control_service,
    get_conversation_store,
    get_current_admin,
    get_db,
    get_retrieval_store,
)
from app.schemas.admin import (
    AgentMessageRequest,
    DepartmentIn,
    DepartmentOut,
    DocumentOut,
    SessionOut,
    SettingsUpdate,
    StatsResponse,
    UploadResponse,
)
from app.schemas.chat import MessageOut
from app.services.chat.control import ControlService
from app.services.chat.store import ConversationStore
from app.services.rag.parsing import extract_text_async
from app.services.rag.retrieval import RetrievalStore
from app.services.settings import list_settings, upsert_setting

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)

_MASK_PREFIX = "********"


# ---------------------------------------------------------------------------
# Dashboard / inbox
# ---------------------------------------------------------------------------

@router.get("/stats", response_model=StatsResponse)
async def stats(store: ConversationStore = Depends(get_conversation_store)) -> StatsResponse:
    return StatsResponse(**await store.stats())


@router.get("/sessions", response_model=list[SessionOut])
async def list_sessions(
    store: ConversationStore = Depends(get_conversation_store),
) -> list[SessionOut]:
    """Sessions, most recently active first."""
    return [SessionOut.model_validate(s) for s in await store.list_sessions()]


@router.get("/sessions/{session_id}/messages", response_model=list[MessageOut])
async def session_history(
    session_id: str,
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MessageOut]:
    await store.require_session(session_id)
    return [MessageOut.model_validate(m) for m in await store.history(session_id)]


@router.post("/sessions/{session_id}/read", response_model=SessionOut)
async def mark_read(
    session_id: str,
    control: ControlService = Depends(get_control_service),
) -> SessionOut:
    return SessionOut.model_validate(await control.mark_read(session_id))


@router.post("/sessions/{session_id}/assume", response_model=SessionOut)
async def assume_control(
    session_id: str,
    control: ControlService = Depends(get_control_service),
) -> SessionOut:
    return SessionOut.model_validate(await control.assume_control(session_id))


@router.post("/sessions/{session_id}/release", response_model=SessionOut)
async def release_control(
    session_id: str,
    control: ControlService = Depends(get_control_service),
) -> SessionOut:
    return SessionOut.model_validate(await control.release_control(session_id))


@router.post("/sessions/{session_id}/send", response_model=MessageOut)
async def send_as_agent(
    session_id: str,
    body: AgentMessageRequest,
    control: ControlService = Depends(get_control_service),
) -> MessageOut:
    return MessageOut.model_validate(await control.send_as_agent(session_id, body.text))


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

@router.get("/departments", response_model=list[DepartmentOut])
async def list_departments(
    store: ConversationStore = Depends(get_conversation_store),
) -> list[DepartmentOut]:
    return [DepartmentOut.model_validate(d) for d in await store.list_departments()]


@router.post("/departments", response_model=DepartmentOut, status_code=201)
async def create_department(
    body: DepartmentIn,
    store: ConversationStore = Depends(get_conversation_store),
) -> DepartmentOut:
    return DepartmentOut.model_validate(await store.create_department(**body.model_dump()))


@router.put("/departments/{department_id}", response_model=DepartmentOut)
async def update_department(
    department_id: int,
    body: DepartmentIn,
    store: ConversationStore = Depends(get_conversation_store),
) -> DepartmentOut:
    department = await store.update_department(department_id, **body.model_dump())
    return DepartmentOut.model_validate(department)


@router.delete("/departments/{department_id}", status_code=204)
async def delete_department(
    department_id: int,
    store: ConversationStore = Depends(get_conversation_store),
) -> None:
    await store.delete_department(department_id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get("/settings", response_model=dict[str, str])
async def get_settings(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Stored settings; API keys are masked."""
    return await list_settings(db)


@router.put("/settings", response_model=dict[str, str])
async def update_settings(
    body: SettingsUpdate,
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    for key, value in body.values.items():
        # The panel echoes masked secrets back unchanged.
        if value.startswith(_MASK_PREFIX):
            continue
        await upsert_setting(db, key, value)
    return await list_settings(db)


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------

@router.post("/rag/upload", response_model=UploadResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    retrieval: RetrievalStore = Depends(get_retrieval_store),
) -> UploadResponse:
    """Extract text from a PDF/TXT upload and ingest it."""
    filename = file.filename or "upload.txt"
    data = await file.read()
    text = await extract_text_async(filename, data)
    chunks = await retrieval.ingest(filename, text)
    return UploadResponse(filename=filename, chunks=chunks)


@router.get("/rag/documents", response_model=list[DocumentOut])
async def list_documents(
    retrieval: RetrievalStore = Depends(get_retrieval_store),
) -> list[DocumentOut]:
    return [DocumentOut(**doc) for doc in await retrieval.list_documents()]


@router.delete("/rag/documents/{filename}", status_code=204)
async def delete_document(
    filename: str,
    retrieval: RetrievalStore = Depends(get_retrieval_store),
) -> None:
    await retrieval.delete_document(filename)
