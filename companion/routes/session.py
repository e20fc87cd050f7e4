"""
Progress, chat-session and lesson routes.

Storage is chosen per request from the X-User-Id header: a signed-in user is
served from Supabase, anyone else from the local store.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from companion import config
from companion.errors import PersistenceError
from companion.models import AVAILABLE_MODELS, SUPPORTED_LANGUAGES
from companion.services.storage import (
    LocalStorageAdapter,
    StorageAdapter,
    select_adapter,
    sync_local_to_remote,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["session"])


def get_storage(x_user_id: Optional[str] = Header(default=None)) -> StorageAdapter:
    return select_adapter(x_user_id)


def _unavailable(exc: PersistenceError) -> JSONResponse:
    logger.warning("Storage unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"error": str(exc)})


# ── Options ────────────────────────────────────────────────────────────

@router.get("/languages")
async def list_languages() -> list[str]:
    return list(SUPPORTED_LANGUAGES)


@router.get("/models")
async def list_models() -> list[dict]:
    return [dict(m) for m in AVAILABLE_MODELS]


# ── Progress ───────────────────────────────────────────────────────────

@router.get("/progress")
async def get_progress(storage: StorageAdapter = Depends(get_storage)):
    try:
        progress = await storage.get_progress()
    except PersistenceError as exc:
        return _unavailable(exc)
    return progress.model_dump()


# ── Chat sessions ──────────────────────────────────────────────────────

@router.get("/sessions")
async def list_sessions(storage: StorageAdapter = Depends(get_storage)):
    """List chat sessions, newest first."""
    try:
        sessions = await storage.list_sessions()
    except PersistenceError as exc:
        return _unavailable(exc)
    return [s.model_dump(mode="json") for s in sessions]


@router.get("/sessions/lookup")
async def lookup_session(corrected_text: str, storage: StorageAdapter = Depends(get_storage)):
    """Find the session for an exact corrected text."""
    try:
        session = await storage.find_session_by_corrected_text(corrected_text)
    except PersistenceError as exc:
        return _unavailable(exc)
    if session is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})
    return session.model_dump(mode="json")


# ── Lessons ────────────────────────────────────────────────────────────

@router.get("/lessons")
async def list_lessons(storage: StorageAdapter = Depends(get_storage)):
    try:
        lessons = await storage.list_lessons()
    except PersistenceError as exc:
        return _unavailable(exc)
    return [lesson.model_dump(mode="json") for lesson in lessons]


@router.delete("/lessons/{lesson_id}")
async def delete_lesson(lesson_id: str, storage: StorageAdapter = Depends(get_storage)):
    try:
        await storage.delete_lesson(lesson_id)
    except PersistenceError as exc:
        return _unavailable(exc)
    return {"status": "deleted", "id": lesson_id}


# ── Sync ───────────────────────────────────────────────────────────────

@router.post("/storage/sync")
async def sync_storage(x_user_id: Optional[str] = Header(default=None)):
    """Copy local sessions, lessons and progress into the signed-in account."""
    if not x_user_id:
        return JSONResponse(status_code=400, content={"error": "Sign in to sync local data"})
    local = LocalStorageAdapter(config.LOCAL_STORE_DIR)
    try:
        report = await sync_local_to_remote(local, select_adapter(x_user_id))
    except PersistenceError as exc:
        return _unavailable(exc)
    return report.model_dump()
