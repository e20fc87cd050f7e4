"""
Companion WebSocket endpoint.

One CorrectionSession per connection at /ws/companion. Storage is chosen from
the optional user_id query parameter (signed-in -> Supabase, else local).

Frontend sends:
    {"type": "text", "content": "..."}               # draft changed
    {"type": "auto_detect", "enabled": false}         # toggle auto-detect
    {"type": "language", "value": "french"}           # manual language
    {"type": "model", "value": "gpt-4o"}              # model choice
    {"type": "correct"}                               # correct the draft
    {"type": "explain", "corrected_text": "..."}      # open tutor session
    {"type": "message", "content": "...", "corrected_text": "..."}
    {"type": "lesson", "corrected_text": "..."}       # save a tiny lesson

Backend responds:
    {"type": "state", "state": {...}}                 # after every input change
    {"type": "detection", "language": ..., "state": {...}}  # pushed after debounce
    {"type": "correction", "result": {...}, "progress": {...}}
    {"type": "session", "session": {...}}
    {"type": "lesson", "lesson": {...}, "progress": {...}}
    {"type": "error", "kind": "...", "message": "..."}
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from companion import config
from companion.errors import CompanionError, ValidationError
from companion.models import DetectionState
from companion.routes.ai import get_ai_service
from companion.services.orchestrator import CorrectionSession
from companion.services.storage import select_adapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["conversation"])


@router.websocket("/ws/companion")
async def companion_ws(websocket: WebSocket, user_id: Optional[str] = None) -> None:
    """WebSocket endpoint driving one learner's correction session."""
    await websocket.accept()

    async def push_detection(state: DetectionState) -> None:
        await websocket.send_json({
            "type": "detection",
            "language": state.language,
            "generation": state.generation,
            "state": session.snapshot(),
        })

    session = CorrectionSession(
        get_ai_service(),
        select_adapter(user_id),
        debounce=config.DETECT_DEBOUNCE_MS / 1000,
        timeout=config.REQUEST_TIMEOUT_S,
        on_detected=push_detection,
    )
    logger.info("Companion session opened (%s storage)", "account" if user_id else "local")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "kind": "ValidationError", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "kind": "ValidationError", "message": "Expected an object"})
                continue

            try:
                reply = await _handle_message(session, message)
            except CompanionError as exc:
                reply = {"type": "error", "kind": type(exc).__name__, "message": str(exc)}
            except Exception as exc:
                logger.exception("Error handling companion message")
                reply = {"type": "error", "kind": type(exc).__name__, "message": str(exc)}
            await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.info("Companion client disconnected")
    finally:
        session.close()


def _state(session: CorrectionSession) -> dict:
    return {"type": "state", "state": session.snapshot()}


def _progress(session: CorrectionSession) -> Optional[dict]:
    # None while progress could not be loaded from storage.
    progress = session.orchestrator.progress
    return progress.model_dump() if progress is not None else None


def _corrected_text(session: CorrectionSession, message: dict) -> str:
    corrected = message.get("corrected_text")
    if corrected:
        return str(corrected)
    result = session.orchestrator.last_result
    if result is None:
        raise ValidationError("Correct a text first")
    return result.corrected_text


async def _handle_message(session: CorrectionSession, message: dict) -> dict:
    msg_type = message.get("type", "")
    orchestrator = session.orchestrator

    if msg_type == "text":
        session.set_text(str(message.get("content", "")))
        return _state(session)

    if msg_type == "auto_detect":
        session.set_auto_detect(bool(message.get("enabled")))
        return _state(session)

    if msg_type == "language":
        session.select_language(str(message.get("value", "")))
        return _state(session)

    if msg_type == "model":
        session.select_model(str(message.get("value", "")))
        return _state(session)

    if msg_type == "correct":
        result = await session.correct()
        return {
            "type": "correction",
            "result": result.model_dump(mode="json"),
            "progress": _progress(session),
        }

    if msg_type == "explain":
        chat_session = await orchestrator.open_session(_corrected_text(session, message))
        return {"type": "session", "session": chat_session.model_dump(mode="json")}

    if msg_type == "message":
        chat_session = await orchestrator.send_message(
            _corrected_text(session, message), str(message.get("content", ""))
        )
        return {"type": "session", "session": chat_session.model_dump(mode="json")}

    if msg_type == "lesson":
        lesson = await orchestrator.create_lesson(_corrected_text(session, message))
        return {
            "type": "lesson",
            "lesson": lesson.model_dump(mode="json"),
            "progress": _progress(session),
        }

    return {"type": "error", "kind": "ValidationError", "message": f"Unknown message type: {msg_type}"}
