"""
AI proxy routes: language detection, text correction and tutor chat.

Thin request/response wrappers around OpenAIService so clients that do not
hold a live companion WebSocket can still call each collaborator directly.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from companion.errors import UpstreamError
from companion.models import (
    ChatReply,
    ChatRequest,
    CorrectRequest,
    CorrectResponse,
    DetectRequest,
    DetectResponse,
)
from companion.services.openai_service import OpenAIService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai"])

# Shared service instance, instantiated once.
_ai_service = OpenAIService()


def get_ai_service() -> OpenAIService:
    return _ai_service


@router.post("/detect-language", response_model=DetectResponse)
async def detect_language(body: DetectRequest):
    if not body.text.strip():
        return JSONResponse(status_code=400, content={"error": "No text provided"})
    try:
        language = await get_ai_service().detect_language(body.text)
    except UpstreamError as exc:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return DetectResponse(language=language)


@router.post("/correct", response_model=CorrectResponse)
async def correct_text(body: CorrectRequest):
    if not body.text.strip():
        return JSONResponse(status_code=400, content={"error": "No text provided"})
    try:
        corrected = await get_ai_service().correct_text(
            body.text, model=body.model, language=body.language or ""
        )
    except UpstreamError as exc:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return CorrectResponse(corrected=corrected)


@router.post("/chat", response_model=ChatReply)
async def chat(body: ChatRequest):
    if not body.messages:
        return JSONResponse(status_code=400, content={"error": "No messages provided"})
    try:
        reply = await get_ai_service().chat(
            [m.model_dump() for m in body.messages],
            system_prompt=body.system_prompt,
            model=body.model,
        )
    except UpstreamError as exc:
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return ChatReply(reply=reply)
