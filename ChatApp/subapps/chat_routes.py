import logging

from fastapi import APIRouter, Depends, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ChatApp.auth import get_current_user_id
from ChatApp.database import get_db
from ChatApp.schemas.chat import (
    DisplayMessageOut,
    ExchangeCreate,
    ExchangeOut,
    GenerateRequest,
    SessionOut,
    SessionsOut,
    StatusOut,
)
from ChatApp.services.chat_service import ChatService
from ChatApp.services.generation import generate_image, generate_text, generation_configured


router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

GENERATION_PATHS = ("/api/chat", "/api/image")


def _has_prompt(payload: GenerateRequest) -> bool:
    return isinstance(payload.prompt, str) and bool(payload.prompt.strip())


# Generation routes answer malformed bodies with the same {error} shape as an empty prompt;
# every other route keeps the default 422 response
async def generation_validation_handler(request: Request, exc: RequestValidationError):
    if request.url.path not in GENERATION_PATHS:
        return await request_validation_exception_handler(request, exc)
    errors = exc.errors()
    logger.info("api.generate.invalid: path=%s errors=%d", request.url.path, len(errors))
    if any("prompt" in err.get("loc", ()) for err in errors):
        return JSONResponse({"error": "Prompt is required"}, status_code=400)
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


# Generates the next assistant reply from a prompt and the prior conversation
@router.post("/chat")
async def chat(payload: GenerateRequest):
    logger.info("api.chat: prompt_chars=%d history=%d", len(payload.prompt or ""), len(payload.history))
    if not _has_prompt(payload):
        return JSONResponse({"error": "Prompt is required"}, status_code=400)
    try:
        text = await generate_text(payload.prompt, payload.history)
    except Exception:
        logger.exception("api.chat.error")
        return JSONResponse({"error": "Failed to generate response"}, status_code=500)
    return {"text": text}


# Generates an image response from a context-prefixed prompt
@router.post("/image")
async def image(payload: GenerateRequest):
    logger.info("api.image: prompt_chars=%d history=%d", len(payload.prompt or ""), len(payload.history))
    if not _has_prompt(payload):
        return JSONResponse({"error": "Prompt is required"}, status_code=400)
    try:
        text = await generate_image(payload.prompt, payload.history)
    except Exception:
        logger.exception("api.image.error")
        return JSONResponse({"error": "Failed to generate image"}, status_code=500)
    return {"text": text}


# Retrieves all chat sessions for the signed-in user, newest first
@router.get("/sessions")
def list_sessions(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SessionsOut:
    return ChatService(db).list_sessions(user_id=user_id)


# Starts a new chat session
@router.post("/sessions", status_code=201)
def create_session(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SessionOut:
    return ChatService(db).create_session(user_id=user_id)


# Retrieves the stored exchanges of a session in replay order
@router.get("/sessions/{session_id}/exchanges")
def list_exchanges(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[ExchangeOut]:
    return ChatService(db).list_exchanges(session_id=session_id, user_id=user_id)


# Stores one prompt/response exchange
@router.post("/sessions/{session_id}/exchanges", status_code=201)
def add_exchange(
    session_id: str,
    payload: ExchangeCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ExchangeOut:
    return ChatService(db).add_exchange(
        session_id=session_id,
        user_id=user_id,
        query=payload.query,
        datatext=payload.datatext,
        created_at=payload.created_at,
    )


# Retrieves the display messages of a session
@router.get("/sessions/{session_id}/messages")
def list_messages(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[DisplayMessageOut]:
    return ChatService(db).list_messages(session_id=session_id, user_id=user_id)


# Reports whether the store answers and a generation key is configured
@router.get("/status")
def status(db: Session = Depends(get_db)) -> StatusOut:
    return StatusOut(store=ChatService(db).store_ok(), gateway=generation_configured())
