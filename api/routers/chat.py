# api/routers/chat.py
import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from api.dependencies import get_llm, get_lock_set, get_session_store, get_settings
from api.session_manager import SessionLockSet, SessionStore
from config import Settings
from core import sse
from core.chat_orchestrator import relay_completion_stream
from core.exceptions import MessageValidationError, SessionBusyError, SessionConflictError, UpstreamError
from core.llm.base import LLMService
from core.prompt_builder import build_messages
from core.sanitizer import clean_user_message
from schemas.chat_schemas import ChatRequest, ErrorResponse, HistoryResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Chat"]
)

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


@router.post("/together-ai", responses=ERROR_RESPONSES)
async def together_ai_endpoint(
        request: ChatRequest,
        settings: Settings = Depends(get_settings),
        store: SessionStore = Depends(get_session_store),
        locks: SessionLockSet = Depends(get_lock_set),
        llm_service: LLMService = Depends(get_llm),
):
    """
    Relays a chat message to Together AI and streams the reply back as
    Server-Sent Events.

    Only one request per session may run at a time; a concurrent request for
    the same session is rejected with 429 instead of waiting. Errors raised
    before the stream starts become JSON error responses. Once the stream has
    started, errors are sent as an `event: error` frame.
    """
    session_id = request.session_id or settings.default_session_id

    # No await between the check and the lock.
    if locks.is_locked(session_id):
        logger.warning(f"Rejected concurrent request for session_id: '{session_id}'")
        raise SessionBusyError()
    locks.lock(session_id)

    streaming = False
    try:
        if not request.message:
            raise MessageValidationError()

        cleaned_message = clean_user_message(request.message)
        history = store.get_history(session_id)
        messages = build_messages(history, cleaned_message)
        logger.info(f"Forwarding message for session_id '{session_id}' with {len(history)} prior turns.")

        try:
            deltas = await llm_service.open_stream(messages)
        except Exception as e:
            logger.error(f"Error while calling Together AI for session_id '{session_id}': {e}", exc_info=True)
            raise UpstreamError(str(e) or None) from e

        release = locks.releaser(session_id)
        response = StreamingResponse(
            relay_completion_stream(
                deltas,
                session_id=session_id,
                user_message=cleaned_message,
                store=store,
                on_finish=release,
            ),
            media_type="text/event-stream",
            headers=sse.STREAM_HEADERS,
            # Second release path for a response torn down before its body runs.
            background=BackgroundTask(release),
        )
        streaming = True
        return response
    finally:
        if not streaming:
            locks.unlock(session_id)


@router.get("/sessions/{session_id}/history", response_model=HistoryResponse)
async def get_session_history(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Returns the turns stored for a session."""
    return HistoryResponse(session_id=session_id, history=store.peek_history(session_id))


@router.delete(
    "/sessions/{session_id}/history",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
)
async def clear_session_history(
        session_id: str,
        store: SessionStore = Depends(get_session_store),
        locks: SessionLockSet = Depends(get_lock_set),
):
    """Forgets a session. Refused while a response for it is streaming."""
    if locks.is_locked(session_id):
        raise SessionConflictError()
    store.clear_history(session_id)
