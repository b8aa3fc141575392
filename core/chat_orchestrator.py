# core/chat_orchestrator.py
import logging
from typing import AsyncGenerator, AsyncIterator, Callable

from api.session_manager import SessionStore
from core import sse
from schemas.chat_schemas import ChatMessage

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Error desconocido en el stream."


async def relay_completion_stream(
        deltas: AsyncIterator[str],
        session_id: str,
        user_message: str,
        store: SessionStore,
        on_finish: Callable[[], None],
) -> AsyncGenerator[str, None]:
    """
    Forwards an accepted completion stream to the client as SSE frames and
    saves the exchange to the session history once the stream ends cleanly.

    Response headers are already on the wire when this generator runs, so a
    failure can only be reported in-band with an `event: error` frame. A
    partial reply is never saved. on_finish runs on every exit path.
    """
    response_chunks = []
    try:
        async for delta in deltas:
            if not delta:
                continue
            response_chunks.append(delta)
            yield sse.data_event({"response": delta})

        yield sse.DONE_EVENT

        final_response_content = "".join(response_chunks).strip()
        logger.info(f"Saving full conversation turn for session_id: '{session_id}'")
        store.append_exchange(
            session_id,
            ChatMessage(role="user", content=user_message),
            ChatMessage(role="assistant", content=final_response_content),
        )

    except Exception as e:
        logger.error(
            f"Stream for session_id '{session_id}' failed after {len(response_chunks)} chunks: {e}",
            exc_info=True
        )
        yield sse.error_event(str(e) or STREAM_ERROR_MESSAGE)

    finally:
        on_finish()
