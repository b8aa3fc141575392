# main.py

"""
The main entry point of the application.

This module configures logging, builds the FastAPI application with its
shared session state, registers the error handlers and the chat router, and
defines the main execution block that validates the configuration and
starts the Uvicorn server.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers.chat import router as chat_router
from api.session_manager import SessionLockSet, SessionStore
from config import Settings, settings
from core.exceptions import ConfigurationError, MessageValidationError, RelayError
from core.llm.base import LLMService
from core.llm.factory import get_llm_service

# --- Logging Configuration ---
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Creates the LLM service at startup and closes it on shutdown."""
    if app.state.llm_service is None:
        try:
            app.state.llm_service = get_llm_service(app.state.settings)
        except ConfigurationError as e:
            logger.critical(f"FATAL: {e}")
            raise
    yield
    await app.state.llm_service.close()
    logger.info("LLM service closed.")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Renders malformed request bodies as a 400 `{"error"}` like every other caller fault."""
    errors = exc.errors()
    logger.info(f"Rejected malformed request to {request.url.path}: {errors}")
    first = errors[0] if errors else {}
    location = tuple(first.get("loc", ()))
    if first.get("type") == "missing" and location in {("body",), ("body", "message")}:
        message = MessageValidationError.default_message
    else:
        field = ".".join(str(part) for part in location[1:]) or "body"
        message = f"Solicitud inválida en '{field}': {first.get('msg', 'valor no válido')}."
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(f"An unexpected error occurred while handling {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor."})


def create_app(app_settings: Settings | None = None, llm_service: LLMService | None = None) -> FastAPI:
    """
    Builds the application. The session store, lock set and LLM service are
    owned by the app and reached through api.dependencies.
    """
    app_settings = app_settings or settings

    # --- FastAPI Application Initialization ---
    app = FastAPI(
        title="ShareUnixIA Chat Relay",
        version="1.0.0",
        description="Relays chat messages to Together AI and streams the replies "
                    "back as Server-Sent Events, keeping a short per-session history.",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.session_store = SessionStore(max_history_messages=app_settings.max_history_messages)
    app.state.lock_set = SessionLockSet()
    app.state.llm_service = llm_service

    # --- Cross-Origin Requests ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error Handlers ---
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # --- Include API Routers ---
    app.include_router(chat_router)
    logger.info("Chat API router included successfully.")

    @app.get("/", tags=["Health Check"])
    def root() -> Dict[str, str]:
        """
        Root endpoint for basic health checks.
        """
        return {"status": "online", "message": "ShareUnixIA Chat Relay"}

    return app


app = create_app()


# --- Main Execution Block ---
if __name__ == "__main__":
    if not settings.together_api_key:
        logger.critical("FATAL: TOGETHER_API_KEY is not set. Add it as an environment variable.")
        sys.exit(1)
    logger.info(f"Starting Uvicorn server on port {settings.port}...")
    uvicorn.run("main:app", host=settings.host, port=settings.port)
