# api/dependencies.py
"""
This module defines reusable dependencies for the API.
The shared state lives on app.state and is handed to routes from here,
which lets tests build an application with their own store or LLM stub.
"""
from fastapi import Request

from api.session_manager import SessionLockSet, SessionStore
from config import Settings
from core.llm.base import LLMService
from core.llm.factory import get_llm_service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_lock_set(request: Request) -> SessionLockSet:
    return request.app.state.lock_set


def get_llm(request: Request) -> LLMService:
    """
    Returns the application's LLM service, building it on first use when the
    app was started without running its lifespan.
    """
    state = request.app.state
    if state.llm_service is None:
        state.llm_service = get_llm_service(state.settings)
    return state.llm_service
