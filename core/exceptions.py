# core/exceptions.py
"""
Error types raised by the relay.

Each per-request error carries the message that is returned to the caller
in the `{"error": ...}` body; the HTTP status lives on the class so the
exception handlers in main.py stay generic.
"""
from fastapi import status


class RelayError(Exception):
    """Base class for errors surfaced to the HTTP caller."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Error interno del servidor."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(Exception):
    """Raised at startup when a required setting such as the API key is missing."""


class SessionBusyError(RelayError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Ya se está procesando una respuesta para esta sesión. Por favor, espere."


class MessageValidationError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "No se proporcionó ningún mensaje."


class SessionConflictError(RelayError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "La sesión tiene una respuesta en curso y no puede modificarse."


class UpstreamError(RelayError):
    """The completion API call failed or its stream broke."""
    default_message = "Error interno del servidor al procesar la solicitud con Together AI."
