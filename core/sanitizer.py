# core/sanitizer.py
"""
Cleans raw user input before it reaches the model or the session history.
"""
import re

# Conversation labels users paste in from transcripts. The longer
# "Pregunta del Usuario:" must come before "Usuario:" in the alternation.
ROLE_MARKER_PATTERN = re.compile(
    r"(Pregunta del Usuario:|Usuario:|Asistente:|Assistant:|Respuesta:|Interacción:"
    r"|User:|Question:|Answer:|Interaction:)",
    re.IGNORECASE,
)
MENTION_PATTERN = re.compile(r"@[\w.-]+")


def clean_user_message(message: str) -> str:
    """
    Strips role markers and @mentions, then trims surrounding whitespace.

    Removal is repeated until nothing changes, since deleting one token can
    join its neighbours into a new marker ("UsuUsuario:ario:"). This keeps
    the function idempotent.
    """
    cleaned = message
    while True:
        stripped = MENTION_PATTERN.sub("", ROLE_MARKER_PATTERN.sub("", cleaned))
        if stripped == cleaned:
            break
        cleaned = stripped
    return cleaned.strip()
