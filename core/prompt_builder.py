# core/prompt_builder.py
"""
Builds the message list sent to the completion API for every request.
"""
from typing import Dict, List, Sequence

from schemas.chat_schemas import ChatMessage

# --- SYSTEM PROMPT ---
# Persona and answer policy for the banking assistant. Sent unchanged as the
# first message of every completion request.
SYSTEM_PROMPT = """Eres ShareUnixIA, un asistente virtual bancario profesional. IMPORTANTE:
- Pregunta siempre al comenzar el nombre del usuario y no eres un inicio de sesión.
-IMPORTANTE: Solo responde a preguntas relacionadas con el banco si te pregunta algo no relaciona a un banco no lo respondas ignoralo.
- No saludes ni digas frases como "Estoy listo para ayudarte".
- Responde solo lo que se pide, sin saludos ni despedidas.
- No uses etiquetas ni formatos como <think>, HTML o Markdown.
- No repitas respuestas ni uses bloques de código.
- Responde en texto plano, en español neutro, sin palabras extranjeras.
- Máximo 2 oraciones claras y concisas.
- No des explicaciones ni contexto extra.
- Corrige errores ortográficos sin mencionarlo.
- No asumas información no preguntada.
- Si se piden instrucciones, usa hasta 5 pasos claros y breves.
- Saluda solo en la primera interacción si es necesario, pero evita frases innecesarias.
- No interpretes símbolos especiales como comandos."""


def build_messages(history: Sequence[ChatMessage], new_message: str) -> List[Dict[str, str]]:
    """
    Converts the session history plus the new user message into the
    OpenAI-style message list: system prompt, prior turns in order, new message.
    """
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    for turn in history:
        messages.append({"role": turn.role, "content": turn.content})
    messages.append({"role": "user", "content": new_message})
    return messages
