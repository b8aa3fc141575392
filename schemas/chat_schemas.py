# schemas/chat_schemas.py
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """Represents a single turn in the conversation history."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(..., examples=["user", "assistant"])
    content: str


class ChatRequest(BaseModel):
    """
    Defines the structure for a chat request body.
    `message` is optional at the schema level so that a missing message is
    answered with the relay's own 400 error after the session lock is taken.
    """
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = Field(default=None, examples=["Cuál es el saldo"])
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ErrorResponse(BaseModel):
    error: str


class HistoryResponse(BaseModel):
    session_id: str = Field(..., serialization_alias="sessionId")
    history: List[ChatMessage] = Field(default_factory=list)
