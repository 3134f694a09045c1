"""
Pydantic schemas for chat endpoints.
"""
from datetime import datetime
from typing import List
from pydantic import BaseModel, Field

from chatquota.core.config import DEFAULT_CHAT_MODEL
from chatquota.services.chat_service import MAX_MESSAGE_LENGTH


class ChatRequest(BaseModel):
    """Request schema for sending a chat message."""
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH, description="User message")
    model: str = Field(default=DEFAULT_CHAT_MODEL, max_length=50, description="Model identifier")

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Explain optimistic locking in two sentences.",
                "model": "gpt-3.5-turbo"
            }
        }


class ChatResponse(BaseModel):
    """Successful chat send."""
    response: str = Field(..., description="Assistant reply")
    tokens_used: int = Field(..., description="Tokens billed for this message")
    model: str
    timestamp: datetime


class ChatPermissionResponse(BaseModel):
    can_chat: bool
    remaining_tokens: int


class RemainingTokensResponse(BaseModel):
    remaining_tokens: int


class ChatHistoryItem(BaseModel):
    id: int
    user_message: str
    ai_response: str
    tokens_used: int
    model: str
    created_at: datetime

    class Config:
        from_attributes = True


class ChatHistoryResponse(BaseModel):
    page: int
    page_size: int
    items: List[ChatHistoryItem]


class ConnectionTestResponse(BaseModel):
    """Result of probing the completion provider."""
    is_connected: bool
    message: str
