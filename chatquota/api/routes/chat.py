"""
Chat endpoints.

Sending is metered against the user's current entitlement; denials come
back as structured 402/429 responses, provider and store failures as 502/503.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from chatquota.core.auth_dependency import get_current_user, get_db, require_admin
from chatquota.db.models.user import User
from chatquota.llm.provider import CompletionProvider
from chatquota.llm.router import get_completion_provider
from chatquota.schemas.chat import (
    ChatHistoryItem,
    ChatHistoryResponse,
    ChatPermissionResponse,
    ChatRequest,
    ChatResponse,
    ConnectionTestResponse,
    RemainingTokensResponse,
)
from chatquota.services import chat_service, quota_service
from chatquota.services.chat_service import ChatDenied, ChatFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

DENIAL_STATUS = {
    chat_service.DENIED_NO_SUBSCRIPTION: status.HTTP_402_PAYMENT_REQUIRED,
    chat_service.DENIED_QUOTA_EXHAUSTED: status.HTTP_429_TOO_MANY_REQUESTS,
    chat_service.DENIED_WOULD_EXCEED: status.HTTP_429_TOO_MANY_REQUESTS,
}

FAILURE_STATUS = {
    chat_service.FAILED_UPSTREAM: status.HTTP_502_BAD_GATEWAY,
    chat_service.FAILED_PERSISTENCE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.post("/send", response_model=ChatResponse)
def send_message(
    payload: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: CompletionProvider = Depends(get_completion_provider),
):
    """
    Send a message to the assistant and bill the tokens it used.

    Returns 402 without an active subscription, 429 when the token budget is
    exhausted or would be exceeded, 502 on provider errors and 503 when the
    conversation could not be saved.
    """
    result = chat_service.send_chat(db, user.id, payload.message, payload.model, provider)

    if isinstance(result, ChatDenied):
        detail = {"error": result.code, "message": result.reason}
        if result.remaining_tokens is not None:
            detail["remaining_tokens"] = result.remaining_tokens
        if result.requested_tokens is not None:
            detail["requested_tokens"] = result.requested_tokens
        raise HTTPException(status_code=DENIAL_STATUS[result.code], detail=detail)

    if isinstance(result, ChatFailed):
        detail = {"error": result.code, "message": result.reason}
        if result.kind:
            detail["kind"] = result.kind
        raise HTTPException(status_code=FAILURE_STATUS[result.code], detail=detail)

    return ChatResponse(
        response=result.response,
        tokens_used=result.tokens_used,
        model=result.model,
        timestamp=result.timestamp,
    )


@router.get("/permission", response_model=ChatPermissionResponse)
def check_permission(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    can_chat = quota_service.has_permission(db, user.id)
    remaining = quota_service.remaining_tokens(db, user.id)
    return ChatPermissionResponse(can_chat=can_chat, remaining_tokens=remaining)


@router.get("/tokens", response_model=RemainingTokensResponse)
def get_remaining_tokens(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return RemainingTokensResponse(remaining_tokens=quota_service.remaining_tokens(db, user.id))


@router.get("/history", response_model=ChatHistoryResponse)
def get_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Newest-first page of the caller's conversations."""
    items = chat_service.get_chat_history(db, user.id, page, page_size)
    return ChatHistoryResponse(
        page=page,
        page_size=page_size,
        items=[ChatHistoryItem.model_validate(item) for item in items],
    )


@router.get("/test-connection", response_model=ConnectionTestResponse)
def test_connection(
    admin: User = Depends(require_admin),
    provider: CompletionProvider = Depends(get_completion_provider),
):
    is_connected = provider.validate_connection()
    logger.info(f"Completion API connection test: admin_id={admin.id}, connected={is_connected}")
    return ConnectionTestResponse(
        is_connected=is_connected,
        message="Connected to the AI service" if is_connected else "Could not reach the AI service",
    )
