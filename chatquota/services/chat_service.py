"""
Chat send pipeline.

Orchestrates a metered chat send:

1. permission check (may create the default Free entitlement)
2. remaining-budget snapshot
3. completion call, made without holding the user's lock
4. post-call budget check against the snapshot
5-6. chat history append and token debit, committed in one transaction
7. success result

Policy outcomes (no subscription, exhausted or insufficient budget) are
returned as ChatDenied; system failures (provider, store) as ChatFailed.
Neither is raised.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.errors import NotFoundError, PersistenceError, QuotaExceeded, UpstreamError, ValidationError
from chatquota.core.plan_catalog import PlanCatalog
from chatquota.core.user_locks import user_lock
from chatquota.db.models.chat_history import ChatHistory
from chatquota.llm.provider import CompletionProvider
from chatquota.services import entitlement_store, quota_service, usage_recorder

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

DENIED_NO_SUBSCRIPTION = "no_active_subscription"
DENIED_QUOTA_EXHAUSTED = "quota_exhausted"
DENIED_WOULD_EXCEED = "would_exceed_budget"

FAILED_UPSTREAM = "upstream_error"
FAILED_PERSISTENCE = "persistence_error"
UNKNOWN_UPSTREAM_MESSAGE = "An unexpected error occurred while contacting the AI service."


@dataclass
class ChatSuccess:
    response: str
    tokens_used: int
    model: str
    timestamp: datetime


@dataclass
class ChatDenied:
    code: str
    reason: str
    remaining_tokens: Optional[int] = None
    requested_tokens: Optional[int] = None


@dataclass
class ChatFailed:
    code: str
    reason: str
    kind: Optional[str] = None


ChatResult = Union[ChatSuccess, ChatDenied, ChatFailed]


def _log_accounting_loss(user_id: int, model: str, tokens_used: int, remaining: int, cause: str) -> None:
    # The provider already billed this call; nothing local records it
    logger.warning(
        f"accounting_loss: user_id={user_id}, model={model}, tokens_used={tokens_used}, "
        f"remaining={remaining}, cause={cause}"
    )


def _check_entitlement(db: Session, user_id: int, catalog: Optional[PlanCatalog]) -> Union[int, ChatDenied]:
    """Steps 1-2: returns the remaining-budget snapshot or a denial."""
    if not quota_service.has_permission(db, user_id, catalog):
        return ChatDenied(
            code=DENIED_NO_SUBSCRIPTION,
            reason="You need an active subscription to use the chatbot. Please upgrade your plan.",
        )

    remaining = quota_service.remaining_tokens(db, user_id, catalog)
    if remaining <= 0:
        return ChatDenied(
            code=DENIED_QUOTA_EXHAUSTED,
            reason="You have exceeded your token limit. Please upgrade your plan or wait for next month.",
            remaining_tokens=0,
        )
    return remaining


def _commit_usage(db: Session, user_id: int, message: str, response: str, tokens_used: int, model: str) -> None:
    """Steps 5-6: history append and debit in a single transaction."""
    subscription = entitlement_store.get_current(db, user_id)
    if subscription is None:
        raise NotFoundError(f"No entitlement for user {user_id}", {"user_id": user_id})

    db.add(ChatHistory(
        user_id=user_id,
        user_message=message,
        ai_response=response,
        tokens_used=tokens_used,
        model=model,
        created_at=utcnow(),
    ))
    db.flush()
    usage_recorder.debit(db, subscription.id, tokens_used, commit=False)
    db.commit()


def send_chat(
    db: Session,
    user_id: int,
    message: str,
    model: str,
    provider: CompletionProvider,
    catalog: Optional[PlanCatalog] = None,
) -> ChatResult:
    """
    Send one chat message on behalf of user_id.

    Raises:
        ValidationError: empty or oversized message
        NotFoundError: unknown user
    """
    if not message or not message.strip():
        raise ValidationError("Message must not be empty")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    with user_lock(user_id):
        try:
            outcome = _check_entitlement(db, user_id, catalog)
            # Close the read transaction; nothing is held across the provider call
            db.commit()
        except (PersistenceError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"Entitlement check failed: user_id={user_id}: {e}")
            return ChatFailed(code=FAILED_PERSISTENCE, reason="Could not read your subscription. Please try again.")
    if isinstance(outcome, ChatDenied):
        logger.info(f"Chat denied: user_id={user_id}, code={outcome.code}")
        return outcome
    remaining = outcome

    try:
        completion = provider.complete(message, model)
    except UpstreamError as e:
        logger.error(f"Completion failed: user_id={user_id}, model={model}, kind={e.kind}")
        return ChatFailed(code=FAILED_UPSTREAM, reason=e.message, kind=e.kind)
    except Exception as e:
        # Any other provider fault is an upstream failure of unknown kind
        error = UpstreamError(UpstreamError.UNKNOWN, UNKNOWN_UPSTREAM_MESSAGE, {"model": model})
        logger.error(
            f"Completion failed: user_id={user_id}, model={model}, kind={error.kind}, "
            f"error={type(e).__name__}: {e}"
        )
        return ChatFailed(code=FAILED_UPSTREAM, reason=error.message, kind=error.kind)

    tokens_used = completion.tokens_used
    if tokens_used > remaining:
        _log_accounting_loss(user_id, model, tokens_used, remaining, "exceeds_remaining_snapshot")
        return ChatDenied(
            code=DENIED_WOULD_EXCEED,
            reason=f"This request would use {tokens_used} tokens, but you only have {remaining} remaining.",
            remaining_tokens=remaining,
            requested_tokens=tokens_used,
        )

    with user_lock(user_id):
        try:
            _commit_usage(db, user_id, message, completion.text, tokens_used, model)
        except QuotaExceeded as e:
            db.rollback()
            _log_accounting_loss(user_id, model, tokens_used, e.detail.get("remaining", 0), "debit_rejected")
            return ChatDenied(
                code=DENIED_WOULD_EXCEED,
                reason=e.message,
                remaining_tokens=e.detail.get("remaining"),
                requested_tokens=tokens_used,
            )
        except (PersistenceError, NotFoundError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"Chat usage commit failed: user_id={user_id}: {e}")
            _log_accounting_loss(user_id, model, tokens_used, remaining, "commit_failed")
            return ChatFailed(code=FAILED_PERSISTENCE, reason="Failed to save the conversation. Please try again.")
        except BaseException:
            db.rollback()
            raise

    logger.info(f"Chat sent: user_id={user_id}, model={model}, tokens_used={tokens_used}")
    return ChatSuccess(
        response=completion.text,
        tokens_used=tokens_used,
        model=model,
        timestamp=utcnow(),
    )


def get_chat_history(db: Session, user_id: int, page: int = 1, page_size: int = 20) -> List[ChatHistory]:
    """Newest-first page of the user's chat history."""
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    return (
        db.query(ChatHistory)
        .filter(ChatHistory.user_id == user_id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
