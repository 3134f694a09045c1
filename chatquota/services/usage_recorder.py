"""
Usage recorder: atomic token debits against a subscription row.

The debit is one guarded arithmetic UPDATE, so concurrent debits never lose
each other and tokens_used can never pass tokens_limit.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.errors import NotFoundError, PersistenceError, QuotaExceeded, ValidationError
from chatquota.db.models.subscription import Subscription

logger = logging.getLogger(__name__)


def debit(db: Session, subscription_id: int, amount: int, commit: bool = True) -> Subscription:
    """
    Atomically add amount to tokens_used.

    Args:
        db: Database session
        subscription_id: Row to debit
        amount: Tokens to record (non-negative)
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        The subscription as stored after the debit

    Raises:
        ValidationError: amount is negative or not an int
        NotFoundError: no such subscription
        QuotaExceeded: the debit would take tokens_used past tokens_limit
        PersistenceError: the store rejected the update
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError(f"Invalid token amount: {amount!r}", {"amount": amount})

    stmt = (
        update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.tokens_used + amount <= Subscription.tokens_limit,
        )
        .values(
            tokens_used=Subscription.tokens_used + amount,
            version=Subscription.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )

    try:
        result = db.execute(stmt)
    except SQLAlchemyError as e:
        if commit:
            db.rollback()
        logger.error(f"Debit failed: subscription_id={subscription_id}, amount={amount}: {e}")
        raise PersistenceError("Failed to record token usage") from e

    if result.rowcount == 0:
        subscription = db.get(Subscription, subscription_id, populate_existing=True)
        if commit:
            db.rollback()
        if subscription is None:
            raise NotFoundError(
                f"Subscription {subscription_id} not found",
                {"subscription_id": subscription_id},
            )
        remaining = subscription.remaining_tokens
        logger.warning(
            f"Debit rejected: subscription_id={subscription_id}, amount={amount}, "
            f"used={subscription.tokens_used}/{subscription.tokens_limit}"
        )
        raise QuotaExceeded(
            f"This request would use {amount} tokens, but only {remaining} remain.",
            {"requested": amount, "remaining": remaining, "limit": subscription.tokens_limit},
        )

    if commit:
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Debit commit failed: subscription_id={subscription_id}: {e}")
            raise PersistenceError("Failed to record token usage") from e

    subscription = db.get(Subscription, subscription_id, populate_existing=True)
    logger.info(
        f"Tokens debited: subscription_id={subscription_id}, amount={amount}, "
        f"used={subscription.tokens_used}/{subscription.tokens_limit}"
    )
    return subscription
