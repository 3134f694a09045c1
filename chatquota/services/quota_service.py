"""
Quota gate: permission-to-chat and remaining-token derivation.

Call order matters: has_permission() may lazily create the default Free
entitlement, remaining_tokens() never does. Callers check permission first.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.plan_catalog import FREE_PLAN_NAME, PlanCatalog, get_plan_catalog
from chatquota.db.models.subscription import Subscription
from chatquota.services import entitlement_store

logger = logging.getLogger(__name__)


def is_active(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    """A subscription is active when it is paid and not yet expired."""
    return subscription.is_active_at(now or utcnow())


def has_permission(db: Session, user_id: int, catalog: Optional[PlanCatalog] = None) -> bool:
    """
    Check whether the user may start a chat.

    A user without an entitlement gets the default Free one created here.
    The Free tier is always permitted regardless of its remaining balance;
    paid tiers must be active.
    """
    subscription = entitlement_store.get_current(db, user_id)
    if subscription is None:
        entitlement_store.create_default_free(db, user_id, catalog)
        return True

    if subscription.plan_type == FREE_PLAN_NAME:
        return True

    allowed = is_active(subscription)
    if not allowed:
        logger.info(
            f"Chat permission denied: user_id={user_id}, plan={subscription.plan_type}, "
            f"is_paid={subscription.is_paid}, expires_at={subscription.expires_at}"
        )
    return allowed


def remaining_tokens(db: Session, user_id: int, catalog: Optional[PlanCatalog] = None) -> int:
    """
    Tokens left on the current entitlement.

    Returns the Free-tier default for a user without an entitlement, without
    creating one.
    """
    subscription = entitlement_store.get_current(db, user_id)
    if subscription is None:
        return (catalog or get_plan_catalog()).free_token_limit
    return subscription.remaining_tokens
