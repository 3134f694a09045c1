"""
Payment and subscription-status service.

Payment settlement is simulated: the caller reports the amount, method and
transaction id, and the matching plan is granted immediately.
"""
import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.errors import PersistenceError
from chatquota.core.plan_catalog import PlanCatalog, PlanDefinition, get_plan_catalog
from chatquota.db.models.subscription import Subscription
from chatquota.services import entitlement_store

logger = logging.getLogger(__name__)

SIMULATION_PAYMENT_METHOD = "Simulation"


def build_status(subscription: Subscription) -> Dict:
    now = utcnow()
    return {
        "subscription_id": subscription.id,
        "plan_type": subscription.plan_type,
        "is_paid": subscription.is_paid,
        "paid_at": subscription.paid_at,
        "expires_at": subscription.expires_at,
        "amount": subscription.amount,
        "tokens_used": subscription.tokens_used,
        "tokens_limit": subscription.tokens_limit,
        "remaining": subscription.remaining_tokens,
        "is_active": subscription.is_active_at(now),
    }


def get_status(db: Session, user_id: int, catalog: Optional[PlanCatalog] = None) -> Dict:
    """
    Current subscription status for a user.

    A user without an entitlement gets the default Free one, so the status
    always describes a real row.
    """
    try:
        subscription = entitlement_store.get_current(db, user_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to read subscription status: user_id={user_id}: {e}")
        raise PersistenceError("Failed to get subscription status") from e

    if subscription is None:
        subscription = entitlement_store.create_default_free(db, user_id, catalog)
    return build_status(subscription)


def list_plans(catalog: Optional[PlanCatalog] = None) -> List[PlanDefinition]:
    return (catalog or get_plan_catalog()).list_all()


def process_payment(
    db: Session,
    user_id: int,
    plan_type: str,
    amount,
    payment_method: str,
    transaction_id: str,
    catalog: Optional[PlanCatalog] = None,
) -> Dict:
    """
    Grant a catalog plan for a reported payment.

    Paying again for the same plan renews the same row: the limit is reset to
    the plan's limit (not added to) and no duplicate row is created.
    """
    catalog = catalog or get_plan_catalog()
    plan = catalog.lookup(plan_type)
    subscription = entitlement_store.upsert_paid(
        db, user_id, plan.name, amount, payment_method, transaction_id, catalog
    )
    if subscription.amount != plan.price:
        logger.warning(
            f"Payment amount differs from plan price: user_id={user_id}, plan={plan.name}, "
            f"amount={subscription.amount}, price={plan.price}"
        )
    logger.info(
        f"Payment processed: user_id={user_id}, plan={plan.name}, amount={subscription.amount}, "
        f"method={payment_method}, transaction_id={transaction_id}"
    )
    return {
        "subscription_id": subscription.id,
        "plan_type": subscription.plan_type,
        "amount": subscription.amount,
        "is_success": True,
        "paid_at": subscription.paid_at,
        "expires_at": subscription.expires_at,
        "new_token_limit": subscription.tokens_limit,
    }


def has_active_subscription(db: Session, user_id: int) -> bool:
    """True when any of the user's rows is paid and not yet expired."""
    try:
        return db.query(Subscription.id).filter(
            Subscription.user_id == user_id,
            Subscription.is_paid.is_(True),
            Subscription.expires_at > utcnow(),
        ).first() is not None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to check active subscription: user_id={user_id}: {e}")
        raise PersistenceError("Failed to check subscription") from e


def simulate_payment(
    db: Session,
    user_id: int,
    plan_type: str,
    catalog: Optional[PlanCatalog] = None,
) -> Dict:
    """
    Pay for a plan at its list price without any payment details.

    The plan name is matched case-insensitively; the payment is recorded with
    method "Simulation" and a generated SIM_ transaction id.
    """
    catalog = catalog or get_plan_catalog()
    plan = catalog.lookup_ignore_case(plan_type)
    transaction_id = f"SIM_{uuid.uuid4().hex[:8].upper()}"
    logger.info(f"Simulated payment: user_id={user_id}, plan={plan.name}, transaction_id={transaction_id}")
    return process_payment(
        db, user_id, plan.name, plan.price, SIMULATION_PAYMENT_METHOD, transaction_id, catalog
    )


def admin_set_entitlement(
    db: Session,
    user_id: int,
    plan_type: str,
    is_paid: bool,
    catalog: Optional[PlanCatalog] = None,
) -> Dict:
    subscription = entitlement_store.set_entitlement(db, user_id, plan_type, is_paid, catalog)
    return build_status(subscription)
