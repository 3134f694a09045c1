"""
Entitlement store: persisted subscription rows per user.

Every user has at most one current entitlement, held as an explicit pointer in
the entitlements table. Subscription rows are unique per (user, plan) and are
renewed in place. All writes for a user run under that user's lock, inside a
single transaction, and are retried a bounded number of times on write
conflicts (unique-constraint races or optimistic version mismatches).
"""
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from chatquota.core.clock import utcnow
from chatquota.core.config import ENTITLEMENT_WRITE_ATTEMPTS
from chatquota.core.errors import ChatQuotaError, NotFoundError, PersistenceError, ValidationError
from chatquota.core.plan_catalog import FREE_PLAN_NAME, PlanCatalog, get_plan_catalog
from chatquota.core.user_locks import user_lock
from chatquota.db.models.entitlement import Entitlement
from chatquota.db.models.subscription import Subscription
from chatquota.db.models.user import User

logger = logging.getLogger(__name__)

MAX_AMOUNT = Decimal("999999.99")


def get_current(db: Session, user_id: int) -> Optional[Subscription]:
    """
    Get the user's current subscription, or None.

    Users whose rows predate the entitlement pointer fall back to the most
    recently created row (ties broken by highest id).
    """
    entitlement = db.get(Entitlement, user_id, populate_existing=True)
    if entitlement is not None:
        return db.get(Subscription, entitlement.subscription_id, populate_existing=True)

    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .populate_existing()
        .first()
    )


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
    return user


def _find_plan_row(db: Session, user_id: int, plan_type: str) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.plan_type == plan_type)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .with_for_update()
        .populate_existing()
        .first()
    )


def _point_entitlement(db: Session, user_id: int, subscription_id: int) -> None:
    entitlement = db.get(Entitlement, user_id, with_for_update=True, populate_existing=True)
    if entitlement is None:
        db.add(Entitlement(user_id=user_id, subscription_id=subscription_id, updated_at=utcnow()))
    elif entitlement.subscription_id != subscription_id:
        entitlement.subscription_id = subscription_id
        entitlement.updated_at = utcnow()
    db.flush()


def _validate_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Malformed amount: {amount!r}", {"amount": str(amount)})
    if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
        raise ValidationError(
            f"Amount must be between 0.01 and {MAX_AMOUNT}",
            {"amount": str(amount)},
        )
    return value.quantize(Decimal("0.01"))


def _run_write(db: Session, user_id: int, operation: str, write: Callable[[], Subscription]) -> Subscription:
    """Run write() in its own transaction under the user's lock, retrying on conflicts."""
    attempts = max(1, ENTITLEMENT_WRITE_ATTEMPTS)
    with user_lock(user_id):
        for attempt in range(1, attempts + 1):
            try:
                subscription = write()
                db.commit()
                db.refresh(subscription)
                return subscription
            except ChatQuotaError:
                db.rollback()
                raise
            except (IntegrityError, StaleDataError) as e:
                db.rollback()
                logger.warning(
                    f"Entitlement write conflict: operation={operation}, user_id={user_id}, "
                    f"attempt={attempt}/{attempts}: {e}"
                )
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Entitlement write failed: operation={operation}, user_id={user_id}: {e}")
                raise PersistenceError(f"Failed to {operation}") from e

    raise PersistenceError(
        f"Failed to {operation}: conflicting concurrent updates",
        {"user_id": user_id, "attempts": attempts},
    )


def create_default_free(db: Session, user_id: int, catalog: Optional[PlanCatalog] = None) -> Subscription:
    """
    Make sure the user has a current entitlement, creating the Free row if needed.

    Idempotent: concurrent first calls for the same user result in a single
    Free row, and a user who already has a current entitlement gets it back
    unchanged.
    """
    catalog = catalog or get_plan_catalog()

    def write() -> Subscription:
        _require_user(db, user_id)
        current = get_current(db, user_id)
        if current is not None:
            return current

        free = _find_plan_row(db, user_id, FREE_PLAN_NAME)
        if free is None:
            free = Subscription(
                user_id=user_id,
                plan_type=FREE_PLAN_NAME,
                is_paid=False,
                amount=Decimal("0"),
                payment_method="",
                transaction_id="",
                tokens_used=0,
                tokens_limit=catalog.free_token_limit,
                created_at=utcnow(),
            )
            db.add(free)
            db.flush()
            logger.info(f"Default Free entitlement created: user_id={user_id}, limit={free.tokens_limit}")

        _point_entitlement(db, user_id, free.id)
        return free

    return _run_write(db, user_id, "create default entitlement", write)


def initialize_entitlement(db: Session, user_id: int, catalog: Optional[PlanCatalog] = None) -> Subscription:
    """Explicit initialisation at registration time."""
    return create_default_free(db, user_id, catalog)


def upsert_paid(
    db: Session,
    user_id: int,
    plan_type: str,
    amount,
    payment_method: str,
    transaction_id: str,
    catalog: Optional[PlanCatalog] = None,
) -> Subscription:
    """
    Record a payment for a catalog plan and make that plan the current entitlement.

    The existing (user, plan) row is renewed in place; tokens_used is left
    unchanged across renewals. A new row starts at tokens_used=0.
    """
    catalog = catalog or get_plan_catalog()
    plan = catalog.lookup(plan_type)
    paid_amount = _validate_amount(amount)

    def write() -> Subscription:
        _require_user(db, user_id)
        now = utcnow()
        subscription = _find_plan_row(db, user_id, plan.name)
        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                plan_type=plan.name,
                tokens_used=0,
                created_at=now,
            )
            db.add(subscription)
        else:
            subscription.updated_at = now

        subscription.is_paid = True
        subscription.paid_at = now
        subscription.expires_at = now + timedelta(days=plan.duration_days)
        subscription.tokens_limit = plan.token_limit
        subscription.amount = paid_amount
        subscription.payment_method = payment_method or ""
        subscription.transaction_id = transaction_id or ""
        db.flush()

        _point_entitlement(db, user_id, subscription.id)
        return subscription

    subscription = _run_write(db, user_id, "record payment", write)
    logger.info(
        f"Paid entitlement recorded: user_id={user_id}, plan={plan.name}, "
        f"subscription_id={subscription.id}, expires_at={subscription.expires_at.isoformat()}"
    )
    return subscription


def set_entitlement(
    db: Session,
    user_id: int,
    plan_type: str,
    is_paid: bool,
    catalog: Optional[PlanCatalog] = None,
) -> Subscription:
    """
    Privileged override of a user's plan and paid flag.

    Marking paid stamps paid_at and takes the token limit from the plan (plus
    expiry and price for catalog plans). Marking unpaid clears paid_at,
    expires_at and amount but keeps tokens_used/tokens_limit as last set.
    """
    catalog = catalog or get_plan_catalog()
    if not catalog.is_known(plan_type):
        raise ValidationError(f"Invalid plan type: {plan_type}", {"plan_type": plan_type})
    plan = None if plan_type == FREE_PLAN_NAME else catalog.lookup(plan_type)
    token_limit = catalog.token_limit_for(plan_type)

    def write() -> Subscription:
        _require_user(db, user_id)
        now = utcnow()
        subscription = _find_plan_row(db, user_id, plan_type)
        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                plan_type=plan_type,
                amount=Decimal("0"),
                payment_method="",
                transaction_id="",
                tokens_used=0,
                tokens_limit=token_limit,
                created_at=now,
            )
            db.add(subscription)
        else:
            subscription.updated_at = now

        subscription.is_paid = is_paid
        if is_paid:
            subscription.paid_at = now
            subscription.tokens_limit = token_limit
            if plan is not None:
                subscription.expires_at = now + timedelta(days=plan.duration_days)
                subscription.amount = plan.price
        else:
            subscription.paid_at = None
            subscription.expires_at = None
            subscription.amount = Decimal("0")
        db.flush()

        _point_entitlement(db, user_id, subscription.id)
        return subscription

    subscription = _run_write(db, user_id, "update subscription", write)
    logger.info(
        f"Entitlement override applied: user_id={user_id}, plan={plan_type}, is_paid={is_paid}, "
        f"subscription_id={subscription.id}"
    )
    return subscription
