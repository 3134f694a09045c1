"""
System-wide usage and revenue analytics.

Read-only point-in-time snapshot; no locks beyond the store's read
consistency, so figures may be stale by the time they are returned.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, and_, case, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.errors import PersistenceError
from chatquota.core.plan_catalog import FREE_PLAN_NAME, PlanCatalog, PlanDefinition, get_plan_catalog
from chatquota.db.models.chat_history import ChatHistory
from chatquota.db.models.subscription import Subscription
from chatquota.db.models.user import User
from chatquota.services import entitlement_store

logger = logging.getLogger(__name__)

MONTHLY_WINDOW_DAYS = 30
OTHER_PLAN_NAME = "Other"
UNKNOWN_USERNAME = "Unknown"


@dataclass
class PlanAnalytics:
    plan_type: str
    price: Decimal
    token_limit: int
    duration_days: int
    features: List[str]
    total_subscribers: int = 0
    active_subscribers: int = 0
    total_revenue: Decimal = Decimal("0")
    monthly_revenue: Decimal = Decimal("0")
    total_tokens_used: int = 0


@dataclass
class SystemAnalytics:
    total_users: int
    total_subscriptions: int
    active_subscriptions: int
    total_revenue: Decimal
    monthly_revenue: Decimal
    total_chat_messages: int
    total_tokens_used: int
    plan_analytics: List[PlanAnalytics] = field(default_factory=list)
    generated_at: Optional[datetime] = None


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _plan_rollups(db: Session, now: datetime, month_start: datetime) -> Dict[str, Dict]:
    """Per-plan_type aggregates over all subscription rows."""
    active = and_(Subscription.is_paid.is_(True), Subscription.expires_at > now)
    paid = Subscription.is_paid.is_(True)
    recent = and_(paid, Subscription.paid_at >= month_start)

    rows = db.query(
        Subscription.plan_type,
        func.count(Subscription.id),
        func.sum(case((active, 1), else_=0)),
        func.sum(case((paid, Subscription.amount), else_=0)),
        func.sum(case((recent, Subscription.amount), else_=0)),
        func.sum(Subscription.tokens_used),
    ).group_by(Subscription.plan_type).all()

    return {
        plan_type: {
            "subscribers": int(count or 0),
            "active": int(active_count or 0),
            "revenue": _decimal(revenue),
            "monthly_revenue": _decimal(monthly),
            "tokens_used": int(tokens or 0),
        }
        for plan_type, count, active_count, revenue, monthly, tokens in rows
    }


def _bucket(plan: PlanDefinition, rollup: Optional[Dict]) -> PlanAnalytics:
    bucket = PlanAnalytics(
        plan_type=plan.name,
        price=plan.price,
        token_limit=plan.token_limit,
        duration_days=plan.duration_days,
        features=list(plan.features),
    )
    if rollup:
        bucket.total_subscribers = rollup["subscribers"]
        bucket.active_subscribers = rollup["active"]
        bucket.total_revenue = rollup["revenue"]
        bucket.monthly_revenue = rollup["monthly_revenue"]
        bucket.total_tokens_used = rollup["tokens_used"]
    return bucket


def _other_bucket(rollups: Dict[str, Dict]) -> PlanAnalytics:
    """
    Folds rows whose plan_type is no longer in the catalog into one bucket;
    features lists the retired plan names.
    """
    bucket = PlanAnalytics(
        plan_type=OTHER_PLAN_NAME,
        price=Decimal("0"),
        token_limit=0,
        duration_days=0,
        features=sorted(rollups),
    )
    for rollup in rollups.values():
        bucket.total_subscribers += rollup["subscribers"]
        bucket.active_subscribers += rollup["active"]
        bucket.total_revenue += rollup["revenue"]
        bucket.monthly_revenue += rollup["monthly_revenue"]
        bucket.total_tokens_used += rollup["tokens_used"]
    return bucket


def get_system_analytics(db: Session, catalog: Optional[PlanCatalog] = None) -> SystemAnalytics:
    """
    Compute the system-wide snapshot.

    Every catalog plan gets a bucket, plus a synthetic Free bucket that also
    counts users with no subscription rows at all as Free subscribers. The
    Free tier never expires, so all its subscribers count as active.
    Rows on plans that have left the catalog land in an "Other" bucket, which
    only appears when such rows exist; the buckets always sum to the totals.

    Raises:
        PersistenceError: If the store cannot be read (no partial data)
    """
    catalog = catalog or get_plan_catalog()
    now = utcnow()
    month_start = now - timedelta(days=MONTHLY_WINDOW_DAYS)

    try:
        total_users = db.query(func.count(User.id)).scalar() or 0
        total_subscriptions = db.query(func.count(Subscription.id)).scalar() or 0
        active_subscriptions = db.query(func.count(Subscription.id)).filter(
            Subscription.is_paid.is_(True),
            Subscription.expires_at > now,
        ).scalar() or 0
        total_revenue = _decimal(
            db.query(func.sum(Subscription.amount)).filter(Subscription.is_paid.is_(True)).scalar()
        )
        monthly_revenue = _decimal(
            db.query(func.sum(Subscription.amount)).filter(
                Subscription.is_paid.is_(True),
                Subscription.paid_at >= month_start,
            ).scalar()
        )
        total_chat_messages = db.query(func.count(ChatHistory.id)).scalar() or 0
        total_tokens_used = int(db.query(func.sum(Subscription.tokens_used)).scalar() or 0)

        rollups = _plan_rollups(db, now, month_start)

        users_without_rows = db.query(func.count(User.id)).filter(
            ~exists().where(Subscription.user_id == User.id)
        ).scalar() or 0
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to compute system analytics: {e}")
        raise PersistenceError("Failed to get system analytics") from e

    plan_analytics = [_bucket(plan, rollups.get(plan.name)) for plan in catalog.list_all()]

    free = _bucket(catalog.free_plan(), rollups.get(FREE_PLAN_NAME))
    free.total_subscribers += users_without_rows
    free.active_subscribers = free.total_subscribers
    plan_analytics.append(free)

    uncatalogued = {
        plan_type: rollup
        for plan_type, rollup in rollups.items()
        if not catalog.is_known(plan_type)
    }
    if uncatalogued:
        logger.warning(f"Subscriptions on plans missing from the catalog: plans={sorted(uncatalogued)}")
        plan_analytics.append(_other_bucket(uncatalogued))

    logger.info(
        f"System analytics computed: users={total_users}, subscriptions={total_subscriptions}, "
        f"active={active_subscriptions}, revenue={total_revenue}"
    )

    return SystemAnalytics(
        total_users=int(total_users),
        total_subscriptions=int(total_subscriptions),
        active_subscriptions=int(active_subscriptions),
        total_revenue=total_revenue,
        monthly_revenue=monthly_revenue,
        total_chat_messages=int(total_chat_messages),
        total_tokens_used=total_tokens_used,
        plan_analytics=plan_analytics,
        generated_at=now,
    )


def list_users_with_subscriptions(db: Session) -> List[Dict]:
    """
    Admin view: every user with their current entitlement and chat statistics.

    Users without an entitlement are reported with Free-tier defaults.
    """
    catalog = get_plan_catalog()
    try:
        chat_stats = {
            user_id: (count, last_chat)
            for user_id, count, last_chat in db.query(
                ChatHistory.user_id,
                func.count(ChatHistory.id),
                func.max(ChatHistory.created_at),
            ).group_by(ChatHistory.user_id).all()
        }

        result = []
        for user in db.query(User).order_by(User.id).all():
            subscription = entitlement_store.get_current(db, user.id)
            message_count, last_chat_at = chat_stats.get(user.id, (0, None))
            result.append({
                "id": user.id,
                "username": user.username,
                "role": user.role,
                "created_at": user.created_at,
                "updated_at": user.updated_at,
                "subscription_id": subscription.id if subscription else None,
                "plan_type": subscription.plan_type if subscription else FREE_PLAN_NAME,
                "is_paid": subscription.is_paid if subscription else False,
                "paid_at": subscription.paid_at if subscription else None,
                "expires_at": subscription.expires_at if subscription else None,
                "amount": subscription.amount if subscription else Decimal("0"),
                "payment_method": subscription.payment_method if subscription else "",
                "tokens_used": subscription.tokens_used if subscription else 0,
                "tokens_limit": subscription.tokens_limit if subscription else catalog.free_token_limit,
                "total_chat_messages": int(message_count),
                "last_chat_at": last_chat_at,
            })
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to list users with subscriptions: {e}")
        raise PersistenceError("Failed to get users with subscriptions") from e

    return result


def list_subscriptions(db: Session) -> List[Dict]:
    """Admin view: every subscription row, newest first, with its owner's username."""
    try:
        rows = (
            db.query(Subscription, User.username)
            .outerjoin(User, User.id == Subscription.user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to list subscriptions: {e}")
        raise PersistenceError("Failed to get subscriptions") from e

    return [
        {
            "id": subscription.id,
            "user_id": subscription.user_id,
            "username": username or UNKNOWN_USERNAME,
            "plan_type": subscription.plan_type,
            "amount": subscription.amount,
            "is_paid": subscription.is_paid,
            "paid_at": subscription.paid_at,
            "expires_at": subscription.expires_at,
            "tokens_used": subscription.tokens_used,
            "tokens_limit": subscription.tokens_limit,
            "created_at": subscription.created_at,
            "updated_at": subscription.updated_at,
        }
        for subscription, username in rows
    ]


def list_chat_histories(db: Session, limit: int = 50) -> List[Dict]:
    """Admin view: the most recent chats across all users."""
    try:
        rows = (
            db.query(ChatHistory, User.username)
            .outerjoin(User, User.id == ChatHistory.user_id)
            .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to list chat histories: {e}")
        raise PersistenceError("Failed to get chat histories") from e

    return [
        {
            "id": chat.id,
            "user_id": chat.user_id,
            "username": username or UNKNOWN_USERNAME,
            "user_message": chat.user_message,
            "ai_response": chat.ai_response,
            "tokens_used": chat.tokens_used,
            "model": chat.model,
            "created_at": chat.created_at,
        }
        for chat, username in rows
    ]
