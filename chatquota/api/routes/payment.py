"""
Payment and subscription endpoints.

Settlement is simulated: the reported payment is recorded and the plan is
granted immediately.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from chatquota.core.auth_dependency import get_current_user, get_db, require_admin
from chatquota.db.models.user import User
from chatquota.schemas.billing import (
    ActiveSubscriptionResponse,
    PaymentRequest,
    PaymentResponse,
    PlanResponse,
    SubscriptionStatusResponse,
)
from chatquota.services import payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["Payment"])


@router.get("/subscription", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current entitlement of the caller (a Free one is created if missing)."""
    return payment_service.get_status(db, user.id)


@router.get("/plans", response_model=List[PlanResponse])
def get_plans():
    return [
        PlanResponse(
            name=plan.name,
            price=plan.price,
            token_limit=plan.token_limit,
            duration_days=plan.duration_days,
            features=list(plan.features),
        )
        for plan in payment_service.list_plans()
    ]


@router.post("/process", response_model=PaymentResponse)
def process_payment(
    payload: PaymentRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Record a payment for a catalog plan.

    Paying again for the same plan renews it in place: the token limit is
    reset to the plan's limit and the expiry moves forward.
    """
    return payment_service.process_payment(
        db,
        user.id,
        payload.plan_type,
        payload.amount,
        payload.payment_method,
        payload.transaction_id,
    )


@router.get("/active", response_model=ActiveSubscriptionResponse)
def get_active_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    active = payment_service.has_active_subscription(db, user.id)
    return ActiveSubscriptionResponse(
        has_active_subscription=active,
        message="You have an active subscription" if active else "No active subscription found",
    )


@router.post("/simulate/{plan_type}", response_model=PaymentResponse)
def simulate_payment(
    plan_type: str = Path(..., max_length=50),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Buy a plan at its list price with a generated transaction id, for demos
    and testing. The plan name is case-insensitive; unknown plans return 400.
    """
    return payment_service.simulate_payment(db, user.id, plan_type)


@router.put("/admin/update-subscription", response_model=SubscriptionStatusResponse)
def admin_update_subscription(
    user_id: int = Query(..., description="Target user id"),
    plan_type: str = Query(..., max_length=50, description="Free or a catalog plan"),
    is_paid: bool = Query(..., description="Paid flag to set"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logger.info(
        f"Admin subscription override: admin_id={admin.id}, user_id={user_id}, "
        f"plan={plan_type}, is_paid={is_paid}"
    )
    return payment_service.admin_set_entitlement(db, user_id, plan_type, is_paid)
