"""
Admin analytics endpoints.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from chatquota.core.auth_dependency import get_db, require_admin
from chatquota.db.models.user import User
from chatquota.schemas.admin import (
    AdminChatHistoriesResponse,
    AdminSubscriptionsResponse,
    SystemAnalyticsResponse,
    UserWithSubscriptionResponse,
)
from chatquota.services import analytics_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/analytics", response_model=SystemAnalyticsResponse)
def get_analytics(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    System-wide snapshot: users, subscriptions, revenue, chat volume and
    per-plan breakdown (including a Free bucket).
    """
    logger.debug(f"Analytics requested: admin_id={admin.id}")
    return SystemAnalyticsResponse.model_validate(analytics_service.get_system_analytics(db))


@router.get("/users", response_model=List[UserWithSubscriptionResponse])
def get_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return analytics_service.list_users_with_subscriptions(db)


@router.get("/subscriptions", response_model=AdminSubscriptionsResponse)
def get_subscriptions(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    subscriptions = analytics_service.list_subscriptions(db)
    return {"count": len(subscriptions), "subscriptions": subscriptions}


@router.get("/chat-histories", response_model=AdminChatHistoriesResponse)
def get_chat_histories(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of chats to return"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Most recent chats across all users."""
    chats = analytics_service.list_chat_histories(db, limit)
    return {"count": len(chats), "limit": limit, "chats": chats}
