"""
Pydantic schemas for admin analytics endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class PlanAnalyticsResponse(BaseModel):
    """Per-plan bucket, including the synthetic Free bucket."""
    plan_type: str
    price: Decimal
    token_limit: int
    duration_days: int
    features: List[str]
    total_subscribers: int = Field(..., description="Rows on this plan (Free also counts users with no rows)")
    active_subscribers: int
    total_revenue: Decimal
    monthly_revenue: Decimal = Field(..., description="Revenue from payments in the last 30 days")
    total_tokens_used: int

    class Config:
        from_attributes = True


class SystemAnalyticsResponse(BaseModel):
    total_users: int
    total_subscriptions: int
    active_subscriptions: int
    total_revenue: Decimal
    monthly_revenue: Decimal
    total_chat_messages: int
    total_tokens_used: int
    plan_analytics: List[PlanAnalyticsResponse]
    generated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserWithSubscriptionResponse(BaseModel):
    id: int
    username: str
    role: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    subscription_id: Optional[int] = None
    plan_type: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    amount: Decimal
    payment_method: str
    tokens_used: int
    tokens_limit: int
    total_chat_messages: int
    last_chat_at: Optional[datetime] = None


class AdminSubscriptionItem(BaseModel):
    id: int
    user_id: int
    username: str
    plan_type: str
    amount: Decimal
    is_paid: bool
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    tokens_used: int
    tokens_limit: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class AdminSubscriptionsResponse(BaseModel):
    count: int
    subscriptions: List[AdminSubscriptionItem]


class AdminChatItem(BaseModel):
    id: int
    user_id: int
    username: str
    user_message: str
    ai_response: str
    tokens_used: int
    model: str
    created_at: datetime


class AdminChatHistoriesResponse(BaseModel):
    """Most recent chats across all users, newest first."""
    count: int
    limit: int
    chats: List[AdminChatItem]
