"""
Pydantic schemas for payment and subscription endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    """A purchasable plan."""
    name: str = Field(..., description="Plan name (Basic, Premium)")
    price: Decimal = Field(..., description="Price per period")
    token_limit: int = Field(..., description="Tokens granted per period")
    duration_days: int = Field(..., description="Days until expiry after payment")
    features: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "name": "Basic",
                "price": "99000",
                "token_limit": 10000,
                "duration_days": 30,
                "features": ["10,000 tokens/month", "GPT-3.5 Turbo access"]
            }
        }


class PaymentRequest(BaseModel):
    """Request schema for a reported payment."""
    plan_type: str = Field(..., min_length=1, max_length=50, description="Catalog plan name")
    amount: Decimal = Field(..., gt=0, le=Decimal("999999.99"), description="Amount paid")
    payment_method: str = Field(..., min_length=1, max_length=100, description="Payment method label")
    transaction_id: str = Field(..., min_length=1, max_length=200, description="External transaction id")

    class Config:
        json_schema_extra = {
            "example": {
                "plan_type": "Basic",
                "amount": "99000",
                "payment_method": "bank_transfer",
                "transaction_id": "TX-20240101-0001"
            }
        }


class PaymentResponse(BaseModel):
    """Result of a processed payment."""
    subscription_id: int
    plan_type: str
    amount: Decimal
    is_success: bool
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    new_token_limit: int


class SubscriptionStatusResponse(BaseModel):
    """Current entitlement of a user."""
    subscription_id: int
    plan_type: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    amount: Decimal
    tokens_used: int
    tokens_limit: int
    remaining: int
    is_active: bool


class ActiveSubscriptionResponse(BaseModel):
    """Whether the user holds any paid, unexpired plan."""
    has_active_subscription: bool
    message: str
