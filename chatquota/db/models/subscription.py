from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chatquota.core.clock import utcnow
from chatquota.db.base import Base


class Subscription(Base):
    """
    One row per plan per user, renewed in place on payment.

    tokens_used only ever moves through the guarded arithmetic update in
    chatquota.services.usage_recorder; version backs optimistic locking for
    ORM-side updates (renewals and admin overrides).
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    plan_type = Column(String(50), nullable=False, default="Free")  # Free | Basic | Premium
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(100), nullable=False, default="")
    transaction_id = Column(String(200), nullable=False, default="")

    tokens_used = Column(Integer, nullable=False, default=0)
    tokens_limit = Column(Integer, nullable=False, default=500)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "plan_type", name="uq_subscription_user_plan"),
        Index("idx_subscription_user_created", "user_id", "created_at"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_tokens(self) -> int:
        return max(0, (self.tokens_limit or 0) - (self.tokens_used or 0))

    def is_active_at(self, now) -> bool:
        return bool(self.is_paid and self.expires_at is not None and self.expires_at > now)
