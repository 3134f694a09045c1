from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from chatquota.core.clock import utcnow
from chatquota.db.base import Base


class Entitlement(Base):
    """
    Explicit pointer from a user to their current subscription row.

    user_id is the primary key, so a user can have at most one current
    entitlement; concurrent first-time initialisations collide here.
    """
    __tablename__ = "entitlements"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subscription = relationship("Subscription")
