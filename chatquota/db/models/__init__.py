"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from chatquota.db.models.user import User
from chatquota.db.models.subscription import Subscription
from chatquota.db.models.chat_history import ChatHistory
from chatquota.db.models.entitlement import Entitlement

__all__ = [
    "User",
    "Subscription",
    "ChatHistory",
    "Entitlement",
]
