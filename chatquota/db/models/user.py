from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from chatquota.core.clock import utcnow
from chatquota.db.base import Base

ROLE_USER = "User"
ROLE_ADMIN = "Admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_USER)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    subscriptions = relationship("Subscription", back_populates="user")
    chat_histories = relationship("ChatHistory", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
