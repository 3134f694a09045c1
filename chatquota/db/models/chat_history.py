from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from chatquota.core.clock import utcnow
from chatquota.db.base import Base


class ChatHistory(Base):
    """
    Append-only log of successful chat sends.

    Written in the same transaction as the token debit; never updated or deleted.
    """
    __tablename__ = "chat_histories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_message = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    model = Column(String(50), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    user = relationship("User", back_populates="chat_histories")

    __table_args__ = (
        Index("idx_chat_history_user_created", "user_id", "created_at"),
    )
