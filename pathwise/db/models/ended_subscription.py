from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from pathwise.db.base import Base


class EndedSubscription(Base):
    """Provider subscription ids that were canceled; they never grant access again."""
    __tablename__ = "ended_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    stripe_subscription_id = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    ended_at = Column(DateTime, nullable=False, default=datetime.utcnow)
