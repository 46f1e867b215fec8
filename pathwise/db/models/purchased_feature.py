from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from pathwise.db.base import Base


class PurchasedFeature(Base):
    """One-off purchase of a catalog feature. Set membership per (user, feature)."""
    __tablename__ = "purchased_features"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_key = Column(String, nullable=False)
    stripe_checkout_session_id = Column(String, nullable=True)
    purchased_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="purchased_features")

    __table_args__ = (
        UniqueConstraint("user_id", "feature_key", name="uq_purchased_feature_user_feature"),
    )
