from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from pathwise.db.base import Base


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)  # stored upper-case
    type = Column(String, nullable=False, default="free_paid_tier")  # free_paid_tier | percentage_discount
    discount_percentage = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)  # None = unlimited
    current_uses = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
