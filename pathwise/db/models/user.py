from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from pathwise.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="student")  # student | admin | institution_admin | super_admin
    is_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_active_at = Column(DateTime, nullable=True)

    school = Column(String, nullable=True)
    major = Column(String, nullable=True)
    grad_year = Column(Integer, nullable=True)

    subscription_tier = Column(String, nullable=False, default="free")  # free | paid | institutional
    subscription_status = Column(String, nullable=False, default="active")  # active | incomplete | canceled | past_due | trialing
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    subscription_ends_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    institution = relationship("Institution", back_populates="members")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    purchased_features = relationship(
        "PurchasedFeature", back_populates="user", cascade="all, delete-orphan"
    )
    password_reset_tokens = relationship(
        "PasswordResetToken", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
