"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from pathwise.db.models.institution import Institution
from pathwise.db.models.license import License
from pathwise.db.models.invitation import Invitation
from pathwise.db.models.user import User
from pathwise.db.models.user_session import UserSession
from pathwise.db.models.purchased_feature import PurchasedFeature
from pathwise.db.models.password_reset import PasswordResetToken
from pathwise.db.models.ended_subscription import EndedSubscription
from pathwise.db.models.promo_code import PromoCode

__all__ = [
    "Institution",
    "License",
    "Invitation",
    "User",
    "UserSession",
    "PurchasedFeature",
    "PasswordResetToken",
    "EndedSubscription",
    "PromoCode",
]
