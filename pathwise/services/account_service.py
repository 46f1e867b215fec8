"""
Login, password reset, profile settings and account deletion.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from sqlalchemy.orm import Session

from pathwise.core.config import PASSWORD_RESET_MINUTES
from pathwise.core.errors import AccountStateError, AuthenticationError, UpstreamError, ValidationError
from pathwise.core.feature_catalog import ROLE_STUDENT
from pathwise.core.security import generate_token, hash_password, verify_password
from pathwise.db.models.password_reset import PasswordResetToken
from pathwise.db.models.user import User
from pathwise.services.email_service import EmailService
from pathwise.services.license_service import release_seat
from pathwise.services.registration_service import get_user_by_email
from pathwise.services.session_service import create_session, revoke_user_sessions
from pathwise.services.stripe_service import StripeClient

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("first_name", "last_name", "school", "major", "grad_year")


def login(db: Session, email: str, password: str) -> Tuple[User, str]:
    """
    Check credentials and start a session, ending any earlier one.

    Returns:
        (user, token)
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Login failed: invalid credentials")
        raise AuthenticationError("Invalid credentials", code="invalid_credentials")
    if not user.is_active:
        raise AccountStateError("Account has been deactivated. Contact your administrator.")

    token = create_session(db, user)
    db.refresh(user)
    logger.info(f"User logged in: user_id={user.id}")
    return user, token


def request_password_reset(db: Session, email: str, email_service: EmailService) -> None:
    """Create a reset token and mail it. Silent for unknown emails."""
    user = get_user_by_email(db, email)
    if not user:
        logger.info("Password reset requested for unknown email")
        return

    token = generate_token()
    db.add(PasswordResetToken(
        user_id=user.id,
        token=token,
        expires_at=datetime.utcnow() + timedelta(minutes=PASSWORD_RESET_MINUTES),
        is_used=False,
    ))
    db.commit()

    if not email_service.send_password_reset(user.email, token, user.first_name):
        logger.warning(f"Password reset email not delivered: user_id={user.id}")


def get_valid_reset_token(db: Session, token: str) -> Optional[PasswordResetToken]:
    return db.query(PasswordResetToken).filter(
        PasswordResetToken.token == token,
        PasswordResetToken.is_used.is_(False),
        PasswordResetToken.expires_at > datetime.utcnow(),
    ).first()


def reset_password(db: Session, token: str, new_password: str) -> User:
    """Set a new password, burn the token and sign the user out everywhere."""
    reset = get_valid_reset_token(db, token)
    if not reset:
        raise ValidationError("Invalid or expired reset token", code="invalid_reset_token")

    user = db.query(User).filter(User.id == reset.user_id).first()
    if not user:
        raise ValidationError("Invalid or expired reset token", code="invalid_reset_token")

    user.password_hash = hash_password(new_password)
    reset.is_used = True
    revoke_user_sessions(db, user.id)
    db.commit()
    logger.info(f"Password reset: user_id={user.id}")
    return user


def update_settings(db: Session, user: User, updates: Dict[str, Any]) -> User:
    for field in SETTINGS_FIELDS:
        if field in updates:
            setattr(user, field, updates[field])
    db.commit()
    db.refresh(user)
    logger.info(f"Settings updated: user_id={user.id}, fields={sorted(k for k in updates if k in SETTINGS_FIELDS)}")
    return user


def delete_account(db: Session, user: User, payment_provider: StripeClient) -> None:
    """
    Permanently delete an account and everything it owns.

    An active provider subscription is canceled first; a provider failure is
    logged and does not block deletion.
    """
    if user.stripe_subscription_id and payment_provider.configured:
        try:
            payment_provider.cancel_now(user.stripe_subscription_id)
        except UpstreamError:
            logger.error(f"Could not cancel subscription during account deletion: user_id={user.id}")

    if user.institution_id is not None and user.role == ROLE_STUDENT and user.is_active:
        release_seat(db, user.institution_id)

    user_id = user.id
    db.delete(user)
    db.commit()
    logger.info(f"User account deleted: user_id={user_id}")
