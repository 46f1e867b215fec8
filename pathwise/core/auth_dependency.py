import logging
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from pathwise.core.errors import AccountStateError, AuthenticationError, PermissionDeniedError
from pathwise.core.feature_catalog import INSTITUTION_ADMIN_ROLES, ROLE_SUPER_ADMIN
from pathwise.db.session import SessionLocal
from pathwise.db.models.user import User
from pathwise.services.license_service import is_license_valid
from pathwise.services.session_service import get_session_user

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "auth_token"
LAST_ACTIVE_THROTTLE = timedelta(minutes=1)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def extract_token(request: Request, bearer: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    """Session token from the Authorization header, falling back to the auth cookie."""
    if bearer:
        return bearer
    return request.cookies.get(AUTH_COOKIE_NAME)


def touch_last_active(db: Session, user: User) -> None:
    """Record activity, at most once per minute per user."""
    now = datetime.utcnow()
    if user.last_active_at and now - user.last_active_at < LAST_ACTIVE_THROTTLE:
        return
    user.last_active_at = now
    db.commit()


def get_current_user(
    token: Optional[str] = Depends(extract_token),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the session token to a usable account.

    Raises:
        AuthenticationError 401: no token, or the session is unknown or expired
        AccountStateError 401: account deactivated, unverified, or its
            institution license has lapsed
    """
    if not token:
        raise AuthenticationError()

    user = get_session_user(db, token)
    if not user:
        raise AuthenticationError("Session expired or invalid. Please log in again.", code="invalid_session")

    if not user.is_active:
        raise AccountStateError("Account has been deactivated. Contact your administrator.")
    if not user.is_verified:
        raise AccountStateError("Please verify your email address.", code="email_unverified")

    if user.institution_id is not None:
        if not is_license_valid(db, user.institution_id):
            logger.info(f"Rejected request: license expired for institution_id={user.institution_id}, user_id={user.id}")
            raise AccountStateError(
                "Institution license has expired. Contact your administrator.",
                code="license_expired",
            )
        touch_last_active(db, user)

    return user


def require_roles(*roles: str):
    """Dependency factory allowing only users whose role is in roles."""
    def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning(f"Role check failed: user_id={user.id}, role={user.role}, required={roles}")
            raise PermissionDeniedError("Insufficient permissions")
        return user

    return role_checker


require_super_admin = require_roles(ROLE_SUPER_ADMIN)


def ensure_institution_admin(user: User, institution_id: int) -> None:
    """Super admins manage every institution; institution admins only their own."""
    if user.role == ROLE_SUPER_ADMIN:
        return
    if user.role in INSTITUTION_ADMIN_ROLES and user.institution_id == institution_id:
        return
    raise PermissionDeniedError("Access denied")


def ensure_institution_member(user: User, institution_id: int) -> None:
    if user.role == ROLE_SUPER_ADMIN or user.institution_id == institution_id:
        return
    raise PermissionDeniedError("Access denied")


def require_institution_member(
    institution_id: int,
    user: User = Depends(get_current_user)
) -> User:
    ensure_institution_member(user, institution_id)
    return user


def require_institution_admin(
    institution_id: int,
    user: User = Depends(get_current_user)
) -> User:
    """Path dependency for /institutions/{institution_id}/... admin routes."""
    ensure_institution_admin(user, institution_id)
    return user
