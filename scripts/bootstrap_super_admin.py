"""
Script to create the platform super admin account.
Run: SUPERADMIN_EMAIL=... SUPERADMIN_PASSWORD=... python -m scripts.bootstrap_super_admin
"""
import logging
import os
import sys

from pathwise.core.feature_catalog import ROLE_SUPER_ADMIN
from pathwise.core.security import hash_password
from pathwise.db.init_db import init_db
from pathwise.db.models.user import User
from pathwise.db.session import SessionLocal

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def bootstrap_super_admin(db, email: str, password: str) -> User:
    """
    Create the super admin, or reset the password of an existing one.

    Refuses to promote an existing regular account.
    """
    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if user and user.role != ROLE_SUPER_ADMIN:
        raise ValueError(f"{email} already belongs to a non-admin account")

    if user:
        logger.info(f"Found existing super admin: {email} (ID: {user.id})")
        user.password_hash = hash_password(password)
        user.is_active = True
        user.is_verified = True
    else:
        logger.info(f"Creating super admin: {email}")
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name="Super",
            last_name="Admin",
            role=ROLE_SUPER_ADMIN,
            is_verified=True,
            is_active=True,
        )
        db.add(user)

    db.commit()
    db.refresh(user)
    return user


if __name__ == "__main__":
    email = os.getenv("SUPERADMIN_EMAIL")
    password = os.getenv("SUPERADMIN_PASSWORD")
    if not email or not password:
        logger.error("SUPERADMIN_EMAIL and SUPERADMIN_PASSWORD must be set")
        sys.exit(1)

    init_db()
    db = SessionLocal()
    try:
        user = bootstrap_super_admin(db, email, password)
        logger.info(f"Super admin ready: user_id={user.id}")
    except ValueError as e:
        db.rollback()
        logger.error(str(e))
        sys.exit(1)
    finally:
        db.close()
