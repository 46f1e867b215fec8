import logging
import secrets
import bcrypt
from passlib.context import CryptContext
from datetime import datetime, timedelta
from typing import Optional
from jose import jwt, JWTError
from pathwise.core.config import SECRET_KEY, ALGORITHM

logger = logging.getLogger(__name__)

# Verification fallback for hashes bcrypt cannot read directly
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
)

BCRYPT_MAX_BYTES = 72


def _truncate_password(password: str) -> bytes:
    """Encode a password and cut it to bcrypt's 72-byte limit on a character boundary."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= BCRYPT_MAX_BYTES:
        return password_bytes
    logger.warning("Password exceeds 72 bytes, truncating before hashing (validation should have caught this)")
    truncated = password_bytes[:BCRYPT_MAX_BYTES]
    # Drop a partial trailing UTF-8 sequence
    return truncated.decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password (max 72 bytes in UTF-8)

    Returns:
        Hashed password string (bcrypt format compatible with passlib)

    Raises:
        ValueError: If the password cannot be hashed
    """
    try:
        return bcrypt.hashpw(_truncate_password(password), bcrypt.gensalt()).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing failed: {e}")
        raise ValueError("Invalid password") from e


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    Supports both bcrypt-native hashes and passlib-wrapped hashes.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_truncate_password(password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        try:
            return pwd_context.verify(password, hashed)
        except (ValueError, TypeError) as e:
            logger.warning(f"Password verification failed: {e}")
            return False


def generate_token() -> str:
    """Opaque random token for sessions, invitations and reset links."""
    return secrets.token_hex(32)


def create_access_token(user_id: int, session_id: str, expires_at: datetime) -> str:
    """Sign a bearer token binding a user to one stored session."""
    to_encode = {
        "sub": str(user_id),
        "sid": session_id,
        "exp": expires_at,
        "iat": datetime.utcnow(),
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None when the signature or expiry is invalid."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub") or not payload.get("sid"):
        return None
    return payload


def session_expiry(days: int) -> datetime:
    return datetime.utcnow() + timedelta(days=days)
