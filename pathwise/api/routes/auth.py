import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session
from typing import Optional

from pathwise.api.deps import get_email_service, get_payment_provider
from pathwise.core.auth_dependency import AUTH_COOKIE_NAME, extract_token, get_current_user, get_db
from pathwise.core.config import COOKIE_SECURE, SESSION_DURATION_DAYS
from pathwise.core.errors import ValidationError
from pathwise.core.rate_limit import rate_limiter
from pathwise.db.models.user import User
from pathwise.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from pathwise.services import account_service
from pathwise.services.email_service import EmailService
from pathwise.services.license_service import send_usage_alert
from pathwise.services.registration_service import register_user
from pathwise.services.session_service import revoke_session
from pathwise.services.stripe_service import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

RESET_REQUESTED_MESSAGE = (
    "If an account with that email exists, you will receive a password reset link shortly."
)


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        max_age=SESSION_DURATION_DAYS * 24 * 60 * 60,
    )


# ✅ REGISTRATION (invitation, institution domain, or direct free/paid signup)
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiter("register", max_requests=10, window_seconds=60))],
)
def register(
    payload: RegisterRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
    email_service: EmailService = Depends(get_email_service),
):
    result = register_user(db, payload, payment_provider)

    if result.usage_alert:
        background_tasks.add_task(send_usage_alert, email_service, result.usage_alert)

    user = UserResponse.model_validate(result.user)
    if result.requires_payment:
        return AuthResponse(
            message="Registration successful! Redirecting to payment...",
            user=user,
            requires_payment=True,
            checkout_url=result.checkout_url,
        )

    set_auth_cookie(response, result.token)
    if result.reactivated:
        response.status_code = status.HTTP_200_OK
        return AuthResponse(message="User reactivated successfully", user=user, token=result.token)
    return AuthResponse(message="Registration successful!", user=user, token=result.token)


# ✅ LOGIN (last login wins: earlier sessions are revoked)
@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(rate_limiter("login", max_requests=10, window_seconds=60))],
)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user, token = account_service.login(db, payload.email, payload.password)
    set_auth_cookie(response, token)
    return AuthResponse(user=UserResponse.model_validate(user), token=token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    token: Optional[str] = Depends(extract_token),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    revoke_session(db, token)
    response.delete_cookie(AUTH_COOKIE_NAME)
    logger.info(f"User logged out: user_id={user.id}")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiter("forgot-password", max_requests=5, window_seconds=60))],
)
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    account_service.request_password_reset(db, payload.email, email_service)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.get("/reset-password/{token}")
def validate_reset_token(token: str, db: Session = Depends(get_db)):
    if not account_service.get_valid_reset_token(db, token):
        raise ValidationError("Invalid or expired reset token", code="invalid_reset_token")
    return {"valid": True}


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiter("reset-password", max_requests=5, window_seconds=60))],
)
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    account_service.reset_password(db, payload.token, payload.password)
    return MessageResponse(message="Password reset successfully. You can now log in with your new password.")
