"""
Account registration.

Four paths, tried in order:
1. Existing deactivated account with matching password -> reactivated
2. Invitation token -> institutional member with the invited role
3. Email domain of an institution -> institutional student
4. Direct signup -> free, paid pending checkout, or paid through a promo code

Seat claim, user insert and invitation claim are committed together.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pathwise.core.errors import ValidationError
from pathwise.core.feature_catalog import (
    ROLE_STUDENT,
    STATUS_ACTIVE,
    STATUS_INCOMPLETE,
    TIER_FREE,
    TIER_INSTITUTIONAL,
    TIER_PAID,
)
from pathwise.core.security import hash_password, verify_password
from pathwise.db.models.user import User
from pathwise.schemas.auth import RegisterRequest
from pathwise.services.institution_service import (
    claim_invitation,
    find_institution_by_email_domain,
    get_pending_invitation,
)
from pathwise.services.license_service import UsageAlert, build_usage_alert, claim_seat
from pathwise.services.promo_service import PROMO_FREE_PAID_TIER, redeem_promo_code, validate_promo_code
from pathwise.services.session_service import create_session
from pathwise.services.stripe_service import StripeClient

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    user: User
    token: Optional[str] = None
    requires_payment: bool = False
    checkout_url: Optional[str] = None
    reactivated: bool = False
    usage_alert: Optional[UsageAlert] = None


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def _reactivate(db: Session, user: User, password: str) -> RegistrationResult:
    if not verify_password(password, user.password_hash):
        raise ValidationError("User already exists", code="user_exists")

    usage_alert = None
    if user.institution_id is not None and user.role == ROLE_STUDENT:
        seat_info = claim_seat(db, user.institution_id)
        usage_alert = build_usage_alert(db, user.institution_id, seat_info)

    user.is_active = True
    token = create_session(db, user, commit=False)
    db.commit()
    db.refresh(user)
    logger.info(f"User reactivated: user_id={user.id}")
    return RegistrationResult(user=user, token=token, reactivated=True, usage_alert=usage_alert)


def register_user(db: Session, payload: RegisterRequest, payment_provider: StripeClient) -> RegistrationResult:
    """
    Create (or reactivate) an account and start its first session.

    Raises:
        ValidationError: duplicate email, bad invitation, email mismatch, or used-up promo code
        NotFoundError: unknown or expired promo code
        CapacityError: institution has no seat or no valid license
        PaymentProviderNotConfigured: paid plan selected without a payment provider
        UpstreamError: payment provider call failed
    """
    email = payload.email.strip().lower()

    existing = get_user_by_email(db, email)
    if existing and existing.is_active:
        raise ValidationError("User already exists", code="user_exists")
    if existing:
        return _reactivate(db, existing, payload.password)

    institution_id = None
    role = ROLE_STUDENT
    tier = TIER_FREE
    invitation = None
    promo = None

    if payload.invitation_token:
        invitation = get_pending_invitation(db, payload.invitation_token)
        if not invitation:
            raise ValidationError("Invalid or expired invitation", code="invalid_invitation")
        if invitation.email.lower() != email:
            raise ValidationError("Email does not match invitation", code="invitation_email_mismatch")
        institution_id = invitation.institution_id
        role = invitation.role
        tier = TIER_INSTITUTIONAL
    else:
        institution = find_institution_by_email_domain(db, email)
        if institution:
            institution_id = institution.id
            tier = TIER_INSTITUTIONAL
        else:
            if payload.promo_code:
                promo = validate_promo_code(db, payload.promo_code)
            if promo and promo.type == PROMO_FREE_PAID_TIER:
                tier = TIER_PAID
            elif payload.selected_plan == TIER_PAID:
                # Fail before anything is written
                payment_provider.require_subscription_price()
                tier = TIER_PAID

    complimentary = promo is not None and promo.type == PROMO_FREE_PAID_TIER
    seat_info = None
    if institution_id is not None and role == ROLE_STUDENT:
        seat_info = claim_seat(db, institution_id)

    user = User(
        institution_id=institution_id,
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        role=role,
        school=payload.school,
        major=payload.major,
        grad_year=payload.grad_year,
        subscription_tier=tier,
        subscription_status=STATUS_INCOMPLETE if tier == TIER_PAID and not complimentary else STATUS_ACTIVE,
        is_active=True,
        # No verification mail flow; accounts are verified on creation
        is_verified=True,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ValidationError("User already exists", code="user_exists")

    if invitation:
        claim_invitation(db, invitation, user)
    if complimentary:
        redeem_promo_code(db, promo)

    if tier == TIER_PAID and not complimentary:
        customer_id = payment_provider.create_customer(user.email, user.id)
        user.stripe_customer_id = customer_id
        checkout = payment_provider.create_subscription_checkout(customer_id, user.id, cancel_path="/register")
        db.commit()
        db.refresh(user)
        logger.info(f"User registered pending payment: user_id={user.id}")
        return RegistrationResult(user=user, requires_payment=True, checkout_url=checkout["url"])

    usage_alert = build_usage_alert(db, institution_id, seat_info) if seat_info else None
    token = create_session(db, user, commit=False)
    db.commit()
    db.refresh(user)

    logger.info(f"User registered: user_id={user.id}, role={role}, tier={tier}, institution_id={institution_id}")
    return RegistrationResult(user=user, token=token, usage_alert=usage_alert)
