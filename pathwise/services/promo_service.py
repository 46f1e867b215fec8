"""
Promo codes.

A free_paid_tier code upgrades a new account to the paid tier without a
checkout. percentage_discount codes are only validated here; the discount
itself is entered on the Stripe checkout page.
"""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pathwise.core.errors import NotFoundError, ValidationError
from pathwise.db.models.promo_code import PromoCode

logger = logging.getLogger(__name__)

PROMO_FREE_PAID_TIER = "free_paid_tier"
PROMO_PERCENTAGE_DISCOUNT = "percentage_discount"
PROMO_TYPES = (PROMO_FREE_PAID_TIER, PROMO_PERCENTAGE_DISCOUNT)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_valid_promo_code(db: Session, code: str, now: Optional[datetime] = None) -> Optional[PromoCode]:
    """Active, unexpired code, or None."""
    now = now or datetime.utcnow()
    return db.query(PromoCode).filter(
        PromoCode.code == normalize_code(code),
        PromoCode.is_active.is_(True),
        or_(PromoCode.expires_at.is_(None), PromoCode.expires_at > now),
    ).first()


def is_exhausted(promo: PromoCode) -> bool:
    return promo.max_uses is not None and promo.current_uses >= promo.max_uses


def validate_promo_code(db: Session, code: str) -> PromoCode:
    """
    Raises:
        ValidationError: empty code, or every use is taken
        NotFoundError: unknown, inactive or expired code
    """
    if not code or not code.strip():
        raise ValidationError("Promo code is required", code="promo_code_required")
    promo = get_valid_promo_code(db, code)
    if not promo:
        raise NotFoundError("Invalid or expired promo code", code="invalid_promo_code")
    if is_exhausted(promo):
        raise ValidationError("Promo code has reached maximum uses", code="promo_code_exhausted")
    return promo


def redeem_promo_code(db: Session, promo: PromoCode) -> PromoCode:
    """
    Count one use with a conditional UPDATE. Does not commit.

    Raises:
        ValidationError: the last use was taken concurrently
    """
    updated = db.query(PromoCode).filter(
        PromoCode.id == promo.id,
        or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
    ).update(
        {PromoCode.current_uses: PromoCode.current_uses + 1, PromoCode.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )
    if not updated:
        raise ValidationError("Promo code has reached maximum uses", code="promo_code_exhausted")
    db.refresh(promo)
    logger.info(f"Promo code redeemed: code={promo.code}, uses={promo.current_uses}/{promo.max_uses}")
    return promo


def create_promo_code(
    db: Session,
    code: str,
    promo_type: str = PROMO_FREE_PAID_TIER,
    discount_percentage: Optional[int] = None,
    max_uses: Optional[int] = None,
    expires_at: Optional[datetime] = None,
) -> PromoCode:
    if promo_type not in PROMO_TYPES:
        raise ValidationError(f"Unknown promo code type: {promo_type}")
    if promo_type == PROMO_PERCENTAGE_DISCOUNT and not discount_percentage:
        raise ValidationError("Discount percentage is required for percentage_discount codes")

    promo = PromoCode(
        code=normalize_code(code),
        type=promo_type,
        discount_percentage=discount_percentage if promo_type == PROMO_PERCENTAGE_DISCOUNT else None,
        max_uses=max_uses,
        expires_at=expires_at,
        is_active=True,
    )
    db.add(promo)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Promo code already exists", code="promo_code_exists")
    db.refresh(promo)
    logger.info(f"Promo code created: code={promo.code}, type={promo.type}, max_uses={max_uses}")
    return promo
