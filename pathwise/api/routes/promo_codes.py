import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pathwise.core.auth_dependency import get_db, require_super_admin
from pathwise.core.rate_limit import rate_limiter
from pathwise.db.models.user import User
from pathwise.schemas.billing import (
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeValidateRequest,
    PromoCodeValidateResponse,
)
from pathwise.services import promo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/promo-codes", tags=["Billing"])


@router.post(
    "/validate",
    response_model=PromoCodeValidateResponse,
    dependencies=[Depends(rate_limiter("promo-validate", max_requests=10, window_seconds=60))],
)
def validate_promo_code(payload: PromoCodeValidateRequest, db: Session = Depends(get_db)):
    """Check a code before registration; 404 for unknown or expired codes."""
    promo = promo_service.validate_promo_code(db, payload.code)
    return PromoCodeValidateResponse(
        type=promo.type,
        code=promo.code,
        discount_percentage=promo.discount_percentage,
    )


@router.post("", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
def create_promo_code(
    payload: PromoCodeCreate,
    user: User = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    promo = promo_service.create_promo_code(
        db,
        code=payload.code,
        promo_type=payload.type,
        discount_percentage=payload.discount_percentage,
        max_uses=payload.max_uses,
        expires_at=payload.expires_at,
    )
    logger.info(f"Promo code created by user_id={user.id}: code={promo.code}")
    return promo
