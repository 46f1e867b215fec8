"""
Entitlement snapshot and account endpoints for the signed-in user.
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pathwise.api.deps import get_payment_provider
from pathwise.core.auth_dependency import get_current_user, get_db
from pathwise.core.errors import NotFoundError, UnknownFeatureError
from pathwise.core.gating import build_paywall, feature_access_snapshot, load_subject, resolve_access
from pathwise.db.models.user import User
from pathwise.schemas.access import FeatureAccessResponse, FeatureDecisionResponse, UserSettingsUpdate
from pathwise.schemas.auth import MessageResponse, UserResponse
from pathwise.services import account_service
from pathwise.services.stripe_service import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["User"])


@router.get("/user/feature-access", response_model=FeatureAccessResponse)
def get_feature_access(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Resolved access for every catalog feature.

    The web client hides or paywalls features from this snapshot; the server
    still enforces access on every gated endpoint.
    """
    return feature_access_snapshot(db, user)


@router.get("/user/feature-access/{feature_key}", response_model=FeatureDecisionResponse)
def get_single_feature_access(
    feature_key: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        decision = resolve_access(load_subject(db, user), feature_key)
    except UnknownFeatureError:
        raise NotFoundError(f"Unknown feature: {feature_key}")

    return FeatureDecisionResponse(
        feature_key=feature_key,
        has_access=decision.granted,
        reason=decision.reason,
        paywall=None if decision.granted else build_paywall(feature_key),
    )


@router.patch("/users/settings", response_model=UserResponse)
def update_settings(
    payload: UserSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return account_service.update_settings(db, user, payload.model_dump(exclude_unset=True))


@router.delete("/users/delete-account", response_model=MessageResponse)
def delete_account(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    account_service.delete_account(db, user, payment_provider)
    return MessageResponse(message="Account deleted successfully")
