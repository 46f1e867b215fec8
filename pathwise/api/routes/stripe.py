"""
Stripe billing endpoints: checkout, purchase, verification, cancellation,
billing portal and webhook ingestion.
"""
import logging
from fastapi import APIRouter, Depends, Header, Request, Response
from sqlalchemy.orm import Session
from typing import Optional

from pathwise.api.deps import get_payment_provider
from pathwise.api.routes.auth import set_auth_cookie
from pathwise.core.auth_dependency import get_current_user, get_db
from pathwise.core.errors import (
    UnknownFeatureError,
    ValidationError,
    WebhookProcessingError,
)
from pathwise.core.feature_catalog import STATUS_ACTIVE, TIER_INSTITUTIONAL, get_feature
from pathwise.core.gating import (
    REASON_PURCHASE,
    REASON_SUBSCRIPTION,
    catalog_listing,
    check_feature_access,
    has_active_subscription,
)
from pathwise.db.models.user import User
from pathwise.schemas.auth import MessageResponse, UserResponse
from pathwise.schemas.billing import (
    CheckoutUrlResponse,
    PurchaseFeatureRequest,
    VerifyAndLoginResponse,
    VerifySessionRequest,
    VerifySessionResponse,
    WebhookAck,
)
from pathwise.services import billing_service
from pathwise.services.session_service import create_session
from pathwise.services.stripe_service import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["Billing"])


def _ensure_customer(db: Session, user: User, payment_provider: StripeClient) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer_id = payment_provider.create_customer(user.email, user.id)
    user.stripe_customer_id = customer_id
    db.commit()
    return customer_id


def _require_live_subscription(session, payment_provider: StripeClient) -> None:
    """A subscription checkout only activates while the provider still reports it active."""
    if session.get("mode") != "subscription":
        return
    subscription_id = session.get("subscription")
    if not subscription_id:
        raise ValidationError("Checkout session has no subscription", code="subscription_inactive")
    subscription = payment_provider.retrieve_subscription(subscription_id)
    if subscription.get("status") != STATUS_ACTIVE:
        logger.info(f"Verify refused: subscription_id={subscription_id}, status={subscription.get('status')}")
        raise ValidationError("Subscription is not active", code="subscription_inactive")


@router.get("/features")
def list_features():
    """Public catalog of individually purchasable features and their prices."""
    return {"features": catalog_listing()}


@router.post("/create-checkout-session", response_model=CheckoutUrlResponse)
def create_checkout_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """Start a subscription checkout for the unlimited plan."""
    payment_provider.require_subscription_price()
    if has_active_subscription(user.subscription_tier, user.subscription_status):
        raise ValidationError("You already have an active subscription", code="already_subscribed")

    customer_id = _ensure_customer(db, user, payment_provider)
    checkout = payment_provider.create_subscription_checkout(customer_id, user.id)
    return CheckoutUrlResponse(url=checkout["url"])


@router.post("/purchase-feature", response_model=CheckoutUrlResponse)
def purchase_feature(
    payload: PurchaseFeatureRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """Start a one-off checkout for a single catalog feature."""
    payment_provider.require_configured()
    try:
        feature = get_feature(payload.feature_key)
    except UnknownFeatureError:
        raise ValidationError(f"Unknown feature: {payload.feature_key}", code="unknown_feature")

    decision = check_feature_access(db, user, feature.key)
    if decision.reason == REASON_SUBSCRIPTION:
        raise ValidationError("Your subscription already includes this feature", code="already_subscribed")
    if decision.reason == REASON_PURCHASE:
        raise ValidationError("You already own this feature", code="already_purchased")

    customer_id = _ensure_customer(db, user, payment_provider)
    checkout = payment_provider.create_feature_checkout(customer_id, user.id, feature)
    return CheckoutUrlResponse(url=checkout["url"])


@router.post("/verify-session", response_model=VerifySessionResponse)
def verify_session(
    payload: VerifySessionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """
    Apply a completed checkout right after the redirect, without waiting for the webhook.

    Applies the same ledger change as checkout.session.completed, so whichever
    arrives second is a no-op.
    """
    session = payment_provider.retrieve_checkout_session(payload.session_id)
    _require_live_subscription(session, payment_provider)
    billing_service.apply_checkout_session(db, session, expected_user_id=user.id)
    db.commit()

    feature_key = (session.get("metadata") or {}).get("feature_key")
    if session.get("mode") == "subscription":
        return VerifySessionResponse(message="Subscription activated successfully")
    return VerifySessionResponse(message="Feature unlocked successfully", feature_key=feature_key)


@router.post("/verify-and-login", response_model=VerifyAndLoginResponse)
def verify_and_login(
    payload: VerifySessionRequest,
    response: Response,
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """Finish a paid registration: activate the subscription and start a session."""
    session = payment_provider.retrieve_checkout_session(payload.session_id)
    if session.get("mode") != "subscription":
        raise ValidationError("Checkout session is not a subscription")

    _require_live_subscription(session, payment_provider)
    user = billing_service.apply_checkout_session(db, session)
    if not user.is_active:
        raise ValidationError("Account is inactive", code="account_inactive")
    token = create_session(db, user, commit=False)
    db.commit()
    db.refresh(user)

    set_auth_cookie(response, token)
    logger.info(f"User logged in after payment completion: user_id={user.id}")
    return VerifyAndLoginResponse(user=UserResponse.model_validate(user), token=token)


@router.post("/cancel-subscription", response_model=MessageResponse)
def cancel_subscription(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """
    Cancel the subscription.

    Billing stops at the end of the period, but access is downgraded to free
    immediately. Individually purchased features are kept.
    """
    payment_provider.require_configured()
    if not user.stripe_subscription_id or user.subscription_tier == TIER_INSTITUTIONAL:
        raise ValidationError("No active subscription found", code="no_subscription")

    payment_provider.cancel_at_period_end(user.stripe_subscription_id)
    billing_service.downgrade_to_free(db, user)
    db.commit()
    logger.info(f"Subscription canceled: user_id={user.id}")
    return MessageResponse(message="Subscription canceled successfully")


@router.post("/billing-portal", response_model=CheckoutUrlResponse)
def billing_portal(
    user: User = Depends(get_current_user),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    payment_provider.require_configured()
    if not user.stripe_customer_id:
        raise ValidationError("No Stripe customer found", code="no_customer")
    return CheckoutUrlResponse(url=payment_provider.create_portal_session(user.stripe_customer_id))


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    payment_provider: StripeClient = Depends(get_payment_provider),
):
    """
    Ingest a provider event.

    400 for a bad signature or payload (not retried); 500 if applying the
    event fails, so the provider redelivers it.
    """
    payload = await request.body()
    try:
        event = payment_provider.construct_event(payload, stripe_signature)
    except ValueError as e:
        raise ValidationError(f"Webhook Error: {e}", code="invalid_webhook")

    try:
        billing_service.dispatch_event(db, event)
    except Exception as e:
        logger.error(f"Webhook processing failed: type={event.get('type')}, id={event.get('id')}: {type(e).__name__}")
        raise WebhookProcessingError() from e

    return WebhookAck()
