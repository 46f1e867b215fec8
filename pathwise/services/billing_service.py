"""
Subscription and purchase ledger, and Stripe webhook event processing.

Ledger functions never commit; dispatch_event commits once per event and
rolls back on any failure so the provider can redeliver. Every mutation is
keyed by provider ids and written as an absolute state, so a replayed
event leaves the ledger unchanged.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional
from sqlalchemy.orm import Session

from pathwise.core.errors import ValidationError
from pathwise.core.feature_catalog import (
    STATUS_ACTIVE,
    STATUS_CANCELED,
    SUBSCRIPTION_STATUSES,
    TIER_FREE,
    TIER_INSTITUTIONAL,
    TIER_PAID,
    is_known_feature,
)
from pathwise.db.models.ended_subscription import EndedSubscription
from pathwise.db.models.purchased_feature import PurchasedFeature
from pathwise.db.models.user import User

logger = logging.getLogger(__name__)

PAID_SESSION_STATUSES = ("paid", "no_payment_required")
# Provider statuses after which the subscription grants nothing
TERMINAL_STATUSES = ("canceled", "unpaid", "incomplete_expired")


def _metadata_user_id(obj: Mapping[str, Any]) -> Optional[int]:
    metadata = obj.get("metadata") or {}
    raw = metadata.get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed user_id in provider metadata: {raw!r}")
        return None


def find_billing_user(
    db: Session,
    user_id: Optional[int] = None,
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None,
) -> Optional[User]:
    """Locate a user by metadata id, then subscription id, then customer id."""
    if user_id is not None:
        user = db.query(User).filter(User.id == user_id).first()
        if user:
            return user
    if subscription_id:
        user = db.query(User).filter(User.stripe_subscription_id == subscription_id).first()
        if user:
            return user
    if customer_id:
        return db.query(User).filter(User.stripe_customer_id == customer_id).first()
    return None


def is_subscription_ended(db: Session, subscription_id: Optional[str]) -> bool:
    if not subscription_id:
        return False
    return db.query(EndedSubscription).filter(
        EndedSubscription.stripe_subscription_id == subscription_id
    ).first() is not None


def record_subscription_ended(db: Session, subscription_id: Optional[str], user_id: Optional[int] = None) -> None:
    """Remember a canceled subscription id so no later event or verify call revives it."""
    if not subscription_id or is_subscription_ended(db, subscription_id):
        return
    db.add(EndedSubscription(stripe_subscription_id=subscription_id, user_id=user_id))
    db.flush()


def activate_subscription(db: Session, user: User, subscription_id: Optional[str],
                          customer_id: Optional[str] = None) -> bool:
    """
    Mark the unlimited subscription active. Institutional members keep their tier.

    Returns:
        False if subscription_id was already canceled and nothing changed
    """
    if is_subscription_ended(db, subscription_id):
        logger.info(f"Refusing to reactivate ended subscription_id={subscription_id}, user_id={user.id}")
        return False
    if user.subscription_tier != TIER_INSTITUTIONAL:
        user.subscription_tier = TIER_PAID
    user.subscription_status = STATUS_ACTIVE
    if subscription_id:
        user.stripe_subscription_id = subscription_id
    if customer_id:
        user.stripe_customer_id = customer_id
    user.subscription_ends_at = None
    logger.info(f"Subscription active: user_id={user.id}, tier={user.subscription_tier}")
    return True


def downgrade_to_free(db: Session, user: User, status: str = STATUS_CANCELED,
                      subscription_id: Optional[str] = None) -> User:
    """
    End the paid subscription immediately.

    Individually purchased features are kept.
    """
    record_subscription_ended(db, subscription_id or user.stripe_subscription_id, user.id)
    if user.subscription_tier == TIER_PAID:
        user.subscription_tier = TIER_FREE
        user.subscription_status = status
    user.stripe_subscription_id = None
    logger.info(f"User downgraded: user_id={user.id}, tier={user.subscription_tier}, status={user.subscription_status}")
    return user


def grant_feature_purchase(db: Session, user: User, feature_key: str,
                           checkout_session_id: Optional[str] = None) -> bool:
    """
    Add feature_key to the user's purchased set.

    Returns:
        True if a new purchase was recorded, False if it was already owned
    """
    if not is_known_feature(feature_key):
        raise ValidationError(f"Unknown feature: {feature_key}")

    exists = db.query(PurchasedFeature).filter(
        PurchasedFeature.user_id == user.id,
        PurchasedFeature.feature_key == feature_key,
    ).first()
    if exists:
        return False

    # A concurrent grant fails the unique constraint here; the caller rolls back
    # and the retried delivery finds the existing row.
    db.add(PurchasedFeature(
        user_id=user.id,
        feature_key=feature_key,
        stripe_checkout_session_id=checkout_session_id,
    ))
    db.flush()

    logger.info(f"Feature purchased: user_id={user.id}, feature={feature_key}")
    return True


def apply_checkout_session(db: Session, session: Mapping[str, Any],
                           expected_user_id: Optional[int] = None) -> User:
    """
    Apply a completed Checkout session to the ledger. Does not commit.

    Shared by the synchronous verify endpoints and the webhook.

    Raises:
        ValidationError: payment not completed, or the session is not ours
    """
    if session.get("payment_status") not in PAID_SESSION_STATUSES:
        raise ValidationError("Payment not completed")

    user_id = _metadata_user_id(session)
    if user_id is None:
        raise ValidationError("Checkout session is missing its user reference")
    if expected_user_id is not None and user_id != expected_user_id:
        raise ValidationError("Session does not belong to this user", code="session_mismatch")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise ValidationError("User not found for checkout session")

    customer_id = session.get("customer")
    if session.get("mode") == "subscription":
        if not activate_subscription(db, user, session.get("subscription"), customer_id):
            raise ValidationError("This subscription has been canceled", code="subscription_ended")
    else:
        feature_key = (session.get("metadata") or {}).get("feature_key")
        if not feature_key:
            raise ValidationError("Checkout session has no feature to grant")
        grant_feature_purchase(db, user, feature_key, session.get("id"))
        if customer_id and not user.stripe_customer_id:
            user.stripe_customer_id = customer_id
    return user


def handle_checkout_session_completed(db: Session, obj: Dict[str, Any]) -> None:
    if obj.get("payment_status") not in PAID_SESSION_STATUSES:
        # Async payment methods complete later via a separate event
        logger.info(f"checkout.session.completed without payment: session_id={obj.get('id')}")
        return
    if find_billing_user(db, user_id=_metadata_user_id(obj)) is None:
        logger.warning(f"checkout.session.completed: user not found, session_id={obj.get('id')}")
        return
    if obj.get("mode") == "subscription" and is_subscription_ended(db, obj.get("subscription")):
        logger.info(f"Ignoring checkout for ended subscription_id={obj.get('subscription')}, session_id={obj.get('id')}")
        return
    user = apply_checkout_session(db, obj)
    logger.info(f"Checkout completed: user_id={user.id}, mode={obj.get('mode')}")


def _subscription_user(db: Session, obj: Dict[str, Any]) -> Optional[User]:
    subscription_id = obj.get("id")
    user = find_billing_user(
        db,
        user_id=_metadata_user_id(obj),
        subscription_id=subscription_id,
        customer_id=obj.get("customer"),
    )
    if not user:
        logger.warning(f"Subscription event for unknown user: subscription_id={subscription_id}")
        return None
    if user.stripe_subscription_id and user.stripe_subscription_id != subscription_id:
        logger.info(f"Ignoring event for superseded subscription_id={subscription_id}, user_id={user.id}")
        return None
    return user


def handle_subscription_updated(db: Session, obj: Dict[str, Any]) -> None:
    """
    Sync provider subscription state.

    A subscription set to cancel at period end is treated as canceled now.
    Ended subscription ids are never revived.
    """
    subscription_id = obj.get("id")
    status = obj.get("status")
    ending = status in TERMINAL_STATUSES or obj.get("cancel_at_period_end")
    if not ending and is_subscription_ended(db, subscription_id):
        logger.info(f"Ignoring {status!r} update for ended subscription_id={subscription_id}")
        return

    user = _subscription_user(db, obj)
    if not user:
        if ending:
            record_subscription_ended(db, subscription_id)
        return

    if ending:
        period_end = obj.get("current_period_end")
        if period_end:
            user.subscription_ends_at = datetime.utcfromtimestamp(period_end)
        downgrade_to_free(db, user, subscription_id=subscription_id)
    elif status == STATUS_ACTIVE:
        activate_subscription(db, user, subscription_id, obj.get("customer"))
    elif status in SUBSCRIPTION_STATUSES:
        user.subscription_status = status
        logger.info(f"Subscription status updated: user_id={user.id}, status={status}")
    else:
        logger.info(f"Unmapped subscription status {status!r} for user_id={user.id}")


def handle_subscription_deleted(db: Session, obj: Dict[str, Any]) -> None:
    user = _subscription_user(db, obj)
    if user:
        downgrade_to_free(db, user, subscription_id=obj.get("id"))
    else:
        record_subscription_ended(db, obj.get("id"))


def _invoice_subscription_id(obj: Dict[str, Any]) -> Optional[str]:
    subscription_id = obj.get("subscription")
    if subscription_id:
        return subscription_id
    # Newer API versions nest it under parent.subscription_details
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


def handle_invoice_payment_succeeded(db: Session, obj: Dict[str, Any]) -> None:
    subscription_id = _invoice_subscription_id(obj)
    if not subscription_id:
        logger.info("invoice.payment_succeeded: no subscription on invoice")
        return
    user = db.query(User).filter(User.stripe_subscription_id == subscription_id).first()
    if not user:
        logger.warning(f"invoice.payment_succeeded: no user for subscription_id={subscription_id}")
        return
    user.subscription_status = STATUS_ACTIVE
    logger.info(f"Invoice payment succeeded: user_id={user.id}")


def handle_invoice_payment_failed(db: Session, obj: Dict[str, Any]) -> None:
    subscription_id = _invoice_subscription_id(obj)
    if not subscription_id:
        logger.info("invoice.payment_failed: no subscription on invoice")
        return
    user = db.query(User).filter(User.stripe_subscription_id == subscription_id).first()
    if not user:
        logger.warning(f"invoice.payment_failed: no user for subscription_id={subscription_id}")
        return
    user.subscription_status = "past_due"
    logger.warning(f"Invoice payment failed: user_id={user.id}, subscription_id={subscription_id}")


EVENT_HANDLERS: Dict[str, Callable[[Session, Dict[str, Any]], None]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "checkout.session.async_payment_succeeded": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.paid": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def dispatch_event(db: Session, event: Dict[str, Any]) -> bool:
    """
    Apply one webhook event in a single transaction.

    Returns:
        True if the event type is handled, False if it was ignored

    Raises:
        Exception: any handler failure, after rolling back
    """
    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event type: {event_type}")
        return False

    obj = (event.get("data") or {}).get("object") or {}
    try:
        handler(db, obj)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Webhook event failed: type={event_type}, id={event.get('id')}")
        raise
    return True
