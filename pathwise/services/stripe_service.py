"""
Stripe client for checkout, billing portal, subscription changes and webhook verification.

Built once at startup and injected into routes. Retrieved objects are returned
as plain dicts. An unconfigured client raises
PaymentProviderNotConfigured on use instead of failing at import time.
"""
import json
import logging
from typing import Any, Dict, Optional
import stripe

from pathwise.core.config import (
    FRONTEND_URL,
    STRIPE_PRICE_ID,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)
from pathwise.core.errors import PaymentProviderNotConfigured, UpstreamError
from pathwise.core.feature_catalog import FeatureInfo

logger = logging.getLogger(__name__)


class StripeClient:
    def __init__(
        self,
        secret_key: Optional[str],
        price_id: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        frontend_url: str = FRONTEND_URL,
    ):
        self.secret_key = secret_key
        self.price_id = price_id
        self.webhook_secret = webhook_secret
        self.frontend_url = frontend_url.rstrip("/")
        if not secret_key:
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe features disabled")

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def require_configured(self) -> None:
        if not self.configured:
            raise PaymentProviderNotConfigured()

    def _call(self, action: str, method, *args, **kwargs):
        """Run a Stripe SDK call, turning provider errors into a 502 without leaking details."""
        self.require_configured()
        try:
            return method(*args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"Stripe error during {action}: {type(e).__name__}: {e}")
            raise UpstreamError("Payment provider is temporarily unavailable. Please try again later.") from e

    def create_customer(self, email: str, user_id: int) -> str:
        customer = self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            metadata={"user_id": str(user_id)},
        )
        logger.info(f"Created Stripe customer for user_id={user_id}")
        return customer.id

    def require_subscription_price(self) -> None:
        self.require_configured()
        if not self.price_id:
            raise PaymentProviderNotConfigured("Subscription price is not configured")

    def create_subscription_checkout(self, customer_id: str, user_id: int,
                                     success_path: str = "/checkout/success",
                                     cancel_path: str = "/dashboard?payment=cancelled") -> Dict[str, str]:
        """
        Create a Checkout session for the unlimited subscription.

        Returns:
            Dictionary with 'id' and 'url' of the checkout session
        """
        self.require_subscription_price()

        session = self._call(
            "create_subscription_checkout",
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": self.price_id, "quantity": 1}],
            success_url=f"{self.frontend_url}{success_path}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.frontend_url}{cancel_path}",
            metadata={"user_id": str(user_id)},
            subscription_data={"metadata": {"user_id": str(user_id)}},
            allow_promotion_codes=True,
        )
        logger.info(f"Created subscription checkout: user_id={user_id}, session_id={session.id}")
        return {"id": session.id, "url": session.url}

    def create_feature_checkout(self, customer_id: str, user_id: int, feature: FeatureInfo) -> Dict[str, str]:
        """One-off payment Checkout session for a single catalog feature."""
        session = self._call(
            "create_feature_checkout",
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": "usd",
                    "unit_amount": feature.price_cents,
                    "product_data": {"name": feature.name, "description": feature.description},
                },
                "quantity": 1,
            }],
            success_url=f"{self.frontend_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.frontend_url}/dashboard?payment=cancelled",
            metadata={"user_id": str(user_id), "feature_key": feature.key},
        )
        logger.info(f"Created feature checkout: user_id={user_id}, feature={feature.key}, session_id={session.id}")
        return {"id": session.id, "url": session.url}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        session = self._call("retrieve_checkout_session", stripe.checkout.Session.retrieve, session_id)
        return session.to_dict()

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)
        return subscription.to_dict()

    def cancel_at_period_end(self, subscription_id: str) -> None:
        self._call(
            "cancel_at_period_end",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
        )
        logger.info(f"Subscription set to cancel at period end: subscription_id={subscription_id}")

    def cancel_now(self, subscription_id: str) -> None:
        self._call("cancel_now", stripe.Subscription.cancel, subscription_id)
        logger.info(f"Subscription canceled: subscription_id={subscription_id}")

    def create_portal_session(self, customer_id: str, return_path: str = "/dashboard") -> str:
        session = self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=f"{self.frontend_url}{return_path}",
        )
        return session.url

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and parse a webhook delivery.

        Returns:
            Parsed event dictionary

        Raises:
            PaymentProviderNotConfigured: webhook secret missing
            ValueError: missing or invalid signature, or malformed payload
        """
        if not self.webhook_secret:
            raise PaymentProviderNotConfigured("Webhook secret is not configured")
        if not signature:
            raise ValueError("Missing stripe-signature header")

        try:
            stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature, self.webhook_secret)
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise ValueError("Invalid signature") from e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise ValueError("Invalid payload") from e

        if not isinstance(event, dict) or "type" not in event:
            raise ValueError("Invalid payload")
        logger.info(f"Verified webhook event: {event['type']}, id={event.get('id')}")
        return event


def build_stripe_client() -> StripeClient:
    return StripeClient(
        secret_key=STRIPE_SECRET_KEY,
        price_id=STRIPE_PRICE_ID,
        webhook_secret=STRIPE_WEBHOOK_SECRET,
    )
