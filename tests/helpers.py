"""
Test doubles and factories shared across test modules.
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi.testclient import TestClient

from pathwise.core.security import hash_password
from pathwise.db.models.institution import Institution
from pathwise.db.models.license import License
from pathwise.db.models.user import User
from pathwise.services.email_service import EmailService
from pathwise.services.session_service import create_session
from pathwise.services.stripe_service import StripeClient

WEBHOOK_SECRET = "whsec_test_secret"
DEFAULT_PASSWORD = "testpass123"


class FakeStripe(StripeClient):
    """Records calls instead of reaching Stripe; webhook verification stays real."""

    def __init__(self, configured: bool = True):
        super().__init__(
            secret_key="sk_test_fake" if configured else None,
            price_id="price_test_unlimited" if configured else None,
            webhook_secret=WEBHOOK_SECRET,
            frontend_url="http://localhost:5000",
        )
        self.calls: List[tuple] = []
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def create_customer(self, email: str, user_id: int) -> str:
        self.require_configured()
        self.calls.append(("create_customer", email, user_id))
        return self._next_id("cus_test")

    def create_subscription_checkout(self, customer_id, user_id, success_path="/checkout/success",
                                     cancel_path="/dashboard?payment=cancelled"):
        self.require_subscription_price()
        session_id = self._next_id("cs_test_sub")
        self.calls.append(("create_subscription_checkout", customer_id, user_id))
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def create_feature_checkout(self, customer_id, user_id, feature):
        self.require_configured()
        session_id = self._next_id("cs_test_pay")
        self.calls.append(("create_feature_checkout", customer_id, user_id, feature.key))
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def retrieve_checkout_session(self, session_id):
        self.require_configured()
        return self.sessions[session_id]

    def retrieve_subscription(self, subscription_id):
        self.require_configured()
        return self.subscriptions.get(subscription_id, {"id": subscription_id, "status": "active"})

    def cancel_at_period_end(self, subscription_id):
        self.require_configured()
        self.calls.append(("cancel_at_period_end", subscription_id))

    def cancel_now(self, subscription_id):
        self.require_configured()
        self.calls.append(("cancel_now", subscription_id))

    def create_portal_session(self, customer_id, return_path="/dashboard"):
        self.require_configured()
        return f"https://billing.stripe.test/{customer_id}"


class FakeEmailService(EmailService):
    def __init__(self):
        super().__init__(api_key="re_test_fake", base_url="http://localhost:5000")
        self.sent: List[Dict[str, str]] = []

    def _send(self, to: str, subject: str, html: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


def make_user(
    db,
    email: str = "student@example.com",
    password: str = DEFAULT_PASSWORD,
    tier: str = "free",
    status: str = "active",
    role: str = "student",
    institution_id: Optional[int] = None,
    is_active: bool = True,
    is_verified: bool = True,
    **kwargs,
) -> User:
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=kwargs.pop("first_name", "Test"),
        last_name=kwargs.pop("last_name", "User"),
        role=role,
        institution_id=institution_id,
        subscription_tier=tier,
        subscription_status=status,
        is_active=is_active,
        is_verified=is_verified,
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_institution(db, name: str = "Example University", domain: Optional[str] = "example.edu",
                     allowed_domains: Optional[List[str]] = None) -> Institution:
    institution = Institution(
        name=name,
        domain=domain,
        allowed_domains=allowed_domains or [],
        contact_email=f"it@{domain or 'example.org'}",
        contact_name="Sam Rivera",
        is_active=True,
    )
    db.add(institution)
    db.commit()
    db.refresh(institution)
    return institution


def make_license(db, institution_id: int, license_type: str = "per_student", licensed_seats: Optional[int] = 5,
                 used_seats: int = 0, expired: bool = False) -> License:
    now = datetime.utcnow()
    if expired:
        start, end = now - timedelta(days=60), now - timedelta(days=1)
    else:
        start, end = now - timedelta(days=1), now + timedelta(days=365)
    license = License(
        institution_id=institution_id,
        license_type=license_type,
        licensed_seats=licensed_seats if license_type == "per_student" else None,
        used_seats=used_seats,
        start_date=start,
        end_date=end,
        is_active=True,
    )
    db.add(license)
    db.commit()
    db.refresh(license)
    return license


def auth_headers(db, user: User) -> Dict[str, str]:
    token = create_session(db, user)
    return {"Authorization": f"Bearer {token}"}


def sign_webhook(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for payload (t=...,v1=HMAC-SHA256)."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def post_webhook(client: TestClient, event: Dict[str, Any], signature: Optional[str] = None):
    payload = json.dumps(event)
    headers = {"Content-Type": "application/json"}
    headers["stripe-signature"] = signature if signature is not None else sign_webhook(payload)
    return client.post("/api/stripe/webhook", content=payload, headers=headers)
