"""
Promo code tests: validation, redemption at registration and admin creation.
"""
from datetime import datetime, timedelta

import pytest
import stripe

from pathwise.core.errors import ValidationError
from pathwise.db.models.promo_code import PromoCode
from pathwise.db.models.user import User
from pathwise.services.promo_service import create_promo_code, redeem_promo_code
from pathwise.services.stripe_service import StripeClient
from tests.helpers import auth_headers, make_user


def register_payload(**overrides):
    payload = {
        "email": "casey@gmail.com",
        "password": "SecurePass123",
        "confirmPassword": "SecurePass123",
        "firstName": "Casey",
        "lastName": "Nguyen",
    }
    payload.update(overrides)
    return payload


def test_validate_is_case_insensitive(client, db):
    create_promo_code(db, "launch2025")

    response = client.post("/api/promo-codes/validate", json={"code": "  Launch2025 "})

    assert response.status_code == 200
    assert response.json() == {"valid": True, "type": "free_paid_tier", "code": "LAUNCH2025",
                               "discountPercentage": None}


@pytest.mark.parametrize("code,setup", [
    ("NOPE", None),
    ("OLDCODE", {"expires_at": datetime.utcnow() - timedelta(days=1)}),
    ("OFFCODE", {"is_active": False}),
])
def test_validate_rejects_unknown_expired_or_inactive(client, db, code, setup):
    if setup is not None:
        promo = create_promo_code(db, code)
        for field, value in setup.items():
            setattr(promo, field, value)
        db.commit()

    response = client.post("/api/promo-codes/validate", json={"code": code})

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "invalid_promo_code"


def test_validate_rejects_used_up_code(client, db):
    promo = create_promo_code(db, "ONEUSE", max_uses=1)
    promo.current_uses = 1
    db.commit()

    response = client.post("/api/promo-codes/validate", json={"code": "oneuse"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "promo_code_exhausted"


def test_register_with_free_paid_tier_code(client, db, fake_stripe):
    create_promo_code(db, "SCHOLAR", max_uses=5)

    response = client.post("/api/auth/register", json=register_payload(promoCode="scholar"))

    assert response.status_code == 201
    data = response.json()
    assert data["requiresPayment"] is False
    assert data["user"]["subscriptionTier"] == "paid"
    assert data["user"]["subscriptionStatus"] == "active"
    assert fake_stripe.calls == []

    access = client.get("/api/user/feature-access", headers={"Authorization": f"Bearer {data['token']}"})
    assert all(access.json()["featureAccess"].values())
    promo = db.query(PromoCode).filter(PromoCode.code == "SCHOLAR").first()
    db.refresh(promo)
    assert promo.current_uses == 1


def test_register_with_used_up_code_creates_nothing(client, db):
    promo = create_promo_code(db, "GONE", max_uses=1)
    promo.current_uses = 1
    db.commit()

    response = client.post("/api/auth/register", json=register_payload(promoCode="GONE"))

    assert response.status_code == 400
    assert db.query(User).count() == 0


def test_discount_code_still_goes_through_checkout(client, db):
    create_promo_code(db, "HALFOFF", promo_type="percentage_discount", discount_percentage=50)

    response = client.post("/api/auth/register", json=register_payload(promoCode="HALFOFF", selectedPlan="paid"))

    assert response.status_code == 201
    assert response.json()["requiresPayment"] is True
    assert response.json()["user"]["subscriptionStatus"] == "incomplete"
    promo = db.query(PromoCode).filter(PromoCode.code == "HALFOFF").first()
    assert promo.current_uses == 0


def test_redeem_refuses_past_max_uses(db):
    promo = create_promo_code(db, "LASTONE", max_uses=1)

    redeem_promo_code(db, promo)
    db.commit()
    with pytest.raises(ValidationError):
        redeem_promo_code(db, promo)
    assert promo.current_uses == 1


def test_only_super_admin_creates_codes(client, db):
    admin = make_user(db, email="root@pathwise.nyc", role="super_admin")
    student = make_user(db, email="student@gmail.com")
    body = {"code": "Welcome10", "type": "percentage_discount", "discountPercentage": 10, "maxUses": 100}

    assert client.post("/api/promo-codes", json=body, headers=auth_headers(db, student)).status_code == 403

    created = client.post("/api/promo-codes", json=body, headers=auth_headers(db, admin))
    assert created.status_code == 201
    assert created.json()["code"] == "WELCOME10"
    assert created.json()["currentUses"] == 0

    duplicate = client.post("/api/promo-codes", json=body, headers=auth_headers(db, admin))
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["error"] == "promo_code_exists"


def test_subscription_checkout_allows_promotion_codes(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return stripe.checkout.Session.construct_from(
            {"id": "cs_promo_1", "url": "https://checkout.stripe.test/cs_promo_1"}, "sk_test_fake"
        )

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    provider = StripeClient(secret_key="sk_test_fake", price_id="price_test_unlimited")

    checkout = provider.create_subscription_checkout("cus_test_1", 7)

    assert checkout == {"id": "cs_promo_1", "url": "https://checkout.stripe.test/cs_promo_1"}
    assert captured["allow_promotion_codes"] is True
    assert captured["metadata"] == {"user_id": "7"}
