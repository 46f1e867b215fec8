"""
Registration, login, session and password reset tests.
"""
from datetime import datetime, timedelta

from pathwise.api.deps import get_payment_provider
from pathwise.db.models.invitation import Invitation
from pathwise.db.models.password_reset import PasswordResetToken
from pathwise.db.models.user import User
from pathwise.db.models.user_session import UserSession
from pathwise.main import app
from tests.helpers import DEFAULT_PASSWORD, FakeStripe, auth_headers, make_institution, make_license, make_user


def register_payload(**overrides):
    payload = {
        "email": "jordan@gmail.com",
        "password": "SecurePass123",
        "confirmPassword": "SecurePass123",
        "firstName": "Jordan",
        "lastName": "Lee",
    }
    payload.update(overrides)
    return payload


def test_register_free_user(client, db):
    response = client.post("/api/auth/register", json=register_payload())

    assert response.status_code == 201
    data = response.json()
    assert data["token"]
    assert data["requiresPayment"] is False
    assert data["user"]["subscriptionTier"] == "free"
    assert data["user"]["role"] == "student"
    assert "passwordHash" not in data["user"]
    assert "requiresVerification" not in data
    assert "auth_token" in response.cookies

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "jordan@gmail.com"


def test_register_duplicate_email(client, db):
    make_user(db, email="jordan@gmail.com")
    response = client.post("/api/auth/register", json=register_payload(email="Jordan@Gmail.com"))

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "user_exists"


def test_register_password_mismatch(client):
    response = client.post("/api/auth/register", json=register_payload(confirmPassword="different"))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "validation_error"


def test_register_by_institution_domain_claims_seat(client, db):
    institution = make_institution(db, domain="example.edu")
    license = make_license(db, institution.id, licensed_seats=2)

    response = client.post("/api/auth/register", json=register_payload(email="sam@example.edu"))

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["subscriptionTier"] == "institutional"
    assert user["institutionId"] == institution.id
    db.refresh(license)
    assert license.used_seats == 1


def test_register_by_allowed_domain(client, db):
    institution = make_institution(db, domain="example.edu", allowed_domains=["alumni.example.edu"])
    make_license(db, institution.id, license_type="site")

    response = client.post("/api/auth/register", json=register_payload(email="sam@alumni.example.edu"))
    assert response.status_code == 201
    assert response.json()["user"]["institutionId"] == institution.id


def test_register_when_institution_full(client, db):
    institution = make_institution(db, domain="example.edu")
    make_license(db, institution.id, licensed_seats=1, used_seats=1)

    response = client.post("/api/auth/register", json=register_payload(email="sam@example.edu"))

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "no_seats_available"
    assert db.query(User).count() == 0


def test_register_with_invitation(client, db):
    institution = make_institution(db, domain="example.edu")
    license = make_license(db, institution.id, licensed_seats=5)
    invitation = Invitation(
        institution_id=institution.id,
        email="new.admin@other.org",
        role="admin",
        token="invite-token-1",
        status="pending",
        expires_at=datetime.utcnow() + timedelta(days=7),
    )
    db.add(invitation)
    db.commit()

    response = client.post(
        "/api/auth/register",
        json=register_payload(email="new.admin@other.org", invitationToken="invite-token-1"),
    )

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["role"] == "admin"
    assert user["institutionId"] == institution.id
    db.refresh(invitation)
    db.refresh(license)
    assert invitation.status == "claimed"
    assert invitation.claimed_by == user["id"]
    # Admins do not take student seats
    assert license.used_seats == 0


def test_register_with_invitation_email_mismatch(client, db):
    institution = make_institution(db)
    make_license(db, institution.id)
    db.add(Invitation(
        institution_id=institution.id,
        email="invited@example.edu",
        role="student",
        token="invite-token-2",
        status="pending",
        expires_at=datetime.utcnow() + timedelta(days=7),
    ))
    db.commit()

    response = client.post(
        "/api/auth/register",
        json=register_payload(email="someone.else@gmail.com", invitationToken="invite-token-2"),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invitation_email_mismatch"


def test_register_paid_returns_checkout(client, db, fake_stripe):
    response = client.post("/api/auth/register", json=register_payload(selectedPlan="paid"))

    assert response.status_code == 201
    data = response.json()
    assert data["requiresPayment"] is True
    assert data["checkoutUrl"].startswith("https://checkout.stripe.test/")
    assert data["token"] is None
    assert "auth_token" not in response.cookies

    user = db.query(User).filter(User.email == "jordan@gmail.com").first()
    assert user.subscription_tier == "paid"
    assert user.subscription_status == "incomplete"
    assert user.stripe_customer_id


def test_register_paid_without_payment_provider(client, db):

    app.dependency_overrides[get_payment_provider] = lambda: FakeStripe(configured=False)
    response = client.post("/api/auth/register", json=register_payload(selectedPlan="paid"))

    assert response.status_code == 500
    assert response.json()["detail"]["message"] == "payment provider not configured"
    assert db.query(User).count() == 0


def test_reactivation_requires_password(client, db):
    make_user(db, email="jordan@gmail.com", password="OldPass123", is_active=False)

    wrong = client.post("/api/auth/register", json=register_payload(password="Wrong123", confirmPassword="Wrong123"))
    assert wrong.status_code == 400

    right = client.post("/api/auth/register", json=register_payload(password="OldPass123", confirmPassword="OldPass123"))
    assert right.status_code == 200
    assert right.json()["user"]["isActive"] is True


def test_login_and_last_login_wins(client, db):
    make_user(db, email="jordan@gmail.com")

    first = client.post("/api/auth/login", json={"email": "jordan@gmail.com", "password": DEFAULT_PASSWORD})
    assert first.status_code == 200
    first_token = first.json()["token"]

    second = client.post("/api/auth/login", json={"email": "jordan@gmail.com", "password": DEFAULT_PASSWORD})
    second_token = second.json()["token"]
    client.cookies.clear()

    stale = client.get("/api/auth/me", headers={"Authorization": f"Bearer {first_token}"})
    assert stale.status_code == 401
    assert stale.json()["detail"]["error"] == "invalid_session"

    fresh = client.get("/api/auth/me", headers={"Authorization": f"Bearer {second_token}"})
    assert fresh.status_code == 200
    assert db.query(UserSession).count() == 1


def test_login_invalid_credentials(client, db):
    make_user(db, email="jordan@gmail.com")

    for email, password in (("jordan@gmail.com", "wrongpass"), ("nobody@gmail.com", DEFAULT_PASSWORD)):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_credentials"


def test_login_deactivated_account(client, db):
    make_user(db, email="jordan@gmail.com", is_active=False)
    response = client.post("/api/auth/login", json={"email": "jordan@gmail.com", "password": DEFAULT_PASSWORD})
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "account_inactive"


def test_cookie_session_and_logout(client, db):
    make_user(db, email="jordan@gmail.com")
    client.post("/api/auth/login", json={"email": "jordan@gmail.com", "password": DEFAULT_PASSWORD})

    assert client.get("/api/auth/me").status_code == 200
    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401
    assert db.query(UserSession).count() == 0


def test_me_requires_authentication(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "authentication_required"


def test_login_rate_limited(client, db):
    for _ in range(10):
        client.post("/api/auth/login", json={"email": "nobody@gmail.com", "password": "whatever1"})
    response = client.post("/api/auth/login", json={"email": "nobody@gmail.com", "password": "whatever1"})
    assert response.status_code == 429
    assert response.json()["detail"]["error"] == "rate_limited"
    assert "60 seconds" in response.json()["detail"]["message"]


def test_password_reset_flow(client, db, fake_email):
    user = make_user(db, email="jordan@gmail.com")
    old_headers = auth_headers(db, user)

    response = client.post("/api/auth/forgot-password", json={"email": "jordan@gmail.com"})
    assert response.status_code == 200
    assert len(fake_email.sent) == 1

    token = db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).first().token
    assert client.get(f"/api/auth/reset-password/{token}").json() == {"valid": True}

    response = client.post(
        "/api/auth/reset-password",
        json={"token": token, "password": "BrandNew123", "confirmPassword": "BrandNew123"},
    )
    assert response.status_code == 200

    # Sessions from before the reset are gone; the token is single-use
    assert client.get("/api/auth/me", headers=old_headers).status_code == 401
    assert client.get(f"/api/auth/reset-password/{token}").status_code == 400
    login = client.post("/api/auth/login", json={"email": "jordan@gmail.com", "password": "BrandNew123"})
    assert login.status_code == 200


def test_forgot_password_unknown_email_is_silent(client, fake_email):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@gmail.com"})
    assert response.status_code == 200
    assert fake_email.sent == []


def test_settings_update_and_account_deletion(client, db, fake_stripe):
    institution = make_institution(db)
    license = make_license(db, institution.id, licensed_seats=5, used_seats=1)
    user = make_user(db, email="sam@example.edu", tier="institutional", institution_id=institution.id,
                     stripe_subscription_id="sub_123")
    headers = auth_headers(db, user)

    response = client.patch("/api/users/settings", json={"major": "History", "gradYear": 2027}, headers=headers)
    assert response.status_code == 200
    assert response.json()["major"] == "History"

    response = client.delete("/api/users/delete-account", headers=headers)
    assert response.status_code == 200
    assert ("cancel_now", "sub_123") in fake_stripe.calls
    assert db.query(User).count() == 0
    db.refresh(license)
    assert license.used_seats == 0
