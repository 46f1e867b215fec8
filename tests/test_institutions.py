"""
Institution, license and membership endpoint tests.
"""
from datetime import datetime, timedelta

from pathwise.db.models.invitation import Invitation
from pathwise.db.models.user_session import UserSession
from tests.helpers import auth_headers, make_institution, make_license, make_user


def test_only_super_admin_creates_institutions(client, db):
    student = make_user(db)
    payload = {"name": "Example University", "contactEmail": "it@example.edu",
               "contactName": "Sam Rivera", "domain": "Example.EDU"}

    denied = client.post("/api/institutions", json=payload, headers=auth_headers(db, student))
    assert denied.status_code == 403

    admin = make_user(db, email="root@pathwise.nyc", role="super_admin")
    response = client.post("/api/institutions", json=payload, headers=auth_headers(db, admin))
    assert response.status_code == 200
    assert response.json()["domain"] == "example.edu"

    duplicate = client.post("/api/institutions", json=payload, headers=auth_headers(db, admin))
    assert duplicate.status_code == 400


def test_super_admin_creates_license(client, db):
    institution = make_institution(db)
    admin = make_user(db, email="root@pathwise.nyc", role="super_admin")
    now = datetime.utcnow()

    response = client.post(
        f"/api/institutions/{institution.id}/license",
        json={
            "licenseType": "per_student",
            "licensedSeats": 25,
            "startDate": (now - timedelta(days=1)).isoformat(),
            "endDate": (now + timedelta(days=365)).isoformat(),
        },
        headers=auth_headers(db, admin),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["licensedSeats"] == 25
    assert data["seatInfo"] == {"available": True, "usedSeats": 0, "totalSeats": 25}


def test_license_usage_correction(client, db):
    institution = make_institution(db)
    make_license(db, institution.id, licensed_seats=10, used_seats=7)
    admin = make_user(db, email="root@pathwise.nyc", role="super_admin")

    response = client.patch(
        f"/api/institutions/{institution.id}/license/usage",
        json={"usedSeats": 3},
        headers=auth_headers(db, admin),
    )
    assert response.status_code == 200
    assert response.json()["usedSeats"] == 3


def test_institution_admin_invites_and_lists(client, db, fake_email):
    institution = make_institution(db)
    make_license(db, institution.id, licensed_seats=5)
    admin = make_user(db, email="admin@example.edu", role="admin", tier="institutional",
                      institution_id=institution.id)
    headers = auth_headers(db, admin)

    response = client.post(f"/api/institutions/{institution.id}/invite",
                           json={"email": "new@example.edu", "role": "student"}, headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["emailSent"] is True
    assert data["invitation"]["status"] == "pending"
    assert fake_email.sent[0]["to"] == "new@example.edu"

    token = db.query(Invitation).first().token
    preview = client.get(f"/api/invitations/{token}")
    assert preview.status_code == 200
    assert preview.json()["institutionName"] == institution.name

    listing = client.get(f"/api/institutions/{institution.id}/users", headers=headers)
    assert listing.status_code == 200
    body = listing.json()
    assert [u["email"] for u in body["users"]] == ["admin@example.edu"]
    assert len(body["invitations"]) == 1
    assert body["seatInfo"]["totalSeats"] == 5


def test_invite_existing_user_or_full_license(client, db):
    institution = make_institution(db)
    make_license(db, institution.id, licensed_seats=1, used_seats=1)
    admin = make_user(db, email="admin@example.edu", role="admin", tier="institutional",
                      institution_id=institution.id)
    headers = auth_headers(db, admin)

    existing = client.post(f"/api/institutions/{institution.id}/invite",
                           json={"email": "admin@example.edu"}, headers=headers)
    assert existing.status_code == 400

    full = client.post(f"/api/institutions/{institution.id}/invite",
                       json={"email": "new@example.edu", "role": "student"}, headers=headers)
    assert full.status_code == 400
    assert full.json()["detail"]["error"] == "no_seats_available"

    # Admin invitations do not need a seat
    admin_invite = client.post(f"/api/institutions/{institution.id}/invite",
                               json={"email": "dean@example.edu", "role": "admin"}, headers=headers)
    assert admin_invite.status_code == 200


def test_admin_cannot_manage_other_institution(client, db):
    mine = make_institution(db, name="Mine", domain="mine.edu")
    other = make_institution(db, name="Other", domain="other.edu")
    make_license(db, mine.id)
    make_license(db, other.id)
    admin = make_user(db, email="admin@mine.edu", role="admin", tier="institutional", institution_id=mine.id)
    headers = auth_headers(db, admin)

    assert client.get(f"/api/institutions/{other.id}/users", headers=headers).status_code == 403
    assert client.get(f"/api/institutions/{other.id}", headers=headers).status_code == 403
    assert client.post(f"/api/institutions/{other.id}/invite",
                       json={"email": "x@other.edu"}, headers=headers).status_code == 403


def test_students_cannot_manage_members(client, db):
    institution = make_institution(db)
    make_license(db, institution.id)
    student = make_user(db, email="s@example.edu", tier="institutional", institution_id=institution.id)

    response = client.get(f"/api/institutions/{institution.id}/users", headers=auth_headers(db, student))
    assert response.status_code == 403


def test_terminate_member_frees_seat_and_ends_sessions(client, db):
    institution = make_institution(db)
    license = make_license(db, institution.id, licensed_seats=5, used_seats=1)
    admin = make_user(db, email="admin@example.edu", role="admin", tier="institutional",
                      institution_id=institution.id)
    student = make_user(db, email="s@example.edu", tier="institutional", institution_id=institution.id)
    student_headers = auth_headers(db, student)
    headers = auth_headers(db, admin)

    response = client.delete(f"/api/institutions/{institution.id}/users/{student.id}", headers=headers)
    assert response.status_code == 200

    db.refresh(student)
    db.refresh(license)
    assert student.is_active is False
    assert license.used_seats == 0
    assert db.query(UserSession).filter(UserSession.user_id == student.id).count() == 0
    assert client.get("/api/auth/me", headers=student_headers).status_code == 401

    self_terminate = client.delete(f"/api/institutions/{institution.id}/users/{admin.id}", headers=headers)
    assert self_terminate.status_code == 400


def test_cancel_invitation(client, db):
    institution = make_institution(db)
    make_license(db, institution.id)
    admin = make_user(db, email="admin@example.edu", role="admin", tier="institutional",
                      institution_id=institution.id)
    invitation = Invitation(
        institution_id=institution.id,
        email="new@example.edu",
        role="student",
        token="invite-token-3",
        status="pending",
        expires_at=datetime.utcnow() + timedelta(days=7),
    )
    db.add(invitation)
    db.commit()
    headers = auth_headers(db, admin)

    response = client.delete(f"/api/institutions/{institution.id}/invitations/{invitation.id}", headers=headers)
    assert response.status_code == 200
    assert client.get("/api/invitations/invite-token-3").status_code == 404

    again = client.delete(f"/api/institutions/{institution.id}/invitations/{invitation.id}", headers=headers)
    assert again.status_code == 400


def test_expired_invitation_preview(client, db):
    institution = make_institution(db)
    db.add(Invitation(
        institution_id=institution.id,
        email="late@example.edu",
        role="student",
        token="invite-token-old",
        status="pending",
        expires_at=datetime.utcnow() - timedelta(minutes=1),
    ))
    db.commit()

    assert client.get("/api/invitations/invite-token-old").status_code == 404
    assert db.query(Invitation).first().status == "expired"
