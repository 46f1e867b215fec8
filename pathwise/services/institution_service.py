"""
Institutions, invitations and membership management.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from pathwise.core.config import INVITATION_DURATION_DAYS
from pathwise.core.errors import NotFoundError, ValidationError, CapacityError
from pathwise.core.feature_catalog import ROLE_STUDENT, ROLES, ROLE_SUPER_ADMIN
from pathwise.core.security import generate_token
from pathwise.db.models.institution import Institution
from pathwise.db.models.invitation import Invitation
from pathwise.db.models.user import User
from pathwise.services.license_service import check_seat_availability, release_seat
from pathwise.services.session_service import revoke_user_sessions

logger = logging.getLogger(__name__)

INVITATION_PENDING = "pending"
INVITATION_CLAIMED = "claimed"
INVITATION_EXPIRED = "expired"


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].strip().lower() if "@" in email else ""


def create_institution(
    db: Session,
    name: str,
    contact_email: str,
    contact_name: str,
    domain: Optional[str] = None,
    allowed_domains: Optional[List[str]] = None,
) -> Institution:
    domain = domain.strip().lower() if domain else None
    if domain and db.query(Institution).filter(func.lower(Institution.domain) == domain).first():
        raise ValidationError(f"An institution already uses the domain {domain}")

    institution = Institution(
        name=name,
        contact_email=contact_email,
        contact_name=contact_name,
        domain=domain,
        allowed_domains=[d.strip().lower() for d in (allowed_domains or []) if d.strip()],
        is_active=True,
    )
    db.add(institution)
    db.commit()
    db.refresh(institution)
    logger.info(f"Institution created: institution_id={institution.id}, domain={domain}")
    return institution


def get_institution(db: Session, institution_id: int) -> Institution:
    institution = db.query(Institution).filter(Institution.id == institution_id).first()
    if not institution:
        raise NotFoundError("Institution not found")
    return institution


def find_institution_by_email_domain(db: Session, email: str) -> Optional[Institution]:
    """Active institution whose primary or allowed domains contain the email's domain."""
    domain = email_domain(email)
    if not domain:
        return None

    institution = db.query(Institution).filter(
        func.lower(Institution.domain) == domain,
        Institution.is_active.is_(True),
    ).first()
    if institution:
        return institution

    # allowed_domains is a JSON list; match in Python to stay dialect-neutral
    candidates = db.query(Institution).filter(
        Institution.is_active.is_(True),
        Institution.allowed_domains.isnot(None),
    ).all()
    for candidate in candidates:
        if candidate.accepts_domain(domain):
            return candidate
    return None


def create_invitation(
    db: Session,
    institution: Institution,
    email: str,
    role: str,
    invited_by: User,
) -> Invitation:
    """
    Invite someone to an institution.

    Raises:
        ValidationError: the email already has an account, or the role is not assignable
        CapacityError: a student invitation when no seat is available
    """
    email = email.strip().lower()
    if role not in ROLES or role == ROLE_SUPER_ADMIN:
        raise ValidationError(f"Invalid role: {role}")

    if db.query(User).filter(func.lower(User.email) == email).first():
        raise ValidationError("User with this email already exists")

    if role == ROLE_STUDENT and not check_seat_availability(db, institution.id).available:
        raise CapacityError("No available seats. Please upgrade your license or deactivate inactive users.")

    invitation = Invitation(
        institution_id=institution.id,
        email=email,
        role=role,
        invited_by=invited_by.id,
        token=generate_token(),
        status=INVITATION_PENDING,
        expires_at=datetime.utcnow() + timedelta(days=INVITATION_DURATION_DAYS),
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)
    logger.info(f"Invitation created: invitation_id={invitation.id}, institution_id={institution.id}, role={role}")
    return invitation


def get_pending_invitation(db: Session, token: str) -> Optional[Invitation]:
    """Pending, unexpired invitation for token. Expired ones are marked as such."""
    invitation = db.query(Invitation).filter(
        Invitation.token == token,
        Invitation.status == INVITATION_PENDING,
    ).first()
    if not invitation:
        return None

    if invitation.expires_at <= datetime.utcnow():
        invitation.status = INVITATION_EXPIRED
        db.commit()
        logger.info(f"Invitation expired: invitation_id={invitation.id}")
        return None
    return invitation


def claim_invitation(db: Session, invitation: Invitation, user: User) -> Invitation:
    """Mark an invitation claimed. Does not commit."""
    invitation.status = INVITATION_CLAIMED
    invitation.claimed_by = user.id
    invitation.claimed_at = datetime.utcnow()
    return invitation


def cancel_invitation(db: Session, institution_id: int, invitation_id: int) -> Invitation:
    invitation = db.query(Invitation).filter(
        Invitation.id == invitation_id,
        Invitation.institution_id == institution_id,
    ).first()
    if not invitation:
        raise NotFoundError("Invitation not found")
    if invitation.status != INVITATION_PENDING:
        raise ValidationError("Can only cancel pending invitations")

    invitation.status = INVITATION_EXPIRED
    db.commit()
    logger.info(f"Invitation cancelled: invitation_id={invitation_id}, institution_id={institution_id}")
    return invitation


def list_members(db: Session, institution_id: int) -> List[User]:
    return db.query(User).filter(User.institution_id == institution_id).order_by(User.created_at).all()


def list_invitations(db: Session, institution_id: int) -> List[Invitation]:
    return db.query(Invitation).filter(
        Invitation.institution_id == institution_id
    ).order_by(Invitation.created_at.desc()).all()


def terminate_member(db: Session, institution_id: int, user_id: int, acting_user: User) -> User:
    """
    Deactivate a member, end their sessions and free their seat.

    Raises:
        ValidationError: acting_user tried to terminate themselves
        NotFoundError: user is not a member of the institution
    """
    if acting_user.id == user_id:
        raise ValidationError("Cannot terminate your own account")

    member = db.query(User).filter(User.id == user_id, User.institution_id == institution_id).first()
    if not member:
        raise NotFoundError("User not found")

    was_active = member.is_active
    member.is_active = False
    revoke_user_sessions(db, member.id)
    if was_active and member.role == ROLE_STUDENT:
        release_seat(db, institution_id)
    db.commit()

    logger.info(f"Member terminated: user_id={user_id}, institution_id={institution_id}, by={acting_user.id}")
    return member
