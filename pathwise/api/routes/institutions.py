"""
Institution licensing endpoints.

Super admins create institutions and licenses; institution admins (or super
admins) manage invitations and members of their own institution.
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pathwise.api.deps import get_email_service
from pathwise.core.auth_dependency import (
    require_institution_member,
    get_db,
    require_institution_admin,
    require_super_admin,
)
from pathwise.core.errors import NotFoundError
from pathwise.db.models.license import License
from pathwise.db.models.user import User
from pathwise.schemas.auth import MessageResponse
from pathwise.schemas.institution import (
    InstitutionCreate,
    InstitutionMembersResponse,
    InstitutionResponse,
    InvitationPreview,
    InvitationResponse,
    InviteRequest,
    LicenseCreate,
    LicenseResponse,
    LicenseUsageUpdate,
    MemberResponse,
    SeatInfoResponse,
)
from pathwise.services import institution_service, license_service
from pathwise.services.email_service import EmailService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/institutions", tags=["Institutions"])
invitations_router = APIRouter(prefix="/api/invitations", tags=["Institutions"])


def _license_response(license: License) -> LicenseResponse:
    response = LicenseResponse.model_validate(license)
    seat_info = license_service.seat_info_for(license)
    response.seat_info = SeatInfoResponse(
        available=seat_info.available,
        used_seats=seat_info.used_seats,
        total_seats=seat_info.total_seats,
    )
    return response


@router.post("", response_model=InstitutionResponse)
def create_institution(
    payload: InstitutionCreate,
    user: User = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    return institution_service.create_institution(
        db,
        name=payload.name,
        contact_email=payload.contact_email,
        contact_name=payload.contact_name,
        domain=payload.domain,
        allowed_domains=payload.allowed_domains,
    )


@router.get("/{institution_id}", response_model=InstitutionResponse)
def get_institution(
    institution_id: int,
    user: User = Depends(require_institution_member),
    db: Session = Depends(get_db)
):
    institution = institution_service.get_institution(db, institution_id)
    return institution


@router.post("/{institution_id}/license", response_model=LicenseResponse)
def create_license(
    institution_id: int,
    payload: LicenseCreate,
    user: User = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    institution_service.get_institution(db, institution_id)
    license = license_service.create_license(
        db,
        institution_id=institution_id,
        license_type=payload.license_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        licensed_seats=payload.licensed_seats,
    )
    return _license_response(license)


@router.get("/{institution_id}/license", response_model=LicenseResponse)
def get_license(
    institution_id: int,
    user: User = Depends(require_institution_member),
    db: Session = Depends(get_db)
):
    license = license_service.get_active_license(db, institution_id)
    if not license:
        raise NotFoundError("No active license found")
    return _license_response(license)


@router.patch("/{institution_id}/license/usage", response_model=LicenseResponse)
def correct_license_usage(
    institution_id: int,
    payload: LicenseUsageUpdate,
    user: User = Depends(require_super_admin),
    db: Session = Depends(get_db)
):
    """Administrative correction of the used-seat count on the active license."""
    license = license_service.get_active_license(db, institution_id)
    if not license:
        raise NotFoundError("No active license found")
    license = license_service.update_license_usage(db, license.id, payload.used_seats)
    return _license_response(license)


@router.post("/{institution_id}/invite")
def invite_user(
    institution_id: int,
    payload: InviteRequest,
    user: User = Depends(require_institution_admin),
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    institution = institution_service.get_institution(db, institution_id)
    invitation = institution_service.create_invitation(db, institution, payload.email, payload.role, user)

    email_sent = email_service.send_invitation(
        email=invitation.email,
        token=invitation.token,
        institution_name=institution.name,
        inviter_name=user.full_name,
        role=invitation.role,
    )
    if not email_sent:
        # The invitation exists either way; the admin can resend or share the link
        logger.warning(f"Invitation email not delivered: invitation_id={invitation.id}")

    return {
        "message": "Invitation sent successfully",
        "emailSent": email_sent,
        "invitation": InvitationResponse.model_validate(invitation).model_dump(by_alias=True, mode="json"),
    }


@router.get("/{institution_id}/users", response_model=InstitutionMembersResponse)
def list_institution_users(
    institution_id: int,
    user: User = Depends(require_institution_admin),
    db: Session = Depends(get_db)
):
    license = license_service.get_active_license(db, institution_id)
    seat_info = license_service.seat_info_for(license)
    return InstitutionMembersResponse(
        users=[MemberResponse.model_validate(m) for m in institution_service.list_members(db, institution_id)],
        invitations=[
            InvitationResponse.model_validate(inv)
            for inv in institution_service.list_invitations(db, institution_id)
        ],
        license=_license_response(license) if license else None,
        seat_info=SeatInfoResponse(
            available=seat_info.available,
            used_seats=seat_info.used_seats,
            total_seats=seat_info.total_seats,
        ),
    )


@router.delete("/{institution_id}/users/{user_id}", response_model=MessageResponse)
def terminate_user(
    institution_id: int,
    user_id: int,
    user: User = Depends(require_institution_admin),
    db: Session = Depends(get_db)
):
    institution_service.terminate_member(db, institution_id, user_id, acting_user=user)
    return MessageResponse(message="User terminated successfully")


@router.delete("/{institution_id}/invitations/{invitation_id}", response_model=MessageResponse)
def cancel_invitation(
    institution_id: int,
    invitation_id: int,
    user: User = Depends(require_institution_admin),
    db: Session = Depends(get_db)
):
    institution_service.cancel_invitation(db, institution_id, invitation_id)
    return MessageResponse(message="Invitation cancelled successfully")


@invitations_router.get("/{token}", response_model=InvitationPreview)
def preview_invitation(token: str, db: Session = Depends(get_db)):
    """Public: lets the registration form show who invited the visitor."""
    invitation = institution_service.get_pending_invitation(db, token)
    if not invitation:
        raise NotFoundError("Invalid or expired invitation")
    return InvitationPreview(
        email=invitation.email,
        role=invitation.role,
        institution_name=invitation.institution.name,
        expires_at=invitation.expires_at,
    )
