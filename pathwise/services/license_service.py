"""
License and seat ledger for institutions.

Seat claims and releases are single conditional UPDATE statements, so two
concurrent registrations cannot both take the last seat.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from pathwise.core.config import LICENSE_USAGE_ALERT_RATIO
from pathwise.core.errors import CapacityError, ValidationError
from pathwise.core.feature_catalog import (
    INSTITUTION_ADMIN_ROLES,
    LICENSE_PER_STUDENT,
    LICENSE_SITE,
)
from pathwise.db.models.institution import Institution
from pathwise.db.models.license import License
from pathwise.db.models.user import User
from pathwise.services.email_service import EmailService

logger = logging.getLogger(__name__)


@dataclass
class SeatInfo:
    available: bool
    used_seats: int
    total_seats: Optional[int]


@dataclass
class UsageAlert:
    """Pending usage-threshold notification, sent after the request commits."""
    institution_name: str
    admin_emails: List[str]
    used_seats: int
    total_seats: int

    @property
    def usage_percentage(self) -> int:
        return round(self.used_seats / (self.total_seats or 1) * 100)


def get_active_license(db: Session, institution_id: int, now: Optional[datetime] = None) -> Optional[License]:
    """Latest active license whose validity window contains now."""
    now = now or datetime.utcnow()
    return db.query(License).filter(
        License.institution_id == institution_id,
        License.is_active.is_(True),
        License.start_date <= now,
        License.end_date > now,
    ).order_by(License.created_at.desc(), License.id.desc()).first()


def is_license_valid(db: Session, institution_id: int, now: Optional[datetime] = None) -> bool:
    return get_active_license(db, institution_id, now) is not None


def create_license(
    db: Session,
    institution_id: int,
    license_type: str,
    start_date: datetime,
    end_date: datetime,
    licensed_seats: Optional[int] = None,
) -> License:
    """Create a license and deactivate any previous license of the institution."""
    if end_date <= start_date:
        raise ValidationError("License end date must be after its start date")
    if license_type == LICENSE_PER_STUDENT:
        if not licensed_seats or licensed_seats < 1:
            raise ValidationError("Per-student licenses need at least one seat")
    elif license_type == LICENSE_SITE:
        licensed_seats = None
    else:
        raise ValidationError(f"Unknown license type: {license_type}")

    db.query(License).filter(License.institution_id == institution_id).update(
        {License.is_active: False, License.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )

    license = License(
        institution_id=institution_id,
        license_type=license_type,
        licensed_seats=licensed_seats,
        used_seats=0,
        start_date=start_date,
        end_date=end_date,
        is_active=True,
    )
    db.add(license)
    db.commit()
    db.refresh(license)

    logger.info(
        f"License created: institution_id={institution_id}, type={license_type}, "
        f"seats={licensed_seats}, license_id={license.id}"
    )
    return license


def seat_info_for(license: Optional[License]) -> SeatInfo:
    if not license:
        return SeatInfo(available=False, used_seats=0, total_seats=None)
    if license.license_type == LICENSE_SITE:
        return SeatInfo(available=True, used_seats=license.used_seats, total_seats=None)
    capacity = license.licensed_seats or 0
    return SeatInfo(
        available=license.used_seats < capacity,
        used_seats=license.used_seats,
        total_seats=license.licensed_seats,
    )


def check_seat_availability(db: Session, institution_id: int) -> SeatInfo:
    return seat_info_for(get_active_license(db, institution_id))


def claim_seat(db: Session, institution_id: int) -> SeatInfo:
    """
    Take one seat on the institution's active license. Does not commit.

    Site licenses are unlimited and not counted.

    Raises:
        CapacityError: no active license, or every per-student seat is taken
    """
    license = get_active_license(db, institution_id)
    if not license:
        raise CapacityError("Institution license has expired. Contact your administrator.")
    if license.license_type == LICENSE_SITE:
        return seat_info_for(license)

    updated = db.query(License).filter(
        License.id == license.id,
        License.used_seats < License.licensed_seats,
    ).update(
        {License.used_seats: License.used_seats + 1, License.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )
    if not updated:
        logger.warning(f"Seat claim rejected: institution_id={institution_id}, license_id={license.id}")
        raise CapacityError()

    db.refresh(license)
    logger.info(
        f"Seat claimed: institution_id={institution_id}, "
        f"used={license.used_seats}/{license.licensed_seats}"
    )
    return seat_info_for(license)


def release_seat(db: Session, institution_id: int) -> Optional[SeatInfo]:
    """Give back one per-student seat. Does not commit."""
    license = get_active_license(db, institution_id)
    if not license or license.license_type != LICENSE_PER_STUDENT:
        return None

    db.query(License).filter(
        License.id == license.id,
        License.used_seats > 0,
    ).update(
        {License.used_seats: License.used_seats - 1, License.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )
    db.refresh(license)
    logger.info(
        f"Seat released: institution_id={institution_id}, "
        f"used={license.used_seats}/{license.licensed_seats}"
    )
    return seat_info_for(license)


def update_license_usage(db: Session, license_id: int, used_seats: int) -> License:
    """Set the absolute used-seat count (administrative correction)."""
    license = db.query(License).filter(License.id == license_id).first()
    if not license:
        raise ValidationError("License not found")
    if used_seats < 0:
        raise ValidationError("Used seats cannot be negative")
    if license.license_type == LICENSE_PER_STUDENT and used_seats > (license.licensed_seats or 0):
        raise ValidationError("Used seats cannot exceed licensed seats")

    license.used_seats = used_seats
    db.commit()
    db.refresh(license)
    logger.info(f"License usage set: license_id={license_id}, used={used_seats}")
    return license


def crossed_usage_threshold(used_before: int, used_after: int, capacity: Optional[int],
                            ratio: float = LICENSE_USAGE_ALERT_RATIO) -> bool:
    """True when a claim moves usage from below the alert ratio to at or above it."""
    if not capacity:
        return False
    threshold = capacity * ratio
    return used_before < threshold <= used_after


def build_usage_alert(db: Session, institution_id: int, seat_info: SeatInfo) -> Optional[UsageAlert]:
    """Prepare an alert if the last claim crossed the threshold."""
    if seat_info.total_seats is None:
        return None
    if not crossed_usage_threshold(seat_info.used_seats - 1, seat_info.used_seats, seat_info.total_seats):
        return None

    institution = db.query(Institution).filter(Institution.id == institution_id).first()
    admins = db.query(User).filter(
        User.institution_id == institution_id,
        User.role.in_(INSTITUTION_ADMIN_ROLES),
        User.is_active.is_(True),
    ).all()
    return UsageAlert(
        institution_name=institution.name if institution else "Unknown Institution",
        admin_emails=[admin.email for admin in admins],
        used_seats=seat_info.used_seats,
        total_seats=seat_info.total_seats,
    )


def send_usage_alert(email_service: EmailService, alert: UsageAlert) -> None:
    """Background task: notify institution admins. Failures are logged only."""
    for admin_email in alert.admin_emails:
        sent = email_service.send_license_usage_alert(
            admin_email=admin_email,
            institution_name=alert.institution_name,
            used_seats=alert.used_seats,
            total_seats=alert.total_seats,
            usage_percentage=alert.usage_percentage,
        )
        if not sent:
            logger.warning(f"License usage alert not delivered to an admin of {alert.institution_name}")

