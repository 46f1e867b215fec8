"""
Pydantic schemas for institution, license and invitation endpoints.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import EmailStr, Field, model_validator

from pathwise.schemas.base import CamelModel


class InstitutionCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    contact_email: EmailStr
    contact_name: str = Field(..., min_length=1, max_length=200)
    domain: Optional[str] = Field(None, description="Primary email domain, e.g. example.edu")
    allowed_domains: List[str] = Field(default_factory=list, description="Additional email domains")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Example University",
                "contactEmail": "it@example.edu",
                "contactName": "Sam Rivera",
                "domain": "example.edu",
                "allowedDomains": ["alumni.example.edu"]
            }
        }


class InstitutionResponse(CamelModel):
    id: int
    name: str
    domain: Optional[str] = None
    allowed_domains: Optional[List[str]] = None
    contact_email: str
    contact_name: str
    is_active: bool
    created_at: datetime


class LicenseCreate(CamelModel):
    license_type: str = Field(..., pattern="^(per_student|site)$")
    licensed_seats: Optional[int] = Field(None, ge=1)
    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if self.license_type == "per_student" and not self.licensed_seats:
            raise ValueError("Per-student licenses need licensedSeats")
        return self


class LicenseUsageUpdate(CamelModel):
    used_seats: int = Field(..., ge=0)


class SeatInfoResponse(CamelModel):
    available: bool
    used_seats: int
    total_seats: Optional[int] = None


class LicenseResponse(CamelModel):
    id: int
    institution_id: int
    license_type: str
    licensed_seats: Optional[int] = None
    used_seats: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    seat_info: Optional[SeatInfoResponse] = None


class InviteRequest(CamelModel):
    email: EmailStr
    role: str = Field("student", pattern="^(student|admin)$")


class InvitationResponse(CamelModel):
    id: int
    email: str
    role: str
    status: str
    expires_at: datetime
    created_at: Optional[datetime] = None


class InvitationPreview(CamelModel):
    """Public view of a pending invitation for the registration form."""
    email: str
    role: str
    institution_name: str
    expires_at: datetime


class MemberResponse(CamelModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_verified: bool
    is_active: bool
    last_active_at: Optional[datetime] = None
    created_at: datetime


class InstitutionMembersResponse(CamelModel):
    users: List[MemberResponse]
    invitations: List[InvitationResponse]
    license: Optional[LicenseResponse] = None
    seat_info: SeatInfoResponse
