"""
Pydantic schemas for entitlement and profile endpoints.
"""
from typing import Dict, List, Optional
from pydantic import Field

from pathwise.schemas.base import CamelModel


class FeatureAccessResponse(CamelModel):
    """Resolved entitlements for every catalog feature (GET /api/user/feature-access)."""
    subscription_tier: str = Field(..., description="free, paid or institutional")
    subscription_status: Optional[str] = Field(None, description="Provider subscription status")
    has_active_subscription: bool = Field(..., description="Unlimited tier with active status")
    purchased_features: List[str] = Field(default_factory=list, description="Individually purchased feature keys")
    feature_access: Dict[str, bool] = Field(..., description="Access decision per feature key")

    class Config:
        json_schema_extra = {
            "example": {
                "subscriptionTier": "free",
                "subscriptionStatus": "active",
                "hasActiveSubscription": False,
                "purchasedFeatures": ["resume_analysis"],
                "featureAccess": {
                    "salary_negotiator": False,
                    "micro_project_generator": False,
                    "career_roadmap_generator": False,
                    "job_match_assistant": False,
                    "resume_analysis": True,
                    "interview_prep_assistant": False
                }
            }
        }


class FeatureDecisionResponse(CamelModel):
    """Single-feature decision with the reason it was reached."""
    feature_key: str
    has_access: bool
    reason: str
    paywall: Optional[dict] = None


class UserSettingsUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    school: Optional[str] = Field(None, max_length=200)
    major: Optional[str] = Field(None, max_length=200)
    grad_year: Optional[int] = Field(None, ge=2000, le=2040)
