"""
Feature catalog and account vocabulary.

Single source of truth for the purchasable feature keys and for the
tier/status/role values stored on users. The catalog is closed: any key not
listed here is a caller error.
"""
from dataclasses import dataclass
from typing import Dict, List

from pathwise.core.config import FEATURE_PRICE_CENTS
from pathwise.core.errors import UnknownFeatureError

# Subscription tiers
TIER_FREE = "free"
TIER_PAID = "paid"
TIER_INSTITUTIONAL = "institutional"
SUBSCRIPTION_TIERS: List[str] = [TIER_FREE, TIER_PAID, TIER_INSTITUTIONAL]
UNLIMITED_TIERS = (TIER_PAID, TIER_INSTITUTIONAL)

# Subscription statuses
STATUS_ACTIVE = "active"
STATUS_INCOMPLETE = "incomplete"
STATUS_CANCELED = "canceled"
STATUS_PAST_DUE = "past_due"
STATUS_TRIALING = "trialing"
SUBSCRIPTION_STATUSES: List[str] = [
    STATUS_ACTIVE,
    STATUS_INCOMPLETE,
    STATUS_CANCELED,
    STATUS_PAST_DUE,
    STATUS_TRIALING,
]

# Roles
ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"
ROLE_INSTITUTION_ADMIN = "institution_admin"
ROLE_SUPER_ADMIN = "super_admin"
ROLES: List[str] = [ROLE_STUDENT, ROLE_ADMIN, ROLE_INSTITUTION_ADMIN, ROLE_SUPER_ADMIN]
INSTITUTION_ADMIN_ROLES = (ROLE_ADMIN, ROLE_INSTITUTION_ADMIN)

# License types
LICENSE_PER_STUDENT = "per_student"
LICENSE_SITE = "site"


@dataclass(frozen=True)
class FeatureInfo:
    key: str
    name: str
    description: str
    price_cents: int = FEATURE_PRICE_CENTS


FEATURE_CATALOG: Dict[str, FeatureInfo] = {
    info.key: info
    for info in [
        FeatureInfo(
            key="salary_negotiator",
            name="Salary Negotiator",
            description="Research-backed negotiation scripts for your offer.",
        ),
        FeatureInfo(
            key="micro_project_generator",
            name="Micro-Project Generator",
            description="Portfolio projects that close your skill gaps.",
        ),
        FeatureInfo(
            key="career_roadmap_generator",
            name="Career Roadmap Generator",
            description="A 30-day, 3-month and 6-month plan toward your target role.",
        ),
        FeatureInfo(
            key="job_match_assistant",
            name="Job Match Assistant",
            description="Compatibility scoring and gap analysis for job postings.",
        ),
        FeatureInfo(
            key="resume_analysis",
            name="Resume Analysis",
            description="Section-by-section scoring with prioritized fixes.",
        ),
        FeatureInfo(
            key="interview_prep_assistant",
            name="Interview Prep Assistant",
            description="Role-specific questions with STAR outlines.",
        ),
    ]
}

FEATURE_KEYS: List[str] = list(FEATURE_CATALOG.keys())


def is_known_feature(feature_key: str) -> bool:
    return feature_key in FEATURE_CATALOG


def get_feature(feature_key: str) -> FeatureInfo:
    """Look up a catalog entry, raising UnknownFeatureError for unknown keys."""
    try:
        return FEATURE_CATALOG[feature_key]
    except KeyError:
        raise UnknownFeatureError(feature_key) from None
