"""
Feature gating.

Single place that decides whether a user may use a catalog feature. The
decision is a pure function of an EntitlementSubject snapshot, so it can be
called repeatedly (and in tests) without touching the database.

Decision order:
1. account not verified or not active      -> denied, "account_inactive"
2. institution license missing or expired  -> denied, "license_expired"
3. paid/institutional tier with status active -> granted, "subscription"
4. feature purchased individually          -> granted, "purchase"
5. otherwise                               -> denied, "no_entitlement"

Cancelling a subscription downgrades the tier to free immediately; there is
no grace period until the end of the billed period.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional
from sqlalchemy.orm import Session

from pathwise.core.feature_catalog import (
    FEATURE_CATALOG,
    FEATURE_KEYS,
    STATUS_ACTIVE,
    UNLIMITED_TIERS,
    get_feature,
)
from pathwise.db.models.purchased_feature import PurchasedFeature
from pathwise.db.models.user import User
from pathwise.services.license_service import is_license_valid

logger = logging.getLogger(__name__)

REASON_ACCOUNT_INACTIVE = "account_inactive"
REASON_LICENSE_EXPIRED = "license_expired"
REASON_SUBSCRIPTION = "subscription"
REASON_PURCHASE = "purchase"
REASON_NO_ENTITLEMENT = "no_entitlement"


@dataclass(frozen=True)
class EntitlementSubject:
    """Everything the resolver needs to know about a user, read once from the ledgers."""
    is_verified: bool
    is_active: bool
    subscription_tier: str
    subscription_status: Optional[str]
    institution_id: Optional[int] = None
    license_valid: bool = True
    purchased_features: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    reason: str


def has_active_subscription(tier: Optional[str], status: Optional[str]) -> bool:
    return tier in UNLIMITED_TIERS and status == STATUS_ACTIVE


def resolve_access(subject: EntitlementSubject, feature_key: str) -> AccessDecision:
    """
    Decide access to one feature.

    Raises:
        UnknownFeatureError: feature_key is not in the catalog
    """
    get_feature(feature_key)

    if not subject.is_verified or not subject.is_active:
        return AccessDecision(False, REASON_ACCOUNT_INACTIVE)

    if subject.institution_id is not None and not subject.license_valid:
        return AccessDecision(False, REASON_LICENSE_EXPIRED)

    if has_active_subscription(subject.subscription_tier, subject.subscription_status):
        return AccessDecision(True, REASON_SUBSCRIPTION)

    if feature_key in subject.purchased_features:
        return AccessDecision(True, REASON_PURCHASE)

    return AccessDecision(False, REASON_NO_ENTITLEMENT)


def get_purchased_features(db: Session, user_id: int) -> FrozenSet[str]:
    rows = db.query(PurchasedFeature.feature_key).filter(PurchasedFeature.user_id == user_id).all()
    return frozenset(key for (key,) in rows)


def load_subject(db: Session, user: User, now: Optional[datetime] = None) -> EntitlementSubject:
    license_valid = True
    if user.institution_id is not None:
        license_valid = is_license_valid(db, user.institution_id, now)

    return EntitlementSubject(
        is_verified=bool(user.is_verified),
        is_active=bool(user.is_active),
        subscription_tier=user.subscription_tier,
        subscription_status=user.subscription_status,
        institution_id=user.institution_id,
        license_valid=license_valid,
        purchased_features=get_purchased_features(db, user.id),
    )


def check_feature_access(db: Session, user: User, feature_key: str) -> AccessDecision:
    decision = resolve_access(load_subject(db, user), feature_key)
    if not decision.granted:
        logger.info(f"Feature access denied: user_id={user.id}, feature={feature_key}, reason={decision.reason}")
    return decision


def feature_access_snapshot(db: Session, user: User) -> Dict[str, Any]:
    """Resolved entitlements for every catalog feature, as served to the client gate."""
    subject = load_subject(db, user)
    return {
        "subscription_tier": subject.subscription_tier,
        "subscription_status": subject.subscription_status,
        "has_active_subscription": has_active_subscription(
            subject.subscription_tier, subject.subscription_status
        ),
        "purchased_features": sorted(subject.purchased_features),
        "feature_access": {
            key: resolve_access(subject, key).granted for key in FEATURE_KEYS
        },
    }


def build_paywall(feature_key: str) -> Dict[str, Any]:
    """Upsell payload attached to 403 responses so the client can render a purchase panel."""
    feature = get_feature(feature_key)
    return {
        "featureKey": feature.key,
        "featureName": feature.name,
        "description": feature.description,
        "priceCents": feature.price_cents,
        "options": [
            {"type": "purchase", "endpoint": "/api/stripe/purchase-feature"},
            {"type": "subscribe", "endpoint": "/api/stripe/create-checkout-session"},
        ],
    }


def catalog_listing() -> Dict[str, Dict[str, Any]]:
    return {
        key: {"name": info.name, "description": info.description, "priceCents": info.price_cents}
        for key, info in FEATURE_CATALOG.items()
    }
