"""
Feature entitlement dependency.

require_feature() returns a dependency that:
1. Authenticates the user
2. Resolves access to the feature from subscription and purchase ledgers
3. Raises 403 with a paywall payload if access is denied
"""
import logging
from fastapi import Depends
from sqlalchemy.orm import Session

from pathwise.core.auth_dependency import get_current_user, get_db, touch_last_active
from pathwise.core.errors import EntitlementError
from pathwise.core.feature_catalog import get_feature
from pathwise.core.gating import build_paywall, check_feature_access
from pathwise.db.models.user import User

logger = logging.getLogger(__name__)


def require_feature(feature_key: str):
    """
    Dependency that enforces feature access before the handler runs.

    Args:
        feature_key: Catalog key, e.g. "resume_analysis"

    Returns:
        User object if access is granted

    Raises:
        EntitlementError 403: no subscription and no purchase of the feature
        UnknownFeatureError: at import time, if feature_key is not in the catalog
    """
    get_feature(feature_key)

    def feature_checker(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
    ) -> User:
        decision = check_feature_access(db, user, feature_key)
        if not decision.granted:
            raise EntitlementError(feature_key, paywall=build_paywall(feature_key))

        touch_last_active(db, user)
        logger.debug(f"Feature access granted: user_id={user.id}, feature={feature_key}, reason={decision.reason}")
        return user

    return feature_checker
