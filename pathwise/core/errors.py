"""
Error taxonomy for the Pathwise API.

Every error is an HTTPException whose detail is a dict with a machine-readable
"error" code and a user-presentable "message", so clients can branch on the
code (e.g. route to an upsell view) without parsing text.
"""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class PathwiseError(HTTPException):
    """Base class for API errors with a structured detail payload."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    default_message = "Something went wrong. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code or self.code
        self.message = message or self.default_message
        detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if extra:
            detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class AuthenticationError(PathwiseError):
    """Missing, expired or invalid session token."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_required"
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code, headers={"WWW-Authenticate": "Bearer"})


class AccountStateError(PathwiseError):
    """Authenticated, but the account (or its institution license) is not usable."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "account_inactive"
    default_message = "Account is inactive. Contact your administrator."


class PermissionDeniedError(PathwiseError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Access denied"


class EntitlementError(PathwiseError):
    """Authenticated but lacking the subscription or purchase a feature needs."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "no_entitlement"
    default_message = (
        "This feature requires either purchasing it individually "
        "or subscribing to Pathwise Unlimited."
    )

    def __init__(self, feature_key: str, paywall: Optional[Dict[str, Any]] = None,
                 message: Optional[str] = None):
        self.feature_key = feature_key
        extra: Dict[str, Any] = {"requiresUpgrade": True, "featureKey": feature_key}
        if paywall is not None:
            extra["paywall"] = paywall
        super().__init__(message, extra=extra)


class CapacityError(PathwiseError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "no_seats_available"
    default_message = "No available seats. Please contact your administrator."


class ValidationError(PathwiseError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid request"


class NotFoundError(PathwiseError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class RateLimitError(PathwiseError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"
    default_message = "Too many attempts. Please try again later."


class UpstreamError(PathwiseError):
    """A payment, email or AI provider call failed. Provider internals stay in the logs."""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"
    default_message = "A downstream service is temporarily unavailable. Please try again later."


class PaymentProviderNotConfigured(PathwiseError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "payment_provider_not_configured"
    default_message = "payment provider not configured"


class WebhookProcessingError(PathwiseError):
    """Returned to the payment provider so that it retries the delivery."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "webhook_failed"
    default_message = "Webhook processing failed"


class UnknownFeatureError(ValueError):
    """Raised for a feature key outside the catalog (a caller error)."""

    def __init__(self, feature_key: str):
        self.feature_key = feature_key
        super().__init__(f"Unknown feature key: {feature_key}")
