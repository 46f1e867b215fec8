"""
Pydantic schemas for Stripe billing endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import Field

from pathwise.schemas.auth import UserResponse
from pathwise.schemas.base import CamelModel


class CheckoutUrlResponse(CamelModel):
    """Response schema for checkout and billing portal creation."""
    url: str = Field(..., description="Stripe hosted page URL")

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://checkout.stripe.com/c/pay/cs_test_..."
            }
        }


class PurchaseFeatureRequest(CamelModel):
    feature_key: str = Field(..., description="Catalog feature key, e.g. resume_analysis")


class VerifySessionRequest(CamelModel):
    session_id: str = Field(..., min_length=1, description="Stripe checkout session ID")


class VerifySessionResponse(CamelModel):
    success: bool = True
    message: str
    feature_key: Optional[str] = None


class VerifyAndLoginResponse(CamelModel):
    user: UserResponse
    token: str


class WebhookAck(CamelModel):
    received: bool = True


class PromoCodeValidateRequest(CamelModel):
    code: str = Field(..., description="Promo code, case-insensitive")


class PromoCodeValidateResponse(CamelModel):
    valid: bool = True
    type: str
    code: str
    discount_percentage: Optional[int] = None


class PromoCodeCreate(CamelModel):
    code: str = Field(..., min_length=3, max_length=64)
    type: str = Field("free_paid_tier", pattern="^(free_paid_tier|percentage_discount)$")
    discount_percentage: Optional[int] = Field(None, ge=1, le=100)
    max_uses: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None


class PromoCodeResponse(CamelModel):
    id: int
    code: str
    type: str
    discount_percentage: Optional[int] = None
    max_uses: Optional[int] = None
    current_uses: int
    expires_at: Optional[datetime] = None
    is_active: bool
