"""
Provider dependencies.

Clients are built once in create_app() and kept on app.state; tests swap them
through app.dependency_overrides.
"""
from fastapi import Request

from pathwise.services.analysis_service import AnalysisService
from pathwise.services.email_service import EmailService
from pathwise.services.stripe_service import StripeClient


def get_payment_provider(request: Request) -> StripeClient:
    return request.app.state.payment_provider


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service
