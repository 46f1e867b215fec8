import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pathwise.api.routes import analysis, auth, institutions, promo_codes, stripe, system, users
from pathwise.core.config import CORS_ORIGINS, DATABASE_URL, LOG_FILE, LOG_LEVEL
from pathwise.core.errors import UnknownFeatureError
from pathwise.core.logging_config import sanitize_log_data, setup_logging
from pathwise.services.analysis_service import build_analysis_service
from pathwise.services.email_service import build_email_service
from pathwise.services.stripe_service import build_stripe_client

logger = logging.getLogger(__name__)


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{field}: {message}" if field else message


def create_app() -> FastAPI:
    setup_logging(LOG_LEVEL, LOG_FILE)

    # ============================================
    # ✅ FASTAPI APP INIT
    # ============================================

    app = FastAPI(title="Pathwise API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # ✅ Provider clients, swapped in tests through dependency_overrides
    app.state.payment_provider = build_stripe_client()
    app.state.email_service = build_email_service()
    app.state.analysis_service = build_analysis_service()

    # ============================================
    # ✅ ERROR HANDLERS
    # ============================================

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"error": "validation_error", "message": _first_error_message(exc)}},
        )

    @app.exception_handler(UnknownFeatureError)
    async def unknown_feature_handler(request: Request, exc: UnknownFeatureError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"error": "unknown_feature", "message": str(exc)}},
        )

    # ============================================
    # ✅ REGISTER ALL ROUTERS
    # ============================================

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(institutions.router)
    app.include_router(institutions.invitations_router)
    app.include_router(stripe.router)
    app.include_router(promo_codes.router)
    app.include_router(analysis.router)
    app.include_router(system.router)

    @app.get("/")
    def root():
        return {"status": "Pathwise API running"}

    startup = sanitize_log_data({
        "database_url": DATABASE_URL,
        "cors_origins": CORS_ORIGINS,
        "payments": app.state.payment_provider.configured,
        "email": app.state.email_service.configured,
        "ai": app.state.analysis_service.provider is not None,
    })
    logger.info(f"Pathwise API initialized: {startup}")
    return app


app = create_app()
