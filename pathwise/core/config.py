import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pathwise.db")

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
SESSION_DURATION_DAYS = int(os.getenv("SESSION_DURATION_DAYS", "7"))
PASSWORD_RESET_MINUTES = int(os.getenv("PASSWORD_RESET_MINUTES", "60"))
INVITATION_DURATION_DAYS = int(os.getenv("INVITATION_DURATION_DAYS", "7"))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_PRICE_ID = os.getenv("STRIPE_PRICE_ID")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
FEATURE_PRICE_CENTS = int(os.getenv("FEATURE_PRICE_CENTS", "499"))

# ✅ Resend
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "Pathwise <noreply@pathwise.nyc>")

# ✅ OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "45"))

# ✅ Frontend
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5000")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]

# ✅ Licensing
LICENSE_USAGE_ALERT_RATIO = float(os.getenv("LICENSE_USAGE_ALERT_RATIO", "0.8"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
