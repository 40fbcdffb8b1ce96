import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./profield.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
# Seconds; 0 disables slow query warnings
DB_SLOW_QUERY_SECONDS = float(os.getenv("DB_SLOW_QUERY_SECONDS", "1.0"))

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer tokens issued at login/registration
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

# Frontend base URL used in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "https://profieldmanager.com,https://www.profieldmanager.com,http://localhost:5173,http://localhost:3000",
).split(",")

# Google Maps (Directions + Geocoding) for dispatch routing
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY")
GOOGLE_MAPS_BASE_URL = os.getenv("GOOGLE_MAPS_BASE_URL", "https://maps.googleapis.com/maps/api").rstrip("/")
DIRECTIONS_CACHE_SECONDS = int(os.getenv("DIRECTIONS_CACHE_SECONDS", "300"))
DISPATCH_RATE_LIMIT_RPM = int(os.getenv("DISPATCH_RATE_LIMIT_RPM", "30"))

# Redis (optional) - caching and rate limiting fall back to in-process state without it
REDIS_URL = os.getenv("REDIS_URL")

# Twilio SMS
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "ProField Manager <noreply@profieldmanager.com>")
