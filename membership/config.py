import os
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

env_path = BASE_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _normalise_database_url(url: str) -> str:
    # Heroku/Vercel style URLs still use the legacy scheme
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")

DATABASE_URL = _normalise_database_url(os.getenv("DATABASE_URL", "sqlite:///./kameti.db"))

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")

PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_SECRET = os.getenv("PAYPAL_SECRET", "")
PAYPAL_API = os.getenv("PAYPAL_API", "https://api-m.sandbox.paypal.com")

GMAIL_USER = os.getenv("GMAIL_USER", "")
GMAIL_APP_PASSWORD = os.getenv("GMAIL_APP_PASSWORD", "")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))

BRAND_NAME = os.getenv("BRAND_NAME", "Lucky Kameti")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
if DEBUG:
    CORS_ORIGINS = ["*"]

# Business rules
ENTRY_FEE = Decimal("50.00")
CURRENCY = "USD"
WINNING_AMOUNT = Decimal("1000.00")
RENEWAL_PERIOD = timedelta(days=30)
RENEWAL_DEADLINE_TEXT = "28th of every month"

REFERENCE_PREFIX = "DW"
REFERENCE_MAX_ATTEMPTS = 5

RECENT_WINNER_WINDOW = timedelta(minutes=5)

WITHDRAWAL_MIN_ENTRIES = 10
SERVICE_CHARGE_RATE = Decimal("0.07")
