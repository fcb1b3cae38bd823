# storefront/config.py
import os

from dotenv import load_dotenv

from storefront.errors import ConfigError

load_dotenv()
# Main DB (cart snapshots)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///storefront.db")
# Local CMS document store, used when CMS_BACKEND=sql
CMS_DATABASE_URL = os.getenv("CMS_DATABASE_URL", "sqlite:///cms.db")
CMS_BACKEND = os.getenv("CMS_BACKEND", "sql")
# "session" keeps the cart in the signed cookie, "sql" in the main DB
CART_BACKEND = os.getenv("CART_BACKEND", "session")

SANITY_DATASET = os.getenv("SANITY_DATASET", "production")
SANITY_API_VERSION = os.getenv("SANITY_API_VERSION", "2024-01-01")

PAYMENT_VENDOR = os.getenv("PAYMENT_VENDOR", "stripe")
SQUARE_ENVIRONMENT = os.getenv("SQUARE_ENVIRONMENT", "sandbox")

SITE_NAME = os.getenv("SITE_NAME", "Excalibur Jerky")
CURRENCY = os.getenv("CURRENCY", "USD")
SECRET = os.getenv("FLASK_SECRET_KEY", "dev-key")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "onboarding@resend.dev")

SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL")
LOG_FILE = os.getenv("LOG_FILE", "storefront.log")

HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "15"))


def require(name: str) -> str:
    """Return a required setting, failing loudly when it is not set."""
    value = os.getenv(name)
    if not value:
        raise ConfigError(
            f"{name} is not defined. Please add it to your environment variables."
        )
    return value
