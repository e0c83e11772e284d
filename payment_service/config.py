import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


@dataclass(frozen=True)
class Settings:
    database_url: str
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    default_currency: str = "usd"
    gateway_timeout: float = 10.0
    notification_timeout: float = 10.0
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    resend_api_key: str = ""
    email_from: str = "SkyDish <onboarding@resend.dev>"
    allowed_origins: list = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"


def _split_origins(raw: Optional[str]) -> list:
    if not raw:
        return ["http://localhost:3000"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def load_settings() -> Settings:
    load_dotenv(dotenv_path=ENV_PATH)

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

    return Settings(
        database_url=database_url,
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        default_currency=os.getenv("DEFAULT_CURRENCY", "usd").lower(),
        gateway_timeout=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10")),
        notification_timeout=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10")),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
        twilio_from_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        email_from=os.getenv("EMAIL_FROM", "SkyDish <onboarding@resend.dev>"),
        allowed_origins=_split_origins(os.getenv("ALLOWED_ORIGINS")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
