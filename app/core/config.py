import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    APP_NAME: str = "Lumen Crisis Backend"
    ENV: str = os.getenv("ENV", "development")

    # Database
    # DATABASE_URL wins when set; otherwise the URL is built from the DB_* parts
    # and falls back to a local SQLite file when no DB_HOST is configured.
    DATABASE_URL_OVERRIDE: Optional[str] = os.getenv("DATABASE_URL")
    DB_USER: str = os.getenv("DB_USER", "root")
    DB_PASS: str = os.getenv("DB_PASS", "")
    DB_HOST: str = os.getenv("DB_HOST", "")
    DB_PORT: str = os.getenv("DB_PORT", "3306")
    DB_NAME: str = os.getenv("DB_NAME", "lumen_crisis")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "mysql+mysqlconnector")

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        if not self.DB_HOST:
            return f"sqlite:///./{self.DB_NAME}.db"
        return (
            f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASS}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # CORS
    CORS_ORIGINS: List[str] = []

    # ==========================================================================
    # CRISIS RESPONSE POLICY
    # ==========================================================================
    ALERT_COOLDOWN_MINUTES: int = 60
    COOLDOWN_SWEEP_MINUTES: int = 60
    FOLLOW_UP_SWEEP_MINUTES: int = 60
    FOLLOW_UP_HOURS_HIGH: int = 12
    FOLLOW_UP_HOURS_MEDIUM: int = 24
    FOLLOW_UP_HOURS_WARNING: int = 48
    FOLLOW_UP_RETRY_HOURS: int = 24
    FOLLOW_UP_ACTIVITY_HOURS: int = 24
    CRISIS_SCHEDULER_ENABLED: bool = os.getenv("CRISIS_SCHEDULER_ENABLED", "1") in ("1", "true", "True")

    # Risk score -> level cut-offs (score >= threshold)
    RISK_THRESHOLD_HIGH: float = 7.0
    RISK_THRESHOLD_MEDIUM: float = 4.0
    RISK_THRESHOLD_WARNING: float = 2.0
    CRISIS_INTENT_CONFIDENCE: float = 0.9

    # ==========================================================================
    # NOTIFICATION PROVIDERS
    # ==========================================================================
    # Email (SMTP)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "465"))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    # Implicit TLS (port 465); set to 0 for STARTTLS on 587
    SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "1") in ("1", "true", "True")
    SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "alerts@lumen.app")
    SMTP_FROM_NAME: str = os.getenv("SMTP_FROM_NAME", "Lumen")

    # WhatsApp via Twilio (primary)
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_WHATSAPP_FROM: str = os.getenv("TWILIO_WHATSAPP_FROM", "")
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"

    # WhatsApp Cloud API (secondary)
    WHATSAPP_ACCESS_TOKEN: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_PHONE_NUMBER_ID: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_API_VERSION: str = "v18.0"

    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "56")

    # Expo push
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"

    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Pydantic v2 settings config
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

def _load_settings() -> "Settings":
    s = Settings()
    origins = os.getenv("FRONTEND_ORIGINS") or os.getenv("FRONTEND_ORIGIN")
    dev_defaults = [
        "http://localhost:5173",
        "http://localhost:8000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8081",
        "http://127.0.0.1:8081",
    ]
    if origins:
        provided = [o.strip() for o in origins.split(",") if o.strip()]
        # Always include dev defaults to prevent missing headers in local testing
        s.CORS_ORIGINS = sorted(set(provided + dev_defaults))
    else:
        s.CORS_ORIGINS = dev_defaults
    return s

settings = _load_settings()
