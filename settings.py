import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "storefront"
    jwt_secret: str = "dev-secret-change-me"
    jwt_expires_days: int = 15
    resend_api_key: Optional[str] = None
    mail_from: str = "Storefront <info@storefront.local>"
    admin_notify_email: Optional[str] = None
    frontend_url: str = "http://localhost:3000"
    dashboard_secret: Optional[str] = None
    geo_lookup_url: str = "https://ipapi.co/{ip}/json/"
    geo_timeout_seconds: float = 1.0
    side_effect_queue_size: int = 1000
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    log_level: str = "INFO"


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        database_name=os.getenv("DATABASE_NAME", Settings.database_name),
        jwt_secret=os.getenv("JWT_SECRET", Settings.jwt_secret),
        jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", "15")),
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        mail_from=os.getenv("MAIL_FROM", Settings.mail_from),
        admin_notify_email=os.getenv("ADMIN_NOTIFY_EMAIL") or None,
        frontend_url=os.getenv("FRONTEND_URL", Settings.frontend_url).rstrip("/"),
        dashboard_secret=os.getenv("ANALYTICS_DASHBOARD_SECRET") or None,
        geo_lookup_url=os.getenv("GEO_LOOKUP_URL", Settings.geo_lookup_url),
        geo_timeout_seconds=float(os.getenv("GEO_TIMEOUT_SECONDS", "1.0")),
        side_effect_queue_size=int(os.getenv("SIDE_EFFECT_QUEUE_SIZE", "1000")),
        admin_email=os.getenv("ADMIN_EMAIL") or None,
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
