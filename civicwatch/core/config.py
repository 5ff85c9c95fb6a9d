# ⚙️ Application Settings
# Every credential and endpoint comes from the environment (or a local .env file)

import os
import logging
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"⚠️ {name}={value!r} is not an integer, using {default}")
        return default


class Settings(BaseModel):
    env: str = "development"
    log_level: str = "INFO"

    # Document store
    mongo_uri: str = "mongodb://localhost:27017"
    mongodb_name: str = "civicwatch"
    issues_collection: str = "issues"
    authorities_collection: str = "authorities"

    # Generative text
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash-001"

    # Escalation
    upvote_threshold: int = 5
    use_fallback_template: bool = False
    watch_issue_changes: bool = False

    # Mail
    mail_backend: str = "smtp"  # smtp | sendgrid
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    from_email: str = ""
    sendgrid_api_key: Optional[str] = None
    email_dry_run: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Mongo URI priority: MONGO_URI > MONGODB_URL > MONGODB_URI > local default.
        """
        mongo_uri = (
            os.getenv("MONGO_URI")
            or os.getenv("MONGODB_URL")
            or os.getenv("MONGODB_URI")
            or "mongodb://localhost:27017"
        )
        return cls(
            env=os.getenv("ENV", "development").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            mongo_uri=mongo_uri,
            mongodb_name=os.getenv("MONGODB_NAME", "civicwatch"),
            issues_collection=os.getenv("ISSUES_COLLECTION", "issues"),
            authorities_collection=os.getenv("AUTHORITIES_COLLECTION", "authorities"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001"),
            upvote_threshold=_env_int("ESCALATION_UPVOTE_THRESHOLD", 5),
            use_fallback_template=_env_bool("ESCALATION_FALLBACK_TEMPLATE"),
            watch_issue_changes=_env_bool("WATCH_ISSUE_CHANGES"),
            mail_backend=os.getenv("MAIL_BACKEND", "smtp").strip().lower(),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASS", ""),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            from_email=os.getenv("FROM_EMAIL") or os.getenv("EMAIL_USER", ""),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY") or None,
            email_dry_run=_env_bool("EMAIL_DRY_RUN"),
        )

    def describe(self) -> dict:
        """Loggable view of the settings with every secret masked."""
        masked = self.model_dump()
        for key in ("gemini_api_key", "smtp_password", "sendgrid_api_key"):
            masked[key] = "Set" if masked.get(key) else "None"
        if "@" in self.mongo_uri:
            scheme = self.mongo_uri.split("://")[0]
            masked["mongo_uri"] = f"{scheme}://***"
        return masked


@lru_cache()
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
