"""Application settings and the persisted notification-provider config."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("dronegarden.config")

BASE = Path(__file__).resolve().parent.parent


def _csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    CORS_ORIGINS: list[str]
    ADMIN_EMAILS: list[str]
    PROVIDER_CONFIG_FILE: Path
    PASSWORD_RESET_TTL_MINUTES: int
    APP_BASE_URL: str
    FORGOT_PASSWORD_RATE_LIMIT: int
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "168"))  # one week
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:4173"))
        self.ADMIN_EMAILS = [e.lower() for e in _csv(os.getenv("ADMIN_EMAILS", "admin@drone-partss.com"))]
        self.PROVIDER_CONFIG_FILE = Path(os.getenv("PROVIDER_CONFIG_FILE", str(BASE / "provider_config.json")))
        self.PASSWORD_RESET_TTL_MINUTES = int(os.getenv("PASSWORD_RESET_TTL_MINUTES", "60"))
        self.APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5173").rstrip("/")
        self.FORGOT_PASSWORD_RATE_LIMIT = int(os.getenv("FORGOT_PASSWORD_RATE_LIMIT", "5"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if "*" in self.CORS_ORIGINS:
            raise RuntimeError("CORS_ORIGINS must list explicit origins; '*' is not accepted")

    def is_admin_email(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return email.lower() in self.ADMIN_EMAILS


settings = Settings()


class VonageConfig(BaseModel):
    api_key: str = ""
    api_secret: str = ""
    from_number: str = "DroneGarden"

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)


class SmtpConfig(BaseModel):
    host: str = "smtp.gmail.com"
    port: int = 587
    user: str = ""
    password: str = ""
    from_email: str = "noreply@dronegarden.com"

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)


class ProviderConfig(BaseModel):
    vonage: VonageConfig = Field(default_factory=VonageConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)


def _provider_defaults_from_env() -> ProviderConfig:
    return ProviderConfig(
        vonage=VonageConfig(
            api_key=os.getenv("VONAGE_API_KEY", ""),
            api_secret=os.getenv("VONAGE_API_SECRET", ""),
            from_number=os.getenv("VONAGE_FROM_NUMBER", "DroneGarden"),
        ),
        smtp=SmtpConfig(
            host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            port=int(os.getenv("SMTP_PORT", "587")),
            user=os.getenv("SMTP_USER", ""),
            password=os.getenv("SMTP_PASS", ""),
            from_email=os.getenv("FROM_EMAIL", "noreply@dronegarden.com"),
        ),
    )


class ProviderConfigStore:
    """Owns the Vonage/SMTP credentials edited from the admin settings page.

    The config is loaded lazily from a JSON file and falls back to the
    environment defaults when the file is missing or unreadable. Every
    update is written back to the same file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._config: Optional[ProviderConfig] = None

    def load(self) -> ProviderConfig:
        with self._lock:
            if self._config is None:
                self._config = self._read()
            return self._config.model_copy(deep=True)

    def update_vonage(self, vonage: VonageConfig) -> ProviderConfig:
        return self._update(vonage=vonage)

    def update_smtp(self, smtp: SmtpConfig) -> ProviderConfig:
        return self._update(smtp=smtp)

    def reset(self) -> None:
        """Forget the in-memory copy so the next `load` re-reads the file."""
        with self._lock:
            self._config = None

    def _update(self, **changes) -> ProviderConfig:
        with self._lock:
            current = self._config if self._config is not None else self._read()
            self._config = current.model_copy(update=changes)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self._config.model_dump_json(indent=2), encoding="utf-8")
            return self._config.model_copy(deep=True)

    def _read(self) -> ProviderConfig:
        if self.path.exists():
            try:
                return ProviderConfig.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
            except Exception:
                logger.exception("could not read provider config at %s; using environment defaults", self.path)
        return _provider_defaults_from_env()


provider_store = ProviderConfigStore(settings.PROVIDER_CONFIG_FILE)
