from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./park_booking.db"
    DB_POOL_SIZE: int = 8
    DB_MAX_OVERFLOW: int = 10

    # Security
    QR_SECRET: str

    # Notifications
    ALERT_EMAIL: str = ""
    NOTIFY_FROM: str = ""
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""

    # QR code images
    QR_CODE_DIR: str = "static/qr_codes"
    STATIC_URL: str = "/static"

    # Application
    PROJECT_NAME: str = "Park Booking API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @field_validator("QR_SECRET", mode="after")
    @classmethod
    def require_secret(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("QR_SECRET must not be empty")
        return v

    @property
    def sender_address(self) -> Optional[str]:
        if self.NOTIFY_FROM.strip():
            return self.NOTIFY_FROM.strip()
        if self.SMTP_USER.strip():
            return f"Park Booking <{self.SMTP_USER.strip()}>"
        return None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
