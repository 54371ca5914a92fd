from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """Application configuration loaded from the environment and .env."""

    database_url: str = "sqlite:///./booking.db"
    sqlite_busy_timeout: float = 15.0

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    frontend_url: str = "http://localhost:3000"

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: str = "noreply@booking.local"
    notification_timeout: float = 10.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # relative sqlite paths are anchored at the project root
            relative_path = url.replace("sqlite:///./", "")
            return f"sqlite:///{BASE_DIR / relative_path}"
        return url


settings = Settings()
