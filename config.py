"""
Application settings loaded from environment variables (+ optional .env).
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./taskuru.db"))
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY") or "devsecret")
    algorithm: str = field(default_factory=lambda: os.getenv("ALGORITHM", "HS256"))
    session_ttl_hours: int = field(default_factory=lambda: _env_int("SESSION_TTL_HOURS", 24))
    session_cookie_name: str = field(default_factory=lambda: os.getenv("SESSION_COOKIE_NAME", "todoapp_session"))
    cors_origins: List[str] = field(
        default_factory=lambda: _env_list("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    allowed_hosts: List[str] = field(
        default_factory=lambda: _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0,testserver")
    )
    db_encryption_key: Optional[str] = field(default_factory=lambda: os.getenv("DB_ENCRYPTION_KEY") or None)
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE") or None)


settings = Settings()
