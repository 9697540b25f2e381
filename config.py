import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from fastapi import Request

# load .env for local runs
load_dotenv()


def _split(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Settings:
    database_url: str = "sqlite:///./storefront.db"
    secret_key: str = "dev-secret-key-change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60 * 24 * 7
    bcrypt_rounds: int = 12
    db_pool_size: int = 10
    db_max_overflow: int = 0
    db_pool_timeout: float = 30.0
    admin_emails: List[str] = field(default_factory=list)
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            jwt_expires_minutes=int(os.getenv("JWT_EXPIRES_MINUTES", cls.jwt_expires_minutes)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", cls.bcrypt_rounds)),
            db_pool_size=int(os.getenv("DB_POOL_SIZE", cls.db_pool_size)),
            db_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", cls.db_max_overflow)),
            db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", cls.db_pool_timeout)),
            admin_emails=[e.lower() for e in _split(os.getenv("ADMIN_EMAILS", ""))],
            allow_origins=_split(os.getenv("ALLOW_ORIGINS", "*")),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with (see ``main.create_app``)."""
    return request.app.state.settings
