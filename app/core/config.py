# app/core/config.py
from __future__ import annotations

import os
from typing import ClassVar, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from app.core.rbac import Role


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class SmtpSettings(BaseModel):
    provider: str
    host: str
    port: int = 465
    username: str
    password: str
    from_address: str

    @classmethod
    def from_env(cls, prefix: str) -> Optional["SmtpSettings"]:
        """Reads SMTP_<PREFIX>_* variables; returns None when the host is unset."""
        host = os.getenv(f"SMTP_{prefix}_HOST")
        if not host:
            return None
        username = os.getenv(f"SMTP_{prefix}_USER", "")
        return cls(
            provider=prefix.lower(),
            host=host,
            port=int(os.getenv(f"SMTP_{prefix}_PORT", "465")),
            username=username,
            password=os.getenv(f"SMTP_{prefix}_PASSWORD", ""),
            from_address=os.getenv(f"SMTP_{prefix}_FROM", username),
        )


class Settings(BaseModel):
    # mail domains routed to a named provider; anything else goes to "default"
    MAIL_DOMAINS: ClassVar[Dict[str, str]] = {
        "gmail.com": "gmail",
        "googlemail.com": "gmail",
        "yahoo.com": "yahoo",
    }

    DATA_DIR: str = Field(default_factory=lambda: os.path.abspath(os.getenv("DATA_DIR", "./data")))
    DATABASE_URL: str = "sqlite:///./data/accounts.db"
    RUN_MIGRATIONS: bool = True

    JWT_SECRET: str
    JWT_ISSUER: str = "accounts-api"
    JWT_AUDIENCE: str = "accounts-api-users"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    PASSWORD_RESET_URL: str = "http://localhost:8081/reset"
    FORGOT_PASSWORD_REVEAL_UNKNOWN: bool = False

    DEFAULT_ROLE: str = "owner"
    DEFAULT_TIMEZONE: str = "UTC"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    METRICS_ENABLED: bool = True

    SMTP: Dict[str, SmtpSettings] = Field(default_factory=dict)

    @field_validator("JWT_SECRET")
    @classmethod
    def _secret_strength(cls, value: str) -> str:
        if len(value or "") < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters")
        return value

    @field_validator("DEFAULT_ROLE")
    @classmethod
    def _known_role(cls, value: str) -> str:
        return Role.parse(value).value

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        data_dir = os.path.abspath(os.getenv("DATA_DIR", "./data"))
        os.makedirs(data_dir, exist_ok=True)
        smtp = {}
        for prefix in ("GMAIL", "YAHOO", "DEFAULT"):
            cfg = SmtpSettings.from_env(prefix)
            if cfg is not None:
                smtp[cfg.provider] = cfg
        return cls(
            DATA_DIR=data_dir,
            DATABASE_URL=os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(data_dir, 'accounts.db')}",
            RUN_MIGRATIONS=_env_bool("RUN_MIGRATIONS", True),
            JWT_SECRET=os.getenv("JWT_SECRET", ""),
            JWT_ISSUER=os.getenv("JWT_ISSUER", "accounts-api"),
            JWT_AUDIENCE=os.getenv("JWT_AUDIENCE", "accounts-api-users"),
            ACCESS_TOKEN_EXPIRE_MINUTES=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
            REFRESH_TOKEN_EXPIRE_DAYS=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7")),
            PASSWORD_RESET_EXPIRE_MINUTES=int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60")),
            PASSWORD_RESET_URL=os.getenv("PASSWORD_RESET_URL", "http://localhost:8081/reset"),
            FORGOT_PASSWORD_REVEAL_UNKNOWN=_env_bool("FORGOT_PASSWORD_REVEAL_UNKNOWN"),
            DEFAULT_ROLE=os.getenv("DEFAULT_ROLE", "owner"),
            DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "UTC"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_JSON=_env_bool("LOG_JSON"),
            METRICS_ENABLED=_env_bool("METRICS_ENABLED", True),
            SMTP=smtp,
        )

    def smtp_for(self, email: str) -> Optional[SmtpSettings]:
        domain = email.rsplit("@", 1)[-1].strip().lower()
        provider = self.MAIL_DOMAINS.get(domain, "default")
        return self.SMTP.get(provider) or self.SMTP.get("default")
