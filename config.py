import os
from typing import Callable, List, Optional

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Config:
    """Runtime settings read from the environment (and a local .env file)."""

    def __init__(self, **overrides):
        self.DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
        self.DATABASE_NAME: Optional[str] = os.getenv("DATABASE_NAME")
        self.PORT: int = _int_env("PORT", 8000)
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.SESSION_TTL_HOURS: int = _int_env("SESSION_TTL_HOURS", 24)
        self.MAX_FAILED_LOGINS: int = _int_env("MAX_FAILED_LOGINS", 5)
        self.LOCKOUT_MINUTES: int = _int_env("LOCKOUT_MINUTES", 15)
        self.RESET_TOKEN_TTL_MINUTES: int = _int_env("RESET_TOKEN_TTL_MINUTES", 60)
        self.RESET_URL: str = os.getenv("RESET_URL", "http://localhost:5173/reset-password")
        self.SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
        self.SMTP_PORT: int = _int_env("SMTP_PORT", 587)
        self.SMTP_USER: Optional[str] = os.getenv("SMTP_USER")
        self.SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD")
        self.MAIL_FROM: str = os.getenv("MAIL_FROM", "no-reply@localhost")
        # called as notifier(email, token); None means mail it with the SMTP settings
        self.RESET_NOTIFIER: Optional[Callable[[str, str], None]] = None
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown config key: {key}")
            setattr(self, key, value)

    @property
    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL and self.DATABASE_NAME)


_config: Optional[Config] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> None:
    global _config
    _config = config
