"""
Runtime configuration read from the environment.

Values are read once when Settings.from_env() is called at import time of
homework_helper.main, after python-dotenv has loaded the local .env file.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings."""

    environment: str = "development"

    # Answer generation
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    openai_timeout_seconds: float = 30.0
    openai_max_tokens: int = 1000
    openai_temperature: float = 0.7
    ai_max_retries: int = 2

    # Firebase Authentication
    firebase_project_id: Optional[str] = None
    firebase_jwks_url: str = (
        "https://www.googleapis.com/service_accounts/v1/jwk/"
        "securetoken@system.gserviceaccount.com"
    )

    # Questions and votes
    max_question_length: int = 2000
    vote_max_attempts: int = 3

    cors_allowed_origins: List[str] = field(default_factory=list)
    sentry_dsn: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def auth_enabled(self) -> bool:
        """Firebase verification is only active once a project id is configured."""
        return bool(self.firebase_project_id)

    @property
    def answer_service_configured(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
        defaults = cls()
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_timeout_seconds=_env_float("OPENAI_TIMEOUT_SECONDS", 30.0),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 1000),
            openai_temperature=_env_float("OPENAI_TEMPERATURE", 0.7),
            ai_max_retries=_env_int("AI_MAX_RETRIES", 2),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            firebase_jwks_url=os.getenv("FIREBASE_JWKS_URL", defaults.firebase_jwks_url),
            max_question_length=_env_int("MAX_QUESTION_LENGTH", 2000),
            vote_max_attempts=max(1, _env_int("VOTE_MAX_ATTEMPTS", 3)),
            cors_allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
        )
