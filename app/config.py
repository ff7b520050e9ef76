"""Application configuration loaded from environment variables.

Centralised settings for every subsystem: cookie sessions, Google OAuth,
storage backend, the AI provider, uploads, session housekeeping and
rate limiting.
"""

import hashlib
import os
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

# Model used when AI_MODEL is not set, per provider
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-flash-latest",
}

SECRET_SEED_PATH = os.path.join("data", ".secret_seed")


def _local_session_secret() -> str:
    """Session signing key for when SESSION_SECRET is unset.

    Derived from a seed file under ``data/`` so sign-in cookies stay valid
    across restarts of a development server.
    """
    os.makedirs(os.path.dirname(SECRET_SEED_PATH), exist_ok=True)
    try:
        with open(SECRET_SEED_PATH) as f:
            seed = f.read().strip()
    except FileNotFoundError:
        seed = secrets.token_urlsafe(48)
        with open(SECRET_SEED_PATH, "w") as f:
            f.write(seed)
    return hashlib.sha256(seed.encode()).hexdigest()


class Settings(BaseSettings):
    # ---- Cookie sessions ----
    session_secret: str = Field(default_factory=_local_session_secret)
    session_max_age_hours: int = 24
    https_only_cookies: bool = False

    # ---- Google OAuth 2.0 ----
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: str = "http://localhost:8000/api/auth/google/callback"
    post_login_redirect: str = "/dashboard"

    # ---- Storage ----
    database_url: str = "sqlite:///./data/policylens.db"
    storage_backend: str = "database"  # database | memory

    # ---- AI provider ----
    ai_provider: str = "mock"  # mock | openai | gemini
    ai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    ai_model: Optional[str] = None
    ai_timeout_seconds: float = 30.0

    # ---- Uploads ----
    max_upload_mb: int = 50

    # ---- Usage sessions ----
    session_ttl_hours: int = 24
    session_cleanup_interval_minutes: int = 60  # 0 disables the in-process sweep

    # ---- Rate Limiting ----
    rate_limit_requests: int = 20  # Max AI/upload requests per window
    rate_limit_window: int = 60  # Window in seconds

    # ---- App ----
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_origins: str = ""  # Comma-separated origins, empty = same-origin only
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def google_oauth_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def resolved_ai_api_key(self) -> Optional[str]:
        """The key for the selected provider, honouring provider-specific fallbacks."""
        if self.ai_api_key:
            return self.ai_api_key
        if self.ai_provider == "gemini":
            return self.gemini_api_key
        if self.ai_provider == "openai":
            return self.openai_api_key
        return None

    @property
    def resolved_ai_model(self) -> str:
        return self.ai_model or DEFAULT_MODELS.get(self.ai_provider, "gpt-4o-mini")

    @property
    def ai_enabled(self) -> bool:
        """True when a real provider will be called instead of the canned fallback."""
        return self.ai_provider in DEFAULT_MODELS and bool(self.resolved_ai_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Cached singleton accessor for application settings."""
    return Settings()


settings = get_settings()
