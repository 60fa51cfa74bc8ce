"""
Application settings for the knowledge base CMS.

Values come from the environment (prefix ``KB_``) or a ``.env`` file.
"""

import secrets
import warnings
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "kb.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KB_", env_file=".env", extra="ignore")

    # Database
    database_url: Optional[str] = None
    db_host: Optional[str] = None
    db_name: str = "knowledge_base"
    db_user: str = "kb_user"
    db_password: str = ""
    db_charset: str = "utf8mb4"
    db_path: Path = DEFAULT_DB_PATH

    # Site
    site_name: str = "Knowledge Base CMS"
    site_url: str = "http://localhost:8000"

    # Security
    secret_key: Optional[str] = None
    session_timeout: int = 3600  # seconds
    session_cookie_name: str = "kb_session"
    cookie_secure: bool = False
    min_password_length: int = 6
    csrf_token_name: str = "_token"
    rate_limit_enabled: bool = True

    # Pagination
    articles_per_page: int = 12
    search_results_per_page: int = 10

    # Environment
    debug: bool = False
    log_level: str = "INFO"

    @property
    def sqlalchemy_url(self) -> str:
        """SQLAlchemy URL: explicit URL, then MySQL host settings, then SQLite."""
        if self.database_url:
            return self.database_url
        if self.db_host:
            return (
                f"mysql+pymysql://{self.db_user}:{self.db_password}"
                f"@{self.db_host}/{self.db_name}?charset={self.db_charset}"
            )
        return f"sqlite:///{self.db_path}"


def resolve_secret_key(settings: Settings) -> str:
    """Return the signing key, generating a throwaway one in debug mode."""
    if settings.secret_key:
        return settings.secret_key
    if not settings.debug:
        raise RuntimeError("KB_SECRET_KEY must be set when debug mode is off")
    warnings.warn("KB_SECRET_KEY not set - using random key (sessions won't persist across restarts)")
    settings.secret_key = secrets.token_hex(32)
    return settings.secret_key


@lru_cache
def get_settings() -> Settings:
    return Settings()
