"""Runtime configuration.

Values come from the process environment; a `.env` file in the working
directory is loaded first so local setups need no exports.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SQLITE_URL = "sqlite:///./data/sitekit.db"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_list(name: str) -> List[str]:
    raw = _env(name, "") or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Config:
    database_url: str = DEFAULT_SQLITE_URL
    sql_echo: bool = False
    site_url: str = "http://localhost:8000/"
    site_name: str = "Site Kit"
    admin_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    encryption_key: Optional[str] = None
    cors_origins: List[str] = field(default_factory=list)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        site_url = _env("SITEKIT_SITE_URL", "http://localhost:8000/")
        return cls(
            database_url=_env("DATABASE_URL", DEFAULT_SQLITE_URL),
            sql_echo=(_env("SQL_ECHO", "0") or "0").lower() in {"1", "true", "yes"},
            site_url=site_url,
            site_name=_env("SITEKIT_SITE_NAME", "Site Kit"),
            admin_url=_env("SITEKIT_ADMIN_URL"),
            client_id=_env("GOOGLESITEKIT_CLIENT_ID"),
            client_secret=_env("GOOGLESITEKIT_CLIENT_SECRET"),
            redirect_uri=_env("GOOGLESITEKIT_REDIRECT_URI"),
            encryption_key=_env("SITEKIT_ENCRYPTION_KEY"),
            cors_origins=_env_list("SITEKIT_CORS_ORIGINS"),
            log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    @property
    def has_oauth_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the process-wide configuration (cached; tests call cache_clear)."""
    return Config.from_env()
