"""
Application settings management.

Loads configuration from environment variables and provides access to
database location, access tokens and logging options.
"""

import os
from pathlib import Path
from typing import Dict, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


MAX_PAGE_LIMIT = 50


def _default_database_url() -> str:
    db_file = Path.home() / ".local" / "share" / "read-tracker" / "read_tracker.db"
    return f"sqlite:///{db_file}"


def _parse_token_map(raw: str) -> Dict[str, str]:
    """Parse a ``token:name,token:name`` string into a token -> name dict."""
    tokens: Dict[str, str] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        token, sep, name = pair.partition(":")
        token, name = token.strip(), name.strip()
        if not sep or not token or not name:
            raise ValueError(f"Invalid token entry '{pair}', expected 'token:name'")
        tokens[token] = name
    return tokens


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="localhost", description="API server host")
    api_port: int = Field(default=8119, description="API server port")

    # Storage Configuration
    database_url: str = Field(
        default_factory=_default_database_url,
        description="SQLAlchemy database URL for papers, reads and config"
    )
    database_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for a database lock or pooled connection"
    )

    # Identity Configuration
    user_tokens: str = Field(
        default="",
        description="Comma-separated 'token:username' pairs accepted on user endpoints"
    )
    admin_tokens: str = Field(
        default="",
        description="Comma-separated 'token:adminname' pairs accepted on admin endpoints"
    )

    # Search Configuration
    default_page_limit: int = Field(default=10, description="Search page size when none is given")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "read-tracker" / "logs" / "app.log",
        description="Path to log file"
    )

    # Application version
    version: str = Field(default="0.1.0", description="Backend version")

    @field_validator("log_file", mode="before")
    @classmethod
    def expand_path(cls, v):
        """Expand user home directory in paths."""
        if v is None or not str(v).strip():
            return None
        path_str = str(v)
        if path_str.startswith("~"):
            path_str = os.path.expanduser(path_str)
        return Path(path_str)

    @field_validator("database_url")
    @classmethod
    def expand_database_url(cls, v):
        """Expand ``~`` in SQLite file URLs."""
        url = make_url(v)
        if url.get_backend_name() == "sqlite" and url.database and url.database.startswith("~"):
            url = url.set(database=os.path.expanduser(url.database))
            return url.render_as_string(hide_password=False)
        return v

    @field_validator("default_page_limit")
    @classmethod
    def validate_page_limit(cls, v):
        """Keep the default page size inside the accepted search range."""
        if not 1 <= v <= MAX_PAGE_LIMIT:
            raise ValueError(f"default_page_limit must be between 1 and {MAX_PAGE_LIMIT}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("user_tokens", "admin_tokens")
    @classmethod
    def validate_tokens(cls, v):
        """Reject malformed token lists at startup rather than at request time."""
        _parse_token_map(v)
        return v

    def get_user_tokens(self) -> Dict[str, str]:
        """Token -> username mapping for user endpoints."""
        return _parse_token_map(self.user_tokens)

    def get_admin_tokens(self) -> Dict[str, str]:
        """Token -> admin name mapping for admin endpoints."""
        return _parse_token_map(self.admin_tokens)

    def get_sqlite_path(self) -> Optional[Path]:
        """
        Get the database file path when the database is a SQLite file.

        Returns:
            File path, or None for in-memory SQLite and other backends.
        """
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite":
            return None
        if not url.database or url.database == ":memory:":
            return None
        return Path(url.database)

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        db_path = self.get_sqlite_path()
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Creates and caches the settings on first call.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings():
    """Reset the global settings instance (mainly for testing)."""
    global _settings
    _settings = None
