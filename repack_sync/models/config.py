"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DATABASE_FILENAME = "repack_sync.sqlite"


class SyncConfig(BaseModel):
    """A validated configuration model for the application."""

    # Catalog documents
    catalog_url: str = ""
    title_hash_url: str = ""

    # Network Settings
    request_timeout: int = 30
    max_retries: int = 3

    # Cache Settings
    cache_max_age_days: int = 1

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)
    database_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("catalog_url", "title_hash_url")
    @classmethod
    def validate_document_url(cls, v: str) -> str:
        """Catalog documents must be served over HTTP(S), or left unset."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"Catalog URLs must start with http:// or https://: {v}")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Ensures a reasonable request timeout."""
        if v < 1 or v > 300:
            raise ValueError("Request timeout must be between 1 and 300 seconds.")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Max retries must be between 1 and 10.")
        return v

    @field_validator("cache_max_age_days")
    @classmethod
    def validate_cache_age(cls, v: int) -> int:
        if v < 0 or v > 30:
            raise ValueError("Cache max age must be between 0 and 30 days.")
        return v

    @property
    def database_file(self) -> Path:
        """The sqlite database file, inside the config directory unless overridden."""
        if self.database_path:
            return Path(self.database_path).expanduser()
        return Path(self.config_path) / DATABASE_FILENAME

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "database_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
