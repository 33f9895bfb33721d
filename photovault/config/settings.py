"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode enables local development without a real object storage account.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "PhotoVault API"
    api_version: str = "v1"

    # Object Storage Configuration
    storage_account_name: str = Field(
        default="",
        description="Storage account identity (R2 account ID or S3 access key owner)"
    )
    storage_access_key_id: str = Field(
        default="",
        description="Access key ID. Falls back to the account name when empty."
    )
    storage_account_key: str = Field(
        default="",
        description="Storage account secret used to sign upload URLs"
    )
    storage_container: str = Field(
        default="photos",
        description="Bucket/container holding every uploaded object"
    )
    storage_endpoint_url: Optional[str] = Field(
        default=None,
        description="Storage endpoint URL. Auto-constructed from the account name if not provided."
    )
    storage_public_base_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix of the container. Raw URLs under it are rewritten to /api/objects paths."
    )
    storage_region: str = Field(
        default="auto",
        description="Region name. R2 uses 'auto'."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real object storage. Enables local dev without credentials."
    )
    mock_storage_base_url: str = Field(
        default="http://localhost:8000/mock-storage",
        description="Base URL of the app's mock upload route. Mock upload URLs point here."
    )

    # Download behaviour
    object_cache_ttl_seconds: int = Field(
        default=3600,
        description="max-age advertised in Cache-Control for served objects"
    )
    object_stream_chunk_bytes: int = Field(
        default=64 * 1024,
        description="Chunk size used when streaming object bodies"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:5173",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def storage_endpoint(self) -> str:
        """
        Construct the storage endpoint from the account name.

        R2 endpoints follow the pattern: https://{account}.r2.cloudflarestorage.com
        Any other S3-compatible service can be used by setting STORAGE_ENDPOINT_URL.
        """
        if self.storage_endpoint_url:
            return self.storage_endpoint_url.rstrip("/")
        return f"https://{self.storage_account_name}.r2.cloudflarestorage.com"

    @property
    def storage_public_base(self) -> str:
        """Fully-qualified URL prefix (account + container) of stored objects."""
        if self.storage_public_base_url:
            return self.storage_public_base_url.rstrip("/") + "/"
        return f"{self.storage_endpoint}/{self.storage_container}/"

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.storage_mock_mode:
            if not self.storage_account_name:
                missing.append("STORAGE_ACCOUNT_NAME")
            if not self.storage_account_key:
                missing.append("STORAGE_ACCOUNT_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    This is safe because settings don't change during runtime.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
