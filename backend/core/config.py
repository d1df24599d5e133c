"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


# Used only when neither DATA_ENCRYPTION_KEY nor NEXTAUTH_SECRET is set
DEV_FALLBACK_SECRET = "dev-fallback-secret-key-32-chars!!"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # EXPANSION_* toggles are read straight from the environment
    )

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field("sqlite:///./bloomx.db", description="SQLAlchemy database URL")

    # ============================================================
    # Encryption (settings vault)
    # ============================================================
    data_encryption_key: Optional[str] = Field(None, description="Server secret for settings encryption")
    nextauth_secret: Optional[str] = Field(None, description="Fallback secret when DATA_ENCRYPTION_KEY is unset")

    # ============================================================
    # Secure client sync
    # ============================================================
    secure_sync_epoch_ms: int = Field(300000, description="Width of one key-rotation epoch (ms)")
    secure_sync_iterations: int = Field(1000, description="PBKDF2 iterations for epoch keys")
    secure_sync_path: Optional[str] = Field(None, description="JSON file backing the secure cache (memory if unset)")

    # ============================================================
    # Expansion dispatch
    # ============================================================
    dispatch_timeout_seconds: float = Field(30.0, description="Per-interceptor timeout, 0 disables")
    cron_interval_seconds: int = Field(3600, description="Minimum time between cron runs per user")

    # ============================================================
    # Object Storage (S3 compatible, local directory fallback)
    # ============================================================
    s3_endpoint: Optional[str] = Field(None, description="S3 endpoint URL (B2, MinIO, ...)")
    s3_region: Optional[str] = Field(None, description="S3 region")
    s3_access_key: Optional[str] = Field(None, description="S3 access key id")
    s3_secret_key: Optional[str] = Field(None, description="S3 secret key")
    s3_bucket: Optional[str] = Field(None, description="S3 bucket name")
    local_storage_path: str = Field(".storage", description="Directory used when S3 is not configured")
    signed_url_expiry: int = Field(3600, description="Presigned URL lifetime (seconds)")

    # ============================================================
    # SMTP Configuration (for sending emails)
    # ============================================================
    smtp_host: Optional[str] = Field(None, description="SMTP server hostname")
    smtp_port: int = Field(587, description="SMTP server port (587=TLS, 465=SSL)")
    smtp_username: Optional[str] = Field(None, description="SMTP username (usually same as email)")
    smtp_password: Optional[str] = Field(None, description="SMTP password")
    smtp_use_tls: bool = Field(True, description="Use TLS for SMTP")
    from_name: str = Field("", description="Display name in From field")
    from_email: Optional[str] = Field(None, description="From email address (defaults to smtp_username)")

    # ============================================================
    # LLM Configuration
    # ============================================================
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_model: str = Field("gpt-4o-mini", description="OpenAI model for text generation")
    openai_temperature: float = Field(0.3, description="Temperature for text generation (0-1)")

    # ============================================================
    # API Configuration
    # ============================================================
    api_key: Optional[str] = Field(None, description="API key for authentication")
    app_url: str = Field("http://localhost:3000", description="Public URL of the web app")
    allowed_origins: str = Field(
        "http://localhost:3000,http://localhost:8000",
        description="Comma-separated CORS allowed origins"
    )

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse allowed origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def encryption_secret(self) -> str:
        """Secret the settings vault derives its key from."""
        return self.data_encryption_key or self.nextauth_secret or DEV_FALLBACK_SECRET

    @property
    def s3_configured(self) -> bool:
        return bool(self.s3_access_key and self.s3_bucket)

    @property
    def from_email_address(self) -> Optional[str]:
        """Get from email (defaults to SMTP username)."""
        return self.from_email or self.smtp_username


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
