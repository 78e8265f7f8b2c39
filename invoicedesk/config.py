"""Application configuration via pydantic-settings.

Process-level settings are loaded from environment variables (.env file).
Operator settings (watched folders, credential, OCR language) live in the
database and are read per cycle, see invoicedesk.repository.settings_store.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQLite connection settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/invoicedesk.db",
        description="Async SQLAlchemy connection string",
    )
    busy_timeout: float = Field(default=30.0, description="Seconds SQLite waits on a locked database")


class LLMSettings(BaseSettings):
    """OpenAI-compatible extraction provider configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Provider API base URL",
    )
    openai_model: str = Field(default="gpt-4o-mini", description="Chat model used for field extraction")
    openai_api_key: str = Field(
        default="",
        description="Fallback credential when none is saved in the settings table",
    )
    extraction_timeout: float = Field(default=60.0, description="Provider call timeout in seconds")
    extraction_temperature: float = Field(default=0.1)
    max_prompt_chars: int = Field(default=20000, description="OCR text is cut to this length before prompting")


class OCRSettings(BaseSettings):
    """Text extraction / Tesseract configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ocr_default_language: str = Field(default="deu", description="Tesseract language when none is saved")
    ocr_timeout: float = Field(default=120.0, description="Per-document OCR timeout in seconds")
    ocr_render_dpi: int = Field(default=300, description="DPI used when rasterizing PDF pages")
    ocr_max_pages: int = Field(default=10)
    ocr_min_text_chars: int = Field(
        default=50,
        description="Below this many characters the PDF text layer is ignored and OCR runs",
    )
    tesseract_cmd: str = Field(default="", description="Explicit tesseract binary path")


class ScanSettings(BaseSettings):
    """Folder scanning and worker scheduling."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    scan_interval_seconds: float = Field(default=60.0)
    scan_max_concurrency: int = Field(default=4, description="Parallel document attempts")
    supported_extensions: str = Field(
        default=".pdf,.png,.jpg,.jpeg,.tif,.tiff",
        description="Comma-separated file suffixes picked up by the scanner",
    )

    @property
    def extensions(self) -> frozenset[str]:
        """Parse the comma-separated suffix list into a lowercase set."""
        return frozenset(
            ext.strip().lower() if ext.strip().startswith(".") else f".{ext.strip().lower()}"
            for ext in self.supported_extensions.split(",")
            if ext.strip()
        )


class SecuritySettings(BaseSettings):
    """Encryption of the stored provider credential."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    encryption_key: str = Field(
        default="",
        description="32-byte AES key, base64 encoded",
    )


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.db.database_url
        settings.llm.openai_model
        settings.scan.extensions
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    base_currency: str = Field(default="EUR")
    dashboard_recent_limit: int = Field(default=5)
    dashboard_chart_window: int = Field(default=12)

    # Composed settings (loaded from same .env)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    ocr: OCRSettings = Field(default_factory=OCRSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Module-level singleton: import this wherever settings are needed.
settings = Settings()
