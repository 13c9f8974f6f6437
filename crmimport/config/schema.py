"""Pydantic models for crmimport configuration.

These models define the structure of config.toml and secrets.env files.
"""

from pathlib import Path

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 2
    debug: bool = False
    rate_limit_per_minute: int = 60
    # CORS configuration - empty list means same-origin only
    cors_origins: list[str] = []


class DatabaseConfig(BaseModel):
    """MongoDB database configuration."""

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "crmimport"
    # Connection pool settings
    min_pool_size: int = 10
    max_pool_size: int = 100


class StorageConfig(BaseModel):
    """File storage configuration."""

    data_dir: Path = Field(default_factory=lambda: Path("data"))
    log_dir: Path = Field(default_factory=lambda: Path("data/logs"))
    max_upload_mb: int = 10

    @property
    def imports_dir(self) -> Path:
        """Get the directory holding uploaded import files."""
        return self.data_dir / "imports"

    @property
    def max_upload_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_mb * 1024 * 1024


class ImportConfig(BaseModel):
    """Import pipeline configuration."""

    # Failures past this many are counted but not itemized
    error_limit: int = Field(default=50, ge=1)
    sample_rows: int = Field(default=5, ge=0)
    suggestion_min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    default_stage: str = "Qualification"
    allowed_extensions: list[str] = Field(default_factory=lambda: ["csv", "xlsx"])
    recent_jobs_limit: int = Field(default=50, ge=1)


class CrmImportConfig(BaseModel):
    """Main crmimport configuration loaded from config.toml."""

    app_name: str = "CRM Import"
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    imports: ImportConfig = Field(default_factory=ImportConfig)


class SecretsConfig(BaseModel):
    """Secrets loaded from secrets.env file.

    These are sensitive values that should not be stored in config.toml.
    """

    # Full connection URL including credentials; overrides database.mongodb_url
    mongodb_url: str | None = None
