"""ImportJob document model for tracking spreadsheet imports."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class ImportType(str, Enum):
    """Kinds of spreadsheet import the service knows how to execute."""

    OPPORTUNITIES = "opportunities"


class ImportStatus(str, Enum):
    """Lifecycle status of an import job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ImportErrorEntry(BaseModel):
    """A single itemized row failure."""

    row: int
    message: str


class StoredFieldMapping(BaseModel):
    """Validated column mapping persisted on the job."""

    # target field key -> source column header
    fields: dict[str, str] = Field(default_factory=dict)
    ignored_columns: list[str] = Field(default_factory=list)


class ImportJob(Document):
    """Tracks a spreadsheet import through the upload/map/execute workflow."""

    import_type: Indexed(str)
    filename: str
    file_type: str  # "csv" or "xlsx"
    storage_name: str
    total_rows: int = 0
    field_mapping: Optional[StoredFieldMapping] = None
    status: ImportStatus = ImportStatus.PENDING

    # Execution results
    success_count: int = 0
    failure_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    errors: list[ImportErrorEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Settings:
        name = "import_jobs"
