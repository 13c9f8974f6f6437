"""Pydantic schemas for the spreadsheet import API.

All request and response bodies use camelCase on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldDefinitionOut(CamelModel):
    """An importable target field."""

    key: str
    label: str
    description: str
    required: bool = False


class SuggestedMappingOut(CamelModel):
    """A proposed column pairing with its confidence (0-1)."""

    source_column: str
    target_field: str
    confidence: float


class ImportErrorOut(CamelModel):
    row: int
    message: str


class ImportUploadResponse(CamelModel):
    """Response after uploading a spreadsheet."""

    job_id: str
    filename: str
    columns: list[str]
    sample_rows: list[dict[str, str]]
    total_rows: int
    available_fields: list[FieldDefinitionOut]
    suggested_mappings: list[SuggestedMappingOut]


class ImportJobSummary(CamelModel):
    """Summary of an import job for listing."""

    id: str
    import_type: str
    filename: str
    status: str
    total_rows: int
    success_count: int
    failure_count: int
    created_count: int
    updated_count: int
    skipped_count: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportJobDetail(ImportJobSummary):
    """Full import job with mapping, errors and the field catalog."""

    field_mapping: Optional[dict[str, str]] = None
    ignored_columns: list[str] = Field(default_factory=list)
    errors: list[ImportErrorOut] = Field(default_factory=list)
    available_fields: list[FieldDefinitionOut] = Field(default_factory=list)


class MappingEntryIn(CamelModel):
    source_column: str = Field(..., min_length=1)
    target_field: str = Field(..., min_length=1)


class ImportMapRequest(CamelModel):
    """Column mapping submitted for a job."""

    mappings: list[MappingEntryIn] = Field(..., min_length=1)
    ignored_columns: list[str] = Field(default_factory=list)


class ImportMappingResponse(CamelModel):
    """The normalized mapping stored on the job."""

    id: str
    field_mapping: dict[str, str]
    ignored_columns: list[str]


class ManualMatchesIn(CamelModel):
    """Ids to use for imported values that match no existing record.

    Keys are the imported customer e-mail/name or owner e-mail.
    """

    customers: dict[str, str] = Field(default_factory=dict)
    owners: dict[str, str] = Field(default_factory=dict)


class ImportExecuteRequest(CamelModel):
    """Options for executing an import job."""

    update_existing: bool = Field(True, description="Update opportunities that already exist")
    default_owner_email: Optional[str] = None
    default_customer_id: Optional[str] = None
    default_stage: Optional[str] = None
    manual_matches: Optional[ManualMatchesIn] = None


class ImportExecutionSummary(CamelModel):
    """Counters and itemized errors of one execution run."""

    import_id: str
    total_rows: int
    processed_rows: int
    created_count: int
    updated_count: int
    skipped_count: int
    failed_count: int
    errors: list[ImportErrorOut]
