"""Pydantic schemas for the crmimport API."""

from crmimport.schemas.import_schemas import (
    FieldDefinitionOut,
    ImportErrorOut,
    ImportExecuteRequest,
    ImportExecutionSummary,
    ImportJobDetail,
    ImportJobSummary,
    ImportMappingResponse,
    ImportMapRequest,
    ImportUploadResponse,
    ManualMatchesIn,
    MappingEntryIn,
    SuggestedMappingOut,
)

__all__ = [
    "FieldDefinitionOut",
    "ImportErrorOut",
    "ImportExecuteRequest",
    "ImportExecutionSummary",
    "ImportJobDetail",
    "ImportJobSummary",
    "ImportMappingResponse",
    "ImportMapRequest",
    "ImportUploadResponse",
    "ManualMatchesIn",
    "MappingEntryIn",
    "SuggestedMappingOut",
]
