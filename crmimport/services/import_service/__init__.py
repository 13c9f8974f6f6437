"""Import service package for parsing spreadsheets and reconciling CRM records."""

from .constants import (
    FIELD_CATALOG,
    HEADER_ALIASES,
    OPPORTUNITY_FIELDS,
    FieldDefinition,
    OpportunityImportField,
    get_field_catalog,
    get_required_fields,
)
from .errors import (
    BadMappingError,
    FileTooLargeError,
    ImportConfigurationError,
    ImportInProgressError,
    ImportNotFoundError,
    ImportServiceError,
    RowError,
    SpreadsheetParseError,
    StoredFileMissingError,
    StoreUnavailableError,
    UploadRejectedError,
)
from .mapping import (
    MappingEntry,
    SuggestedMapping,
    calculate_similarity,
    suggest_column_mapping,
    suggest_field_mappings,
    validate_mapping,
)
from .parsers import ParsedSheet, parse_csv, parse_spreadsheet, parse_xlsx
from .processor import ExecutionOptions, RowProcessor, fold_rows, run_rows
from .resolver import ManualMatches, ResolutionContext
from .results import ImportSummary, RowOutcome, RowResult
from .store import (
    BeanieImportJobStore,
    BeanieRecordStore,
    ImportJobStore,
    RecordStore,
)

__all__ = [
    # Constants
    "FIELD_CATALOG",
    "HEADER_ALIASES",
    "OPPORTUNITY_FIELDS",
    "FieldDefinition",
    "OpportunityImportField",
    "get_field_catalog",
    "get_required_fields",
    # Errors
    "BadMappingError",
    "FileTooLargeError",
    "ImportConfigurationError",
    "ImportInProgressError",
    "ImportNotFoundError",
    "ImportServiceError",
    "RowError",
    "SpreadsheetParseError",
    "StoredFileMissingError",
    "StoreUnavailableError",
    "UploadRejectedError",
    # Parsers
    "ParsedSheet",
    "parse_csv",
    "parse_xlsx",
    "parse_spreadsheet",
    # Mapping
    "MappingEntry",
    "SuggestedMapping",
    "calculate_similarity",
    "suggest_column_mapping",
    "suggest_field_mappings",
    "validate_mapping",
    # Execution
    "ExecutionOptions",
    "ManualMatches",
    "ResolutionContext",
    "RowProcessor",
    "fold_rows",
    "run_rows",
    "ImportSummary",
    "RowOutcome",
    "RowResult",
    # Stores
    "BeanieImportJobStore",
    "BeanieRecordStore",
    "ImportJobStore",
    "RecordStore",
]
