"""Exceptions raised by the import pipeline."""


class ImportServiceError(Exception):
    """Base class for import pipeline errors."""

    pass


class UploadRejectedError(ImportServiceError):
    """Raised when an uploaded file fails type or size constraints."""

    pass


class FileTooLargeError(UploadRejectedError):
    """Raised when an uploaded file exceeds the configured size limit."""

    pass


class SpreadsheetParseError(ImportServiceError):
    """Raised when a spreadsheet cannot be parsed or has no header row."""

    pass


class BadMappingError(ImportServiceError):
    """Raised when a submitted column mapping is invalid."""

    pass


class ImportConfigurationError(ImportServiceError):
    """Raised when job-level options are invalid before any row runs."""

    pass


class ImportNotFoundError(ImportServiceError):
    """Raised when an import job does not exist for the given type."""

    pass


class StoredFileMissingError(ImportServiceError):
    """Raised when the stored upload for a job cannot be read."""

    pass


class ImportInProgressError(ImportServiceError):
    """Raised when execute is called on a job that is already processing."""

    pass


class StoreUnavailableError(ImportServiceError):
    """Raised when the record store cannot be reached.

    This is a systemic failure: it aborts the run and marks the job FAILED.
    """

    pass


class RowError(ImportServiceError):
    """A data problem confined to a single row.

    Caught at the row boundary, counted, and itemized in the job errors.
    """

    pass
