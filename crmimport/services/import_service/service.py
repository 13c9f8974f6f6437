"""Upload, mapping and execution workflow for spreadsheet imports."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

from crmimport.config import settings
from crmimport.models import ImportJob, ImportStatus, ImportType, StoredFieldMapping
from crmimport.services.file_storage import ImportFileStorage, sanitize_filename

from .constants import FieldDefinition, get_field_catalog
from .errors import (
    FileTooLargeError,
    ImportConfigurationError,
    ImportInProgressError,
    ImportNotFoundError,
    SpreadsheetParseError,
    UploadRejectedError,
)
from .mapping import MappingEntry, SuggestedMapping, suggest_column_mapping, validate_mapping
from .parsers import parse_spreadsheet
from .processor import ExecutionOptions, RowProcessor, fold_rows
from .results import ImportSummary
from .store import ImportJobStore, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """What the client needs to build the mapping step after an upload."""

    job: ImportJob
    columns: list[str]
    sample_rows: list[dict[str, str]]
    total_rows: int
    available_fields: list[FieldDefinition]
    suggested_mappings: list[SuggestedMapping] = field(default_factory=list)


class ImportService:
    """Drives an import job through upload, mapping and execution."""

    def __init__(
        self,
        job_store: ImportJobStore,
        record_store: RecordStore,
        file_storage: ImportFileStorage,
        error_limit: int | None = None,
        sample_rows: int | None = None,
        min_confidence: float | None = None,
        max_upload_bytes: int | None = None,
        allowed_extensions: Iterable[str] | None = None,
        default_stage: str | None = None,
    ) -> None:
        self.job_store = job_store
        self.record_store = record_store
        self.file_storage = file_storage
        self.error_limit = error_limit if error_limit is not None else settings.import_error_limit
        self.sample_rows = sample_rows if sample_rows is not None else settings.import_sample_rows
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.suggestion_min_confidence
        )
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_size_bytes
        self.allowed_extensions = {
            ext.lower().lstrip(".")
            for ext in (allowed_extensions or settings.allowed_extensions)
        }
        self.default_stage = default_stage or settings.default_stage

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    def _validate_upload(self, filename: str | None, size: int) -> str:
        """Check extension and size, returning the normalized extension."""
        ext = Path(filename or "").suffix.lower().lstrip(".")
        if ext not in self.allowed_extensions:
            allowed = ", ".join(f".{e}" for e in sorted(self.allowed_extensions))
            raise UploadRejectedError(f"Unsupported file type. Allowed: {allowed}")
        if size == 0:
            raise UploadRejectedError("The uploaded file is empty.")
        if size > self.max_upload_bytes:
            max_mb = self.max_upload_bytes / (1024 * 1024)
            raise FileTooLargeError(f"File too large. Maximum size is {max_mb:.0f}MB.")
        return ext

    async def upload(
        self, import_type: ImportType, filename: str | None, content: bytes
    ) -> UploadResult:
        """Validate, parse and store an uploaded spreadsheet as a new PENDING job.

        Raises:
            UploadRejectedError: If the file type or size is not accepted.
            SpreadsheetParseError: If the file cannot be parsed or has no headers.
        """
        ext = self._validate_upload(filename, len(content))
        sheet = parse_spreadsheet(content, ext)
        if not sheet.headers:
            raise SpreadsheetParseError("The uploaded file does not contain a header row.")

        storage_name = await self.file_storage.write(content, ext)
        job = await self.job_store.create(
            import_type=import_type,
            filename=sanitize_filename(filename),
            file_type=ext,
            storage_name=storage_name,
            total_rows=len(sheet.rows),
        )
        logger.info(
            "Created %s import %s from %s (%d rows, %d columns)",
            import_type.value, job.id, job.filename, len(sheet.rows), len(sheet.headers),
        )

        return UploadResult(
            job=job,
            columns=sheet.headers,
            sample_rows=sheet.rows[: self.sample_rows],
            total_rows=len(sheet.rows),
            available_fields=get_field_catalog(import_type),
            suggested_mappings=suggest_column_mapping(
                sheet.headers, import_type, self.min_confidence
            ),
        )

    # -------------------------------------------------------------------------
    # Jobs and mapping
    # -------------------------------------------------------------------------

    async def list_jobs(self, import_type: ImportType, limit: int | None = None) -> list[ImportJob]:
        return await self.job_store.list_recent(import_type, limit or settings.recent_jobs_limit)

    async def get_job(self, import_type: ImportType, job_id: str) -> ImportJob:
        """Fetch a job of the given type.

        Raises:
            ImportNotFoundError: If no such job exists.
        """
        job = await self.job_store.get(job_id, import_type)
        if job is None:
            raise ImportNotFoundError("Import not found")
        return job

    async def _read_sheet(self, job: ImportJob):
        content = await self.file_storage.read(job.storage_name)
        return parse_spreadsheet(content, job.file_type)

    async def save_mapping(
        self,
        import_type: ImportType,
        job_id: str,
        entries: Iterable[MappingEntry],
        ignored_columns: list[str] | None = None,
    ) -> ImportJob:
        """Validate a mapping against the stored file's headers and attach it.

        The job status is left untouched; submitting again replaces the
        previous mapping.

        Raises:
            ImportNotFoundError: If the job does not exist.
            BadMappingError: If the mapping is invalid.
        """
        job = await self.get_job(import_type, job_id)
        sheet = await self._read_sheet(job)
        fields = validate_mapping(sheet.headers, entries, import_type)

        mapping = StoredFieldMapping(fields=fields, ignored_columns=list(ignored_columns or []))
        job = await self.job_store.save_mapping(job, mapping)
        logger.info("Saved mapping for import %s (%d fields)", job.id, len(fields))
        return job

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _validate_options(self, options: ExecutionOptions) -> None:
        """Check job-level defaults and manual matches before any row runs."""
        store = self.record_store

        if options.default_customer_id and not await store.customer_exists(
            options.default_customer_id
        ):
            raise ImportConfigurationError(
                "Default customer ID provided does not match an existing customer."
            )

        if options.default_owner_email and not await store.find_user_id_by_email(
            options.default_owner_email.strip().lower()
        ):
            raise ImportConfigurationError(
                "Default owner email provided does not match an existing user."
            )

        for value, customer_id in options.manual_matches.customers.items():
            if not await store.customer_exists(customer_id):
                raise ImportConfigurationError(
                    f'Manual match for customer "{value}" does not match an existing customer.'
                )

        for value, user_id in options.manual_matches.owners.items():
            if not await store.user_exists(user_id):
                raise ImportConfigurationError(
                    f'Manual match for owner "{value}" does not match an existing user.'
                )

    async def execute(
        self,
        import_type: ImportType,
        job_id: str,
        options: ExecutionOptions | None = None,
    ) -> ImportSummary:
        """Run every row of a mapped job and record the outcome.

        Row failures are counted and itemized but never abort the run; the
        job ends COMPLETED. A systemic error marks the job FAILED with the
        partial counters and is re-raised.

        Raises:
            ImportNotFoundError: If the job does not exist.
            ImportConfigurationError: If the job has no mapping or a job-level
                default or manual match does not resolve.
            ImportInProgressError: If the job is already running.
        """
        options = options or ExecutionOptions()
        if not options.default_stage:
            options = replace(options, default_stage=self.default_stage)

        job = await self.get_job(import_type, job_id)
        if job.field_mapping is None or not job.field_mapping.fields:
            raise ImportConfigurationError(
                "Field mappings must be configured before executing the import."
            )
        if job.status == ImportStatus.PROCESSING:
            raise ImportInProgressError(f"Import '{job.id}' is already being processed.")

        try:
            await self._validate_options(options)
        except ImportConfigurationError as e:
            logger.warning("Rejected execution of import %s: %s", job.id, e)
            raise

        sheet = await self._read_sheet(job)
        job = await self.job_store.begin_processing(job)
        logger.info(
            "Executing import %s (%d rows, update_existing=%s)",
            job.id, len(sheet.rows), options.update_existing,
        )

        processor = RowProcessor(self.record_store, dict(job.field_mapping.fields), options)
        summary = ImportSummary(import_id=str(job.id), total_rows=len(sheet.rows))

        try:
            async for summary in fold_rows(processor, sheet.rows, summary, self.error_limit):
                pass
        except BaseException:
            logger.error(
                "Import %s failed after %d rows", job.id,
                summary.processed_rows + summary.skipped_count + summary.failed_count,
                exc_info=True,
            )
            try:
                await self.job_store.finish(job, ImportStatus.FAILED, summary)
            except Exception:
                logger.exception("Could not mark import %s as failed", job.id)
            raise

        await self.job_store.finish(job, ImportStatus.COMPLETED, summary)
        logger.info(
            "Import %s completed: %d created, %d updated, %d skipped, %d failed",
            job.id, summary.created_count, summary.updated_count,
            summary.skipped_count, summary.failed_count,
        )
        return summary
