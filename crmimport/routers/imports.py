"""Import endpoints for spreadsheet-driven CRM imports."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from crmimport.config import settings
from crmimport.models import ImportJob, ImportType
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
    SuggestedMappingOut,
)
from crmimport.services import ImportFileStorage, ImportService
from crmimport.services.import_service import (
    BadMappingError,
    BeanieImportJobStore,
    BeanieRecordStore,
    ExecutionOptions,
    FieldDefinition,
    FileTooLargeError,
    ImportConfigurationError,
    ImportInProgressError,
    ImportNotFoundError,
    ImportServiceError,
    ManualMatches,
    MappingEntry,
    SpreadsheetParseError,
    StoredFileMissingError,
    StoreUnavailableError,
    UploadRejectedError,
    get_field_catalog,
)

logger = logging.getLogger(__name__)

router = APIRouter()

limiter = Limiter(key_func=get_remote_address)

UPLOAD_CHUNK_SIZE = 64 * 1024


def get_import_service() -> ImportService:
    """Build the import service for one request."""
    return ImportService(
        job_store=BeanieImportJobStore(),
        record_store=BeanieRecordStore(),
        file_storage=ImportFileStorage(),
    )


ImportServiceDep = Annotated[ImportService, Depends(get_import_service)]


def _http_error(error: ImportServiceError) -> HTTPException:
    """Translate an import error into the matching HTTP response."""
    if isinstance(error, (ImportNotFoundError, StoredFileMissingError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, FileTooLargeError):
        code = status.HTTP_413_CONTENT_TOO_LARGE
    elif isinstance(error, ImportInProgressError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, StoreUnavailableError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(
        error,
        (UploadRejectedError, SpreadsheetParseError, BadMappingError, ImportConfigurationError),
    ):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))


def _fields_out(fields: list[FieldDefinition]) -> list[FieldDefinitionOut]:
    return [
        FieldDefinitionOut(
            key=f.key, label=f.label, description=f.description, required=f.required
        )
        for f in fields
    ]


def _job_summary(job: ImportJob) -> ImportJobSummary:
    return ImportJobSummary(
        id=str(job.id),
        import_type=job.import_type,
        filename=job.filename,
        status=job.status.value,
        total_rows=job.total_rows,
        success_count=job.success_count,
        failure_count=job.failure_count,
        created_count=job.created_count,
        updated_count=job.updated_count,
        skipped_count=job.skipped_count,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


async def _read_upload(file: UploadFile, limit: int) -> bytes:
    """Read an upload in chunks, stopping just past ``limit`` bytes."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        chunks.append(chunk)
        if total_size > limit:
            break
    return b"".join(chunks)


@router.post("/{import_type}/upload", response_model=ImportUploadResponse)
@limiter.limit(lambda: f"{settings.rate_limit_per_minute}/minute")
async def upload_spreadsheet(
    request: Request,
    import_type: ImportType,
    service: ImportServiceDep,
    file: UploadFile = File(..., description="CSV or XLSX spreadsheet"),
) -> ImportUploadResponse:
    """Upload a spreadsheet and get its columns, samples and suggested mapping."""
    content = await _read_upload(file, service.max_upload_bytes)

    try:
        result = await service.upload(import_type, file.filename, content)
    except ImportServiceError as e:
        raise _http_error(e)

    return ImportUploadResponse(
        job_id=str(result.job.id),
        filename=result.job.filename,
        columns=result.columns,
        sample_rows=result.sample_rows,
        total_rows=result.total_rows,
        available_fields=_fields_out(result.available_fields),
        suggested_mappings=[
            SuggestedMappingOut(
                source_column=s.source_column,
                target_field=s.target_field,
                confidence=s.confidence,
            )
            for s in result.suggested_mappings
        ],
    )


@router.get("/{import_type}", response_model=list[ImportJobSummary])
async def list_imports(
    import_type: ImportType,
    service: ImportServiceDep,
) -> list[ImportJobSummary]:
    """List recent import jobs, newest first."""
    try:
        jobs = await service.list_jobs(import_type)
    except ImportServiceError as e:
        raise _http_error(e)
    return [_job_summary(job) for job in jobs]


@router.get("/{import_type}/{job_id}", response_model=ImportJobDetail)
async def get_import(
    import_type: ImportType,
    job_id: str,
    service: ImportServiceDep,
) -> ImportJobDetail:
    """Get an import job with its mapping, errors and the field catalog."""
    try:
        job = await service.get_job(import_type, job_id)
    except ImportServiceError as e:
        raise _http_error(e)

    summary = _job_summary(job)
    mapping = job.field_mapping
    return ImportJobDetail(
        **summary.model_dump(),
        field_mapping=dict(mapping.fields) if mapping else None,
        ignored_columns=list(mapping.ignored_columns) if mapping else [],
        errors=[ImportErrorOut(row=e.row, message=e.message) for e in job.errors],
        available_fields=_fields_out(get_field_catalog(import_type)),
    )


@router.post("/{import_type}/{job_id}/map", response_model=ImportMappingResponse)
async def save_import_mapping(
    import_type: ImportType,
    job_id: str,
    request: ImportMapRequest,
    service: ImportServiceDep,
) -> ImportMappingResponse:
    """Validate and store the column mapping for an import job."""
    entries = [
        MappingEntry(source_column=m.source_column, target_field=m.target_field)
        for m in request.mappings
    ]
    try:
        job = await service.save_mapping(import_type, job_id, entries, request.ignored_columns)
    except ImportServiceError as e:
        raise _http_error(e)

    return ImportMappingResponse(
        id=str(job.id),
        field_mapping=dict(job.field_mapping.fields),
        ignored_columns=list(job.field_mapping.ignored_columns),
    )


@router.post("/{import_type}/{job_id}/execute", response_model=ImportExecutionSummary)
async def execute_import(
    import_type: ImportType,
    job_id: str,
    service: ImportServiceDep,
    request: ImportExecuteRequest | None = None,
) -> ImportExecutionSummary:
    """Run a mapped import job and return its summary.

    Row-level failures are reported in the summary; the call itself only
    fails for configuration problems or when the store is unavailable.
    """
    opts = request or ImportExecuteRequest()
    manual = opts.manual_matches
    options = ExecutionOptions(
        update_existing=opts.update_existing,
        default_owner_email=opts.default_owner_email or None,
        default_customer_id=opts.default_customer_id or None,
        default_stage=opts.default_stage or None,
        manual_matches=ManualMatches(
            customers=dict(manual.customers) if manual else {},
            owners=dict(manual.owners) if manual else {},
        ),
    )

    try:
        summary = await service.execute(import_type, job_id, options)
    except ImportServiceError as e:
        raise _http_error(e)

    return ImportExecutionSummary(
        import_id=summary.import_id,
        total_rows=summary.total_rows,
        processed_rows=summary.processed_rows,
        created_count=summary.created_count,
        updated_count=summary.updated_count,
        skipped_count=summary.skipped_count,
        failed_count=summary.failed_count,
        errors=[ImportErrorOut(row=e.row, message=e.message) for e in summary.errors],
    )
