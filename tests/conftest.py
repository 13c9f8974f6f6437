"""Pytest configuration and fixtures for crmimport tests.

The import engine runs against in-memory stores. The Beanie store tests use
a real MongoDB and are skipped when none is reachable.
"""

import os
import uuid
from collections import Counter
from collections.abc import AsyncGenerator
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ServerSelectionTimeoutError

from crmimport.database import get_document_models
from crmimport.models import ImportErrorEntry, ImportStatus, ImportType, StoredFieldMapping
from crmimport.services import ImportFileStorage, ImportService
from crmimport.services.import_service import ImportInProgressError, ImportJobStore, RecordStore
from crmimport.services.import_service.results import ImportSummary
from crmimport.services.import_service.store import ContactData, LeadData, OpportunityData


# MongoDB connection URL for tests (can be overridden with env var)
TEST_MONGODB_URL = os.environ.get("TEST_MONGODB_URL", "mongodb://localhost:27017")


def _new_id() -> str:
    return uuid.uuid4().hex[:24]


# =============================================================================
# In-memory record store
# =============================================================================


class FakeRecordStore(RecordStore):
    """RecordStore keeping records in dicts, with undo support and fault hooks.

    ``failures`` maps a method name to an exception raised whenever it is
    called; ``fail_once`` entries are raised on the next call only.
    ``lookups`` counts store reads per method name.
    """

    def __init__(self) -> None:
        super().__init__()
        self.contacts: dict[str, dict[str, Any]] = {}
        self.customers: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.leads: dict[str, dict[str, Any]] = {}
        self.opportunities: dict[str, dict[str, Any]] = {}
        self.failures: dict[str, Exception] = {}
        self.fail_once: dict[str, Exception] = {}
        self.lookups: Counter = Counter()

    # Seeding helpers

    def add_customer(self, name: str, email: str | None = None) -> str:
        customer_id = _new_id()
        self.customers[customer_id] = {"name": name, "email": email.lower() if email else None}
        return customer_id

    def add_user(self, email: str, full_name: str = "") -> str:
        user_id = _new_id()
        self.users[user_id] = {"email": email.lower(), "full_name": full_name}
        return user_id

    # Internals

    def _check(self, operation: str) -> None:
        if operation in self.fail_once:
            raise self.fail_once.pop(operation)
        if operation in self.failures:
            raise self.failures[operation]

    def _insert(self, table: dict[str, dict[str, Any]], record: dict[str, Any]) -> str:
        record_id = _new_id()
        table[record_id] = record

        async def undo() -> None:
            table.pop(record_id, None)

        self._register_undo(undo)
        return record_id

    def _update(self, table: dict[str, dict[str, Any]], record_id: str, changes: dict[str, Any]) -> None:
        previous = dict(table[record_id])
        table[record_id].update(changes)

        async def undo() -> None:
            table[record_id] = previous

        self._register_undo(undo)

    @staticmethod
    def _first(table: dict[str, dict[str, Any]], **criteria: Any) -> str | None:
        for record_id, record in table.items():
            if all(record.get(k) == v for k, v in criteria.items()):
                return record_id
        return None

    @staticmethod
    def _first_ci(table: dict[str, dict[str, Any]], key: str, value: str, **criteria: Any) -> str | None:
        for record_id, record in table.items():
            if (record.get(key) or "").lower() != value.strip().lower():
                continue
            if all(record.get(k) == v for k, v in criteria.items()):
                return record_id
        return None

    # RecordStore

    async def find_customer_id_by_email(self, email: str) -> str | None:
        self._check("find_customer_id_by_email")
        self.lookups["customer_email"] += 1
        return self._first(self.customers, email=email.strip().lower())

    async def find_customer_id_by_name(self, name: str) -> str | None:
        self._check("find_customer_id_by_name")
        self.lookups["customer_name"] += 1
        return self._first_ci(self.customers, "name", name)

    async def customer_exists(self, customer_id: str) -> bool:
        return customer_id in self.customers

    async def find_user_id_by_email(self, email: str) -> str | None:
        self._check("find_user_id_by_email")
        self.lookups["user_email"] += 1
        return self._first(self.users, email=email.strip().lower())

    async def user_exists(self, user_id: str) -> bool:
        return user_id in self.users

    async def find_contact_id_by_email(self, email: str) -> str | None:
        self._check("find_contact_id_by_email")
        self.lookups["contact_email"] += 1
        return self._first(self.contacts, email=email.strip().lower())

    async def create_contact(self, data: ContactData) -> str:
        self._check("create_contact")
        return self._insert(self.contacts, asdict(data))

    async def find_lead_id(self, title: str, contact_email: str) -> str | None:
        self._check("find_lead_id")
        self.lookups["lead"] += 1
        contact_id = self._first(self.contacts, email=contact_email.strip().lower())
        if contact_id is None:
            return None
        return self._first_ci(self.leads, "title", title, contact_id=contact_id)

    async def create_lead(self, data: LeadData) -> str:
        self._check("create_lead")
        return self._insert(self.leads, {**asdict(data), "source": "Import"})

    async def update_lead(self, lead_id: str, data: LeadData) -> None:
        self._check("update_lead")
        changes = {"title": data.title, "status": data.status, "assigned_to_id": data.assigned_to_id}
        if data.description is not None:
            changes["description"] = data.description
        self._update(self.leads, lead_id, changes)

    async def find_opportunity_id(self, lead_id: str, title: str) -> str | None:
        self._check("find_opportunity_id")
        self.lookups["opportunity"] += 1
        return self._first_ci(self.opportunities, "title", title, lead_id=lead_id)

    async def create_opportunity(self, data: OpportunityData) -> str:
        self._check("create_opportunity")
        return self._insert(self.opportunities, asdict(data))

    async def update_opportunity(self, opportunity_id: str, data: OpportunityData) -> None:
        self._check("update_opportunity")
        changes = asdict(data)
        for key in ("description", "job_description_url"):
            if changes[key] is None:
                del changes[key]
        self._update(self.opportunities, opportunity_id, changes)


# =============================================================================
# In-memory job store
# =============================================================================


@dataclass
class FakeJob:
    """Stand-in for the ImportJob document with the same attributes."""

    import_type: str
    filename: str
    file_type: str
    storage_name: str
    total_rows: int = 0
    id: str = field(default_factory=_new_id)
    field_mapping: StoredFieldMapping | None = None
    status: ImportStatus = ImportStatus.PENDING
    success_count: int = 0
    failure_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    errors: list[ImportErrorEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None


class FakeImportJobStore(ImportJobStore):
    def __init__(self) -> None:
        self.jobs: dict[str, FakeJob] = {}

    async def create(self, import_type, filename, file_type, storage_name, total_rows):
        job = FakeJob(
            import_type=import_type.value,
            filename=filename,
            file_type=file_type,
            storage_name=storage_name,
            total_rows=total_rows,
        )
        self.jobs[job.id] = job
        return job

    async def get(self, job_id: str, import_type: ImportType):
        job = self.jobs.get(job_id)
        if job is None or job.import_type != import_type.value:
            return None
        return job

    async def list_recent(self, import_type: ImportType, limit: int):
        jobs = [j for j in self.jobs.values() if j.import_type == import_type.value]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def save_mapping(self, job, mapping: StoredFieldMapping):
        job.field_mapping = mapping
        return job

    async def begin_processing(self, job):
        if job.status == ImportStatus.PROCESSING:
            raise ImportInProgressError(f"Import '{job.id}' is already being processed.")
        job.status = ImportStatus.PROCESSING
        job.started_at = datetime.now(timezone.utc)
        job.completed_at = None
        job.success_count = job.failure_count = 0
        job.created_count = job.updated_count = job.skipped_count = 0
        job.errors = []
        return job

    async def finish(self, job, status: ImportStatus, summary: ImportSummary):
        job.status = status
        job.completed_at = datetime.now(timezone.utc)
        job.total_rows = summary.total_rows
        job.success_count = summary.success_count
        job.failure_count = summary.failed_count
        job.created_count = summary.created_count
        job.updated_count = summary.updated_count
        job.skipped_count = summary.skipped_count
        job.errors = list(summary.errors)
        return job


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def job_store() -> FakeImportJobStore:
    return FakeImportJobStore()


@pytest.fixture
def file_storage(tmp_path) -> ImportFileStorage:
    return ImportFileStorage(tmp_path / "imports")


@pytest.fixture
def import_service(job_store, record_store, file_storage) -> ImportService:
    return ImportService(
        job_store=job_store,
        record_store=record_store,
        file_storage=file_storage,
        error_limit=50,
        sample_rows=5,
        min_confidence=0.3,
        max_upload_bytes=10 * 1024 * 1024,
        allowed_extensions=["csv", "xlsx"],
        default_stage="Qualification",
    )


@pytest_asyncio.fixture
async def client(import_service) -> AsyncGenerator[AsyncClient, None]:
    """Async client for the app with the import service backed by fakes."""
    from crmimport.main import app
    from crmimport.routers.imports import get_import_service

    app.dependency_overrides[get_import_service] = lambda: import_service
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_import_service, None)


# =============================================================================
# MongoDB
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def mongo_client() -> AsyncGenerator[AsyncIOMotorClient, None]:
    """Create a MongoDB client for testing, skipping if the server is down."""
    client = AsyncIOMotorClient(
        TEST_MONGODB_URL,
        maxPoolSize=10,
        minPoolSize=1,
        serverSelectionTimeoutMS=2000,
    )
    try:
        await client.admin.command("ping")
    except ServerSelectionTimeoutError:
        client.close()
        pytest.skip(f"MongoDB not reachable at {TEST_MONGODB_URL}")
    yield client
    client.close()


@pytest_asyncio.fixture(scope="function")
async def init_test_db(mongo_client):
    """Initialize Beanie with a unique test database, dropped afterwards."""
    db_name = f"test_crmimport_{uuid.uuid4().hex[:8]}"
    db = mongo_client[db_name]

    await init_beanie(
        database=db,
        document_models=get_document_models(),
    )
    yield db

    await mongo_client.drop_database(db_name)
