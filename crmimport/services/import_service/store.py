"""Record store interfaces used by the import pipeline, with Beanie backends.

The executor only ever deals in string ids and natural keys; how records are
looked up and written is the store's concern. Each row runs inside
``RecordStore.unit_of_work()``: writes register undo actions which are
replayed in reverse if the row fails, so a failed row leaves nothing behind.
"""

import functools
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from beanie import PydanticObjectId
from bson import Decimal128
from bson.errors import InvalidId
from pymongo.errors import ConnectionFailure

from crmimport.models import (
    Contact,
    Customer,
    ImportJob,
    ImportStatus,
    ImportType,
    Lead,
    LeadStatus,
    Opportunity,
    OpportunityType,
    StoredFieldMapping,
    User,
)

from .constants import LEAD_SOURCE
from .errors import ImportInProgressError, StoreUnavailableError
from .results import ImportSummary

logger = logging.getLogger(__name__)

UndoAction = Callable[[], Awaitable[None]]


@dataclass
class ContactData:
    email: str
    first_name: str
    last_name: str
    phone: str | None = None


@dataclass
class LeadData:
    """Lead write payload. ``description=None`` leaves it unchanged on update."""

    title: str
    status: LeadStatus
    contact_id: str
    assigned_to_id: str | None = None
    description: str | None = None


@dataclass
class OpportunityData:
    """Opportunity write payload.

    On update, ``customer_id``/``assigned_to_id`` of None disassociate the
    reference, while None ``description``/``job_description_url`` keep the
    stored value.
    """

    title: str
    type: OpportunityType
    value: Decimal
    stage: str
    lead_id: str
    is_closed: bool = False
    is_won: bool = False
    description: str | None = None
    job_description_url: str | None = None
    customer_id: str | None = None
    assigned_to_id: str | None = None


class RecordStore(ABC):
    """Natural-key lookups and writes for the CRM entities an import touches."""

    def __init__(self) -> None:
        self._undo_actions: list[UndoAction] | None = None

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        """Group the writes of one row; undo them all if the block raises."""
        if self._undo_actions is not None:
            raise RuntimeError("unit_of_work() cannot be nested")
        self._undo_actions = []
        try:
            yield
        except BaseException:
            actions, self._undo_actions = self._undo_actions, None
            await self._rollback(actions)
            raise
        else:
            self._undo_actions = None

    def _register_undo(self, action: UndoAction) -> None:
        if self._undo_actions is not None:
            self._undo_actions.append(action)

    async def _rollback(self, actions: list[UndoAction]) -> None:
        for action in reversed(actions):
            try:
                await action()
            except Exception:
                logger.exception("Failed to undo a partial row write")

    @abstractmethod
    async def find_customer_id_by_email(self, email: str) -> str | None: ...

    @abstractmethod
    async def find_customer_id_by_name(self, name: str) -> str | None: ...

    @abstractmethod
    async def customer_exists(self, customer_id: str) -> bool: ...

    @abstractmethod
    async def find_user_id_by_email(self, email: str) -> str | None: ...

    @abstractmethod
    async def user_exists(self, user_id: str) -> bool: ...

    @abstractmethod
    async def find_contact_id_by_email(self, email: str) -> str | None: ...

    @abstractmethod
    async def create_contact(self, data: ContactData) -> str: ...

    @abstractmethod
    async def find_lead_id(self, title: str, contact_email: str) -> str | None: ...

    @abstractmethod
    async def create_lead(self, data: LeadData) -> str: ...

    @abstractmethod
    async def update_lead(self, lead_id: str, data: LeadData) -> None: ...

    @abstractmethod
    async def find_opportunity_id(self, lead_id: str, title: str) -> str | None: ...

    @abstractmethod
    async def create_opportunity(self, data: OpportunityData) -> str: ...

    @abstractmethod
    async def update_opportunity(self, opportunity_id: str, data: OpportunityData) -> None: ...


class ImportJobStore(ABC):
    """Persistence for ImportJob records."""

    @abstractmethod
    async def create(
        self,
        import_type: ImportType,
        filename: str,
        file_type: str,
        storage_name: str,
        total_rows: int,
    ) -> ImportJob: ...

    @abstractmethod
    async def get(self, job_id: str, import_type: ImportType) -> ImportJob | None: ...

    @abstractmethod
    async def list_recent(self, import_type: ImportType, limit: int) -> list[ImportJob]: ...

    @abstractmethod
    async def save_mapping(self, job: ImportJob, mapping: StoredFieldMapping) -> ImportJob: ...

    @abstractmethod
    async def begin_processing(self, job: ImportJob) -> ImportJob:
        """Move the job to PROCESSING, resetting counters.

        Raises:
            ImportInProgressError: If the job is already PROCESSING.
        """

    @abstractmethod
    async def finish(
        self, job: ImportJob, status: ImportStatus, summary: ImportSummary
    ) -> ImportJob: ...


# =============================================================================
# Beanie implementations
# =============================================================================


def _translate_driver_errors(func):
    """Re-raise driver connectivity failures as StoreUnavailableError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except ConnectionFailure as e:
            raise StoreUnavailableError(f"Record store unavailable: {e}") from e

    return wrapper


def _object_id(value: str | None) -> PydanticObjectId | None:
    if value is None:
        return None
    return PydanticObjectId(value)


def _iexact(value: str) -> dict[str, Any]:
    """Case-insensitive exact-match filter."""
    return {"$regex": f"^{re.escape(value.strip())}$", "$options": "i"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BeanieRecordStore(RecordStore):
    """RecordStore backed by the Beanie CRM documents.

    Lookups read only ``_id`` straight from the collection; writes go through
    the documents so field validation and encoding still apply.
    """

    @staticmethod
    async def _find_id(document: type, query: dict[str, Any]) -> str | None:
        raw = await document.get_motor_collection().find_one(query, projection={"_id": 1})
        return str(raw["_id"]) if raw else None

    @staticmethod
    async def _exists(document: type, record_id: str) -> bool:
        try:
            oid = PydanticObjectId(record_id)
        except (InvalidId, TypeError):
            return False
        raw = await document.get_motor_collection().find_one({"_id": oid}, projection={"_id": 1})
        return raw is not None

    def _undo_insert(self, document: type, oid: PydanticObjectId) -> None:
        async def undo() -> None:
            await document.get_motor_collection().delete_one({"_id": oid})

        self._register_undo(undo)

    async def _update_with_undo(
        self, document: type, oid: PydanticObjectId, changes: dict[str, Any]
    ) -> None:
        collection = document.get_motor_collection()
        previous = await collection.find_one({"_id": oid})
        await collection.update_one({"_id": oid}, {"$set": changes})

        if previous is not None:
            async def undo() -> None:
                await collection.replace_one({"_id": oid}, previous)

            self._register_undo(undo)

    @_translate_driver_errors
    async def find_customer_id_by_email(self, email: str) -> str | None:
        return await self._find_id(Customer, {"email": _iexact(email)})

    @_translate_driver_errors
    async def find_customer_id_by_name(self, name: str) -> str | None:
        return await self._find_id(Customer, {"name": _iexact(name)})

    @_translate_driver_errors
    async def customer_exists(self, customer_id: str) -> bool:
        return await self._exists(Customer, customer_id)

    @_translate_driver_errors
    async def find_user_id_by_email(self, email: str) -> str | None:
        return await self._find_id(User, {"email": _iexact(email)})

    @_translate_driver_errors
    async def user_exists(self, user_id: str) -> bool:
        return await self._exists(User, user_id)

    @_translate_driver_errors
    async def find_contact_id_by_email(self, email: str) -> str | None:
        return await self._find_id(Contact, {"email": email.strip().lower()})

    @_translate_driver_errors
    async def create_contact(self, data: ContactData) -> str:
        contact = Contact(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
        )
        await contact.insert()
        self._undo_insert(Contact, contact.id)
        return str(contact.id)

    @_translate_driver_errors
    async def find_lead_id(self, title: str, contact_email: str) -> str | None:
        contact_id = await self._find_id(Contact, {"email": contact_email.strip().lower()})
        if contact_id is None:
            return None
        return await self._find_id(
            Lead,
            {"contact_id": PydanticObjectId(contact_id), "title": _iexact(title)},
        )

    @_translate_driver_errors
    async def create_lead(self, data: LeadData) -> str:
        lead = Lead(
            title=data.title,
            description=data.description,
            status=data.status,
            contact_id=_object_id(data.contact_id),
            assigned_to_id=_object_id(data.assigned_to_id),
            source=LEAD_SOURCE,
        )
        await lead.insert()
        self._undo_insert(Lead, lead.id)
        return str(lead.id)

    @_translate_driver_errors
    async def update_lead(self, lead_id: str, data: LeadData) -> None:
        changes: dict[str, Any] = {
            "title": data.title,
            "status": data.status.value,
            "assigned_to_id": _object_id(data.assigned_to_id),
            "updated_at": _utcnow(),
        }
        if data.description is not None:
            changes["description"] = data.description
        await self._update_with_undo(Lead, PydanticObjectId(lead_id), changes)

    @_translate_driver_errors
    async def find_opportunity_id(self, lead_id: str, title: str) -> str | None:
        return await self._find_id(
            Opportunity,
            {"lead_id": PydanticObjectId(lead_id), "title": _iexact(title)},
        )

    @_translate_driver_errors
    async def create_opportunity(self, data: OpportunityData) -> str:
        opportunity = Opportunity(
            title=data.title,
            description=data.description,
            type=data.type,
            value=data.value,
            stage=data.stage,
            is_closed=data.is_closed,
            is_won=data.is_won,
            job_description_url=data.job_description_url,
            lead_id=_object_id(data.lead_id),
            customer_id=_object_id(data.customer_id),
            assigned_to_id=_object_id(data.assigned_to_id),
        )
        await opportunity.insert()
        self._undo_insert(Opportunity, opportunity.id)
        return str(opportunity.id)

    @_translate_driver_errors
    async def update_opportunity(self, opportunity_id: str, data: OpportunityData) -> None:
        changes: dict[str, Any] = {
            "title": data.title,
            "type": data.type.value,
            "value": Decimal128(data.value),
            "stage": data.stage,
            "is_closed": data.is_closed,
            "is_won": data.is_won,
            "customer_id": _object_id(data.customer_id),
            "assigned_to_id": _object_id(data.assigned_to_id),
            "updated_at": _utcnow(),
        }
        if data.description is not None:
            changes["description"] = data.description
        if data.job_description_url is not None:
            changes["job_description_url"] = data.job_description_url
        await self._update_with_undo(Opportunity, PydanticObjectId(opportunity_id), changes)


class BeanieImportJobStore(ImportJobStore):
    """ImportJobStore backed by the ImportJob document."""

    @_translate_driver_errors
    async def create(
        self,
        import_type: ImportType,
        filename: str,
        file_type: str,
        storage_name: str,
        total_rows: int,
    ) -> ImportJob:
        job = ImportJob(
            import_type=import_type.value,
            filename=filename,
            file_type=file_type,
            storage_name=storage_name,
            total_rows=total_rows,
            status=ImportStatus.PENDING,
        )
        await job.insert()
        return job

    @_translate_driver_errors
    async def get(self, job_id: str, import_type: ImportType) -> ImportJob | None:
        try:
            oid = PydanticObjectId(job_id)
        except (InvalidId, TypeError):
            return None
        return await ImportJob.find_one(
            ImportJob.id == oid,
            ImportJob.import_type == import_type.value,
        )

    @_translate_driver_errors
    async def list_recent(self, import_type: ImportType, limit: int) -> list[ImportJob]:
        return await ImportJob.find(
            ImportJob.import_type == import_type.value,
        ).sort(-ImportJob.created_at).limit(limit).to_list()

    @_translate_driver_errors
    async def save_mapping(self, job: ImportJob, mapping: StoredFieldMapping) -> ImportJob:
        # Targeted update so a concurrent run's status is never overwritten
        job.field_mapping = mapping
        await ImportJob.get_motor_collection().update_one(
            {"_id": job.id},
            {"$set": {"field_mapping": mapping.model_dump()}},
        )
        return job

    @_translate_driver_errors
    async def begin_processing(self, job: ImportJob) -> ImportJob:
        started_at = _utcnow()
        changes = {
            "status": ImportStatus.PROCESSING.value,
            "started_at": started_at,
            "completed_at": None,
            "success_count": 0,
            "failure_count": 0,
            "created_count": 0,
            "updated_count": 0,
            "skipped_count": 0,
            "errors": [],
        }
        result = await ImportJob.get_motor_collection().update_one(
            {"_id": job.id, "status": {"$ne": ImportStatus.PROCESSING.value}},
            {"$set": changes},
        )
        if result.matched_count == 0:
            raise ImportInProgressError(f"Import '{job.id}' is already being processed.")

        job.status = ImportStatus.PROCESSING
        job.started_at = started_at
        job.completed_at = None
        job.success_count = job.failure_count = 0
        job.created_count = job.updated_count = job.skipped_count = 0
        job.errors = []
        return job

    @_translate_driver_errors
    async def finish(
        self, job: ImportJob, status: ImportStatus, summary: ImportSummary
    ) -> ImportJob:
        completed_at = _utcnow()
        changes = {
            "status": status.value,
            "completed_at": completed_at,
            "total_rows": summary.total_rows,
            "success_count": summary.success_count,
            "failure_count": summary.failed_count,
            "created_count": summary.created_count,
            "updated_count": summary.updated_count,
            "skipped_count": summary.skipped_count,
            "errors": [entry.model_dump() for entry in summary.errors],
        }
        await ImportJob.get_motor_collection().update_one({"_id": job.id}, {"$set": changes})

        job.status = status
        job.completed_at = completed_at
        job.total_rows = summary.total_rows
        job.success_count = summary.success_count
        job.failure_count = summary.failed_count
        job.created_count = summary.created_count
        job.updated_count = summary.updated_count
        job.skipped_count = summary.skipped_count
        job.errors = list(summary.errors)
        return job
