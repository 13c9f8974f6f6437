"""Tests for the Beanie-backed record and job stores against real MongoDB."""

import asyncio
from decimal import Decimal

import pytest
from bson.errors import InvalidId
from pymongo.errors import ServerSelectionTimeoutError

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
from crmimport.services import ImportService
from crmimport.services.import_service import (
    ImportInProgressError,
    MappingEntry,
    StoreUnavailableError,
)
from crmimport.services.import_service.results import ImportSummary
from crmimport.services.import_service.store import (
    BeanieImportJobStore,
    BeanieRecordStore,
    ContactData,
    LeadData,
    OpportunityData,
    _translate_driver_errors,
)

OPP = ImportType.OPPORTUNITIES


async def _seed_deal(store: BeanieRecordStore, value: str = "100.00") -> tuple[str, str, str]:
    """Create a contact, lead and opportunity; return their ids."""
    contact_id = await store.create_contact(ContactData("a@x.com", "Ann", "Lee"))
    lead_id = await store.create_lead(
        LeadData(title="Deal A", status=LeadStatus.QUALIFIED, contact_id=contact_id)
    )
    opportunity_id = await store.create_opportunity(
        OpportunityData(
            title="Deal A",
            type=OpportunityType.STAFF_AUGMENTATION,
            value=Decimal(value),
            stage="Qualification",
            lead_id=lead_id,
        )
    )
    return contact_id, lead_id, opportunity_id


def _opportunity_update(lead_id: str, value: str, title: str = "Deal A") -> OpportunityData:
    return OpportunityData(
        title=title,
        type=OpportunityType.BOTH,
        value=Decimal(value),
        stage="Proposal",
        lead_id=lead_id,
    )


# =============================================================================
# Lookups
# =============================================================================


@pytest.mark.asyncio
async def test_customer_lookups_ignore_case(init_test_db) -> None:
    acme = Customer(name="Acme", email=" Billing@Acme.com ")
    await acme.insert()
    # Written around the model, as older data may be
    await Customer.get_motor_collection().insert_one(
        {"name": "Globex", "email": "Info@Globex.com"}
    )
    store = BeanieRecordStore()

    assert acme.email == "billing@acme.com"
    assert await store.find_customer_id_by_email("BILLING@acme.com") == str(acme.id)
    assert await store.find_customer_id_by_name("ACME") == str(acme.id)
    assert await store.find_customer_id_by_email("info@globex.com") is not None
    assert await store.find_customer_id_by_name("Acme.*") is None


@pytest.mark.asyncio
async def test_user_lookup_and_existence(init_test_db) -> None:
    owner = User(email="Owner@X.com")
    await owner.insert()
    store = BeanieRecordStore()

    assert owner.email == "owner@x.com"
    assert await store.find_user_id_by_email("OWNER@x.com") == str(owner.id)
    assert await store.user_exists(str(owner.id)) is True
    assert await store.user_exists("f" * 24) is False
    assert await store.user_exists("not-an-id") is False


@pytest.mark.asyncio
async def test_rerun_keys_converge_regardless_of_case(init_test_db) -> None:
    store = BeanieRecordStore()
    contact_id, lead_id, opportunity_id = await _seed_deal(store)

    assert await store.find_contact_id_by_email(" A@X.com ") == contact_id
    assert await store.find_lead_id("deal a", "A@x.com") == lead_id
    assert await store.find_opportunity_id(lead_id, "DEAL A") == opportunity_id
    assert await store.find_lead_id("Deal A", "b@x.com") is None


# =============================================================================
# Writes and undo
# =============================================================================


@pytest.mark.asyncio
async def test_update_opportunity_stores_decimal(init_test_db) -> None:
    store = BeanieRecordStore()
    _, lead_id, opportunity_id = await _seed_deal(store)

    async with store.unit_of_work():
        await store.update_opportunity(opportunity_id, _opportunity_update(lead_id, "1234.50"))

    opportunity = await Opportunity.get(opportunity_id)
    assert opportunity.value == Decimal("1234.50")
    assert opportunity.type == OpportunityType.BOTH
    assert opportunity.stage == "Proposal"


@pytest.mark.asyncio
async def test_failed_row_restores_updated_opportunity(init_test_db) -> None:
    store = BeanieRecordStore()
    _, lead_id, opportunity_id = await _seed_deal(store)

    with pytest.raises(RuntimeError):
        async with store.unit_of_work():
            await store.update_opportunity(
                opportunity_id, _opportunity_update(lead_id, "999.00", title="Renamed")
            )
            raise RuntimeError("later write failed")

    opportunity = await Opportunity.get(opportunity_id)
    assert opportunity.title == "Deal A"
    assert opportunity.value == Decimal("100.00")
    assert opportunity.stage == "Qualification"


@pytest.mark.asyncio
async def test_failed_lead_insert_removes_new_contact(init_test_db) -> None:
    store = BeanieRecordStore()

    with pytest.raises(InvalidId):
        async with store.unit_of_work():
            await store.create_contact(ContactData("a@x.com", "Ann", "Lee"))
            await store.create_lead(
                LeadData(title="Deal A", status=LeadStatus.NEW, contact_id="not-an-id")
            )

    assert await Contact.count() == 0
    assert await Lead.count() == 0
    assert await store.find_contact_id_by_email("a@x.com") is None


@pytest.mark.asyncio
async def test_execute_reruns_against_mongodb(init_test_db, file_storage) -> None:
    service = ImportService(
        job_store=BeanieImportJobStore(),
        record_store=BeanieRecordStore(),
        file_storage=file_storage,
        error_limit=50,
        sample_rows=5,
        min_confidence=0.3,
        max_upload_bytes=10 * 1024 * 1024,
        allowed_extensions=["csv", "xlsx"],
        default_stage="Qualification",
    )
    mapping = [
        MappingEntry("Deal", "title"),
        MappingEntry("Email", "contactEmail"),
        MappingEntry("Contact", "contactFullName"),
        MappingEntry("Amount", "value"),
    ]

    first = await service.upload(
        OPP, "deals.csv", b"Deal,Email,Contact,Amount\nDeal A,A@X.com,Ann Lee,100\n"
    )
    await service.save_mapping(OPP, str(first.job.id), mapping)
    created = await service.execute(OPP, str(first.job.id))

    second = await service.upload(
        OPP, "deals.csv", b"Deal,Email,Contact,Amount\ndeal a,a@x.com,Ann Lee,\"2,500\"\n"
    )
    await service.save_mapping(OPP, str(second.job.id), mapping)
    updated = await service.execute(OPP, str(second.job.id))

    assert created.created_count == 1
    assert updated.created_count == 0
    assert updated.updated_count == 1
    assert await Contact.count() == 1
    assert await Lead.count() == 1
    opportunities = await Opportunity.find_all().to_list()
    assert len(opportunities) == 1
    opportunity = opportunities[0]
    assert opportunity.title == "deal a"
    assert opportunity.value == Decimal("2500.00")

    job = await ImportJob.get(second.job.id)
    assert job.status == ImportStatus.COMPLETED
    assert job.success_count == 1


# =============================================================================
# Import jobs
# =============================================================================


@pytest.mark.asyncio
async def test_begin_processing_refuses_second_run(init_test_db) -> None:
    jobs = BeanieImportJobStore()
    job = await jobs.create(OPP, "deals.csv", "csv", "abc.csv", total_rows=1)
    stale = await jobs.get(str(job.id), OPP)

    await jobs.begin_processing(job)
    with pytest.raises(ImportInProgressError):
        await jobs.begin_processing(stale)

    summary = ImportSummary(import_id=str(job.id), total_rows=1)
    await jobs.finish(job, ImportStatus.COMPLETED, summary)
    restarted = await jobs.begin_processing(stale)
    assert restarted.status == ImportStatus.PROCESSING


@pytest.mark.asyncio
async def test_concurrent_begin_processing_admits_one(init_test_db) -> None:
    jobs = BeanieImportJobStore()
    job = await jobs.create(OPP, "deals.csv", "csv", "abc.csv", total_rows=1)
    copies = [await jobs.get(str(job.id), OPP) for _ in range(2)]

    results = await asyncio.gather(
        *(jobs.begin_processing(copy) for copy in copies), return_exceptions=True
    )

    assert sum(isinstance(r, ImportInProgressError) for r in results) == 1
    assert sum(isinstance(r, ImportJob) for r in results) == 1


@pytest.mark.asyncio
async def test_save_mapping_leaves_status_alone(init_test_db) -> None:
    jobs = BeanieImportJobStore()
    job = await jobs.create(OPP, "deals.csv", "csv", "abc.csv", total_rows=1)
    stale = await jobs.get(str(job.id), OPP)
    await jobs.begin_processing(job)

    await jobs.save_mapping(stale, StoredFieldMapping(fields={"title": "Deal"}))

    stored = await jobs.get(str(job.id), OPP)
    assert stored.status == ImportStatus.PROCESSING
    assert stored.field_mapping.fields == {"title": "Deal"}


@pytest.mark.asyncio
async def test_get_and_list_jobs(init_test_db) -> None:
    jobs = BeanieImportJobStore()
    older = await jobs.create(OPP, "old.csv", "csv", "old.csv", total_rows=1)
    newer = await jobs.create(OPP, "new.csv", "csv", "new.csv", total_rows=2)

    assert await jobs.get("not-an-id", OPP) is None
    assert await jobs.get("f" * 24, OPP) is None
    recent = await jobs.list_recent(OPP, limit=10)
    assert {j.id for j in recent} == {newer.id, older.id}
    assert len(await jobs.list_recent(OPP, limit=1)) == 1


# =============================================================================
# Driver errors
# =============================================================================


@pytest.mark.asyncio
async def test_driver_connection_failure_becomes_store_unavailable() -> None:
    @_translate_driver_errors
    async def lookup() -> None:
        raise ServerSelectionTimeoutError("no servers available")

    with pytest.raises(StoreUnavailableError, match="Record store unavailable"):
        await lookup()
