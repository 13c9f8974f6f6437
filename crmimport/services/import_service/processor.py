"""Row execution and the fold over a job's rows."""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from .constants import OpportunityImportField as F
from .converters import (
    combine_description,
    extract_value,
    is_blank_row,
    parse_amount,
    parse_flag,
    parse_lead_status,
    parse_opportunity_type,
    resolve_stage,
    strip_html,
)
from .errors import RowError, StoreUnavailableError
from .resolver import ContactInput, EntityResolver, ManualMatches, ResolutionContext
from .results import ImportSummary, RowOutcome, RowResult
from .store import LeadData, OpportunityData, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOptions:
    """Job-level settings for one execution run."""

    update_existing: bool = True
    default_owner_email: str | None = None
    default_customer_id: str | None = None
    default_stage: str | None = None
    manual_matches: ManualMatches = field(default_factory=ManualMatches)


class RowProcessor:
    """Imports single rows against a record store.

    One processor serves one run: its resolution context caches lookups
    across rows and is discarded with it.
    """

    def __init__(
        self,
        store: RecordStore,
        field_mapping: dict[str, str],
        options: ExecutionOptions | None = None,
    ):
        self.store = store
        self.field_mapping = field_mapping
        self.options = options or ExecutionOptions()
        self.context = ResolutionContext()
        self.resolver = EntityResolver(store, self.context, self.options.manual_matches)

    def _value(self, row: dict[str, str], key: F) -> str | None:
        return extract_value(row, self.field_mapping, key.value)

    async def process_row(self, row: dict[str, str], row_number: int) -> RowResult:
        """Import one row and classify the outcome.

        Row-level problems come back as a FAILED result and the row's writes
        are undone. StoreUnavailableError is not caught.
        """
        if is_blank_row(row):
            return RowResult(row_number, RowOutcome.SKIPPED)

        try:
            async with self.store.unit_of_work():
                outcome = await self._import_row(row)
        except StoreUnavailableError:
            self.context.rollback_row()
            raise
        except RowError as e:
            self.context.rollback_row()
            logger.warning("Row %d failed: %s", row_number, e)
            return RowResult.failed(row_number, str(e))
        except Exception as e:
            self.context.rollback_row()
            logger.warning("Row %d failed unexpectedly: %s", row_number, e, exc_info=True)
            return RowResult.failed(row_number, str(e) or type(e).__name__)

        self.context.commit_row()
        return RowResult(row_number, outcome)

    async def _import_row(self, row: dict[str, str]) -> RowOutcome:
        options = self.options

        title = self._value(row, F.TITLE)
        if not title:
            raise RowError("Opportunity title is required for each row.")

        contact_id, contact_email = await self.resolver.resolve_contact(
            ContactInput(
                email=self._value(row, F.CONTACT_EMAIL),
                first_name=self._value(row, F.CONTACT_FIRST_NAME),
                last_name=self._value(row, F.CONTACT_LAST_NAME),
                full_name=self._value(row, F.CONTACT_FULL_NAME),
                phone=self._value(row, F.CONTACT_PHONE),
            )
        )

        customer_id = await self.resolver.resolve_customer(
            self._value(row, F.CUSTOMER_EMAIL),
            self._value(row, F.CUSTOMER_NAME),
            options.default_customer_id,
        )
        owner_id = await self.resolver.resolve_owner(
            self._value(row, F.OWNER_EMAIL),
            options.default_owner_email,
        )

        lead_id = await self.resolver.resolve_lead(
            LeadData(
                title=self._value(row, F.LEAD_TITLE) or title,
                status=parse_lead_status(self._value(row, F.LEAD_STATUS)),
                contact_id=contact_id,
                assigned_to_id=owner_id,
                description=strip_html(self._value(row, F.LEAD_DESCRIPTION)),
            ),
            contact_email,
            options.update_existing,
        )

        opportunity = OpportunityData(
            title=title,
            type=parse_opportunity_type(self._value(row, F.TYPE)),
            value=parse_amount(self._value(row, F.VALUE)),
            stage=resolve_stage(self._value(row, F.STAGE), options.default_stage),
            lead_id=lead_id,
            is_closed=parse_flag(self._value(row, F.IS_CLOSED)),
            is_won=parse_flag(self._value(row, F.IS_WON)),
            description=combine_description(
                strip_html(self._value(row, F.DESCRIPTION)),
                strip_html(self._value(row, F.NOTES)),
            ),
            job_description_url=self._value(row, F.JOB_DESCRIPTION_URL),
            customer_id=customer_id,
            assigned_to_id=owner_id,
        )
        return await self.resolver.upsert_opportunity(opportunity, options.update_existing)


async def fold_rows(
    processor: RowProcessor,
    rows: list[dict[str, str]],
    summary: ImportSummary,
    error_limit: int,
) -> AsyncIterator[ImportSummary]:
    """Fold rows through ``processor`` in file order, yielding each new summary.

    Row numbers are 1-based and account for the header row. Callers that
    need the partial result when a systemic error escapes keep the last
    yielded summary.
    """
    for index, row in enumerate(rows):
        result = await processor.process_row(row, index + 2)
        summary = summary.with_result(result, error_limit)
        yield summary


async def run_rows(
    processor: RowProcessor,
    rows: list[dict[str, str]],
    summary: ImportSummary,
    error_limit: int,
) -> ImportSummary:
    """Fold every row and return the final summary."""
    async for summary in fold_rows(processor, rows, summary, error_limit):
        pass
    return summary
