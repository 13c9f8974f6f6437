"""Row outcomes and the run summary they fold into."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from crmimport.models.import_job import ImportErrorEntry


class RowOutcome(str, Enum):
    """Classification of a processed row."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RowResult:
    """Outcome of one row; ``message`` is set only for failures."""

    row: int
    outcome: RowOutcome
    message: str | None = None

    @classmethod
    def failed(cls, row: int, message: str) -> "RowResult":
        return cls(row=row, outcome=RowOutcome.FAILED, message=message)


class ImportSummary(BaseModel):
    """Immutable accumulator over row results for one execution run."""

    import_id: str
    total_rows: int = 0
    processed_rows: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    errors: list[ImportErrorEntry] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def success_count(self) -> int:
        return self.created_count + self.updated_count

    def with_result(self, result: RowResult, error_limit: int) -> "ImportSummary":
        """Return a new summary with ``result`` folded in.

        Failures past ``error_limit`` are counted but not itemized.
        """
        if result.outcome is RowOutcome.CREATED:
            return self.model_copy(
                update={
                    "created_count": self.created_count + 1,
                    "processed_rows": self.processed_rows + 1,
                }
            )
        if result.outcome is RowOutcome.UPDATED:
            return self.model_copy(
                update={
                    "updated_count": self.updated_count + 1,
                    "processed_rows": self.processed_rows + 1,
                }
            )
        if result.outcome is RowOutcome.SKIPPED:
            return self.model_copy(update={"skipped_count": self.skipped_count + 1})

        errors = self.errors
        if len(errors) < error_limit:
            errors = [
                *errors,
                ImportErrorEntry(
                    row=result.row,
                    message=result.message
                    or "An unexpected error occurred while importing this row.",
                ),
            ]
        return self.model_copy(
            update={"failed_count": self.failed_count + 1, "errors": errors}
        )
