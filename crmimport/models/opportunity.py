"""Opportunity document model."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from beanie import DecimalAnnotation, Document, Indexed, PydanticObjectId
from pydantic import Field


class OpportunityType(str, Enum):
    """Commercial type of an opportunity."""

    STAFF_AUGMENTATION = "STAFF_AUGMENTATION"
    SOFTWARE_SUBSCRIPTION = "SOFTWARE_SUBSCRIPTION"
    BOTH = "BOTH"


class Opportunity(Document):
    """A sales opportunity, naturally keyed by (lead, title)."""

    title: Indexed(str)
    description: Optional[str] = None
    type: OpportunityType = OpportunityType.STAFF_AUGMENTATION
    value: DecimalAnnotation = Decimal("0.00")
    stage: str = "Qualification"
    is_closed: bool = False
    is_won: bool = False
    job_description_url: Optional[str] = None

    lead_id: Indexed(PydanticObjectId)
    customer_id: Optional[PydanticObjectId] = None
    assigned_to_id: Optional[PydanticObjectId] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "opportunities"
