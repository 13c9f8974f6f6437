"""Lead document model."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field


class LeadStatus(str, Enum):
    """Pipeline status of a lead."""

    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    PROPOSAL = "PROPOSAL"
    WON = "WON"
    LOST = "LOST"


class Lead(Document):
    """A sales lead, naturally keyed by (title, contact email)."""

    title: Indexed(str)
    description: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    contact_id: Indexed(PydanticObjectId)
    assigned_to_id: Optional[PydanticObjectId] = None
    source: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "leads"
