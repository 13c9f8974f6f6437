"""Contact document model."""

from datetime import datetime, timezone
from typing import Optional

from beanie import Document, Indexed
from pydantic import Field, field_validator


class Contact(Document):
    """A person a lead is attached to. Emails are stored lower-cased."""

    first_name: str
    last_name: str
    email: Indexed(str, unique=True)
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        """Store e-mails trimmed and lower-cased."""
        return v.strip().lower() if isinstance(v, str) else v

    class Settings:
        name = "contacts"
