"""User document model for record owners."""

from datetime import datetime, timezone
from typing import Optional

from beanie import Document, Indexed
from pydantic import Field, field_validator


class User(Document):
    """An internal user who can own leads and opportunities."""

    email: Indexed(str, unique=True)
    full_name: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        """Store e-mails trimmed and lower-cased."""
        return v.strip().lower() if isinstance(v, str) else v

    class Settings:
        name = "users"
