"""Row value extraction and coercion for the import executor."""

import html
import re
from decimal import Decimal, InvalidOperation

from crmimport.models.lead import LeadStatus
from crmimport.models.opportunity import OpportunityType

from .constants import FALLBACK_STAGE, TRUTHY_TOKENS
from .errors import RowError

_HTML_TAG = re.compile(r"</?[a-z][^>]*>", re.IGNORECASE)
_HTML_ENTITY = re.compile(r"&(#\d+|#x[0-9a-f]+|[a-z]+);", re.IGNORECASE)
_BLOCK_BREAK = re.compile(r"<br\s*/?>|</?p[^>]*>|</?div[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]*>")
_TYPE_SEPARATORS = re.compile(r"[\s-]+")


def extract_value(row: dict[str, str], mapping: dict[str, str], field: str) -> str | None:
    """Return the trimmed cell mapped to ``field``, or None when unmapped or blank."""
    column = mapping.get(field)
    if not column:
        return None
    value = row.get(column)
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def is_blank_row(row: dict[str, str]) -> bool:
    """True when every cell in the row is empty or whitespace."""
    return not any(value and value.strip() for value in row.values())


def split_full_name(full_name: str) -> tuple[str | None, str | None]:
    """Split a full name into (first, last).

    A single token is used as both first and last name.
    """
    parts = full_name.split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], parts[0]
    return parts[0], " ".join(parts[1:])


def normalize_email(value: str) -> str:
    return value.strip().lower()


def is_valid_email(value: str) -> bool:
    local, sep, domain = value.partition("@")
    return bool(local and sep and domain) and " " not in value


def parse_lead_status(value: str | None) -> LeadStatus:
    """Decode a lead status cell; blank means QUALIFIED.

    Raises:
        RowError: If the value is not a known status.
    """
    if not value:
        return LeadStatus.QUALIFIED
    normalized = value.strip().upper()
    try:
        return LeadStatus(normalized)
    except ValueError:
        accepted = ", ".join(status.value for status in LeadStatus)
        raise RowError(f'Invalid lead status "{value}". Accepted values: {accepted}')


def parse_opportunity_type(value: str | None) -> OpportunityType:
    """Decode an opportunity type; case-insensitive, spaces/hyphens as underscores.

    Raises:
        RowError: If the value is not a known type.
    """
    if not value:
        return OpportunityType.STAFF_AUGMENTATION
    normalized = _TYPE_SEPARATORS.sub("_", value.strip().upper())
    try:
        return OpportunityType(normalized)
    except ValueError:
        accepted = ", ".join(kind.value for kind in OpportunityType)
        raise RowError(f'Invalid opportunity type "{value}". Accepted values: {accepted}')


def parse_amount(value: str | None) -> Decimal:
    """Parse a numeric value with thousands separators; blank is zero.

    Raises:
        RowError: If the value is not numeric.
    """
    if not value:
        return Decimal("0.00")
    cleaned = value.replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise RowError(f'Invalid numeric value "{value}".')
    if not amount.is_finite():
        raise RowError(f'Invalid numeric value "{value}".')
    try:
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        # Wider than the decimal context precision
        raise RowError(f'Invalid numeric value "{value}".')


def parse_flag(value: str | None) -> bool:
    """Interpret a flag cell. Unknown tokens are false, never an error."""
    if not value:
        return False
    return value.strip().lower() in TRUTHY_TOKENS


def resolve_stage(value: str | None, default_stage: str | None = None) -> str:
    """Pick the explicit stage, else the job default, else the fallback."""
    if value and value.strip():
        return value.strip()
    if default_stage and default_stage.strip():
        return default_stage.strip()
    return FALLBACK_STAGE


def strip_html(value: str | None) -> str | None:
    """Convert HTML-ish rich text to plain text.

    Plain values are returned trimmed. Otherwise entities are decoded,
    paragraph/div/br boundaries become newlines, remaining tags are dropped
    and whitespace is collapsed. Blank results become None.
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    if not _HTML_TAG.search(trimmed) and not _HTML_ENTITY.search(trimmed):
        return trimmed

    text = _BLOCK_BREAK.sub("\n", trimmed)
    text = _ANY_TAG.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")

    text = text.replace("\r", "")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.strip()
    return text or None


def combine_description(description: str | None, notes: str | None) -> str | None:
    """Append notes to the description as a "Notes:" section."""
    if not notes:
        return description
    segments = [segment for segment in (description or "", f"Notes: {notes}") if segment.strip()]
    return "\n\n".join(segments)
