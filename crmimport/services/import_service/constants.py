"""Field catalog and lookup tables for spreadsheet imports."""

from dataclasses import dataclass
from enum import Enum

from crmimport.models.import_job import ImportType


class OpportunityImportField(str, Enum):
    """Target fields a column can be mapped to in an opportunities import."""

    TITLE = "title"
    DESCRIPTION = "description"
    TYPE = "type"
    VALUE = "value"
    STAGE = "stage"
    CUSTOMER_NAME = "customerName"
    CUSTOMER_EMAIL = "customerEmail"
    CONTACT_EMAIL = "contactEmail"
    CONTACT_FIRST_NAME = "contactFirstName"
    CONTACT_LAST_NAME = "contactLastName"
    CONTACT_FULL_NAME = "contactFullName"
    CONTACT_PHONE = "contactPhone"
    LEAD_TITLE = "leadTitle"
    LEAD_DESCRIPTION = "leadDescription"
    LEAD_STATUS = "leadStatus"
    OWNER_EMAIL = "ownerEmail"
    JOB_DESCRIPTION_URL = "jobDescriptionUrl"
    NOTES = "notes"
    IS_CLOSED = "isClosed"
    IS_WON = "isWon"


@dataclass(frozen=True)
class FieldDefinition:
    """Metadata describing one importable target field."""

    key: str
    label: str
    description: str
    required: bool = False


F = OpportunityImportField

OPPORTUNITY_FIELDS: list[FieldDefinition] = [
    FieldDefinition(F.TITLE.value, "Opportunity Title", "Title or summary of the opportunity (required).", True),
    FieldDefinition(F.DESCRIPTION.value, "Description", "Detailed notes about the opportunity."),
    FieldDefinition(
        F.TYPE.value,
        "Type",
        "Opportunity type (STAFF_AUGMENTATION, SOFTWARE_SUBSCRIPTION, BOTH).",
    ),
    FieldDefinition(F.VALUE.value, "Value", "Projected value for the opportunity (numeric)."),
    FieldDefinition(F.STAGE.value, "Stage", 'Pipeline stage (defaults to "Qualification" if omitted).'),
    FieldDefinition(
        F.CUSTOMER_NAME.value,
        "Customer Name",
        "Existing customer to associate (matched by name, case-insensitive).",
    ),
    FieldDefinition(F.CUSTOMER_EMAIL.value, "Customer Email", "Existing customer matched by primary email address."),
    FieldDefinition(F.OWNER_EMAIL.value, "Owner Email", "Email of the user who should own the opportunity."),
    FieldDefinition(F.CONTACT_EMAIL.value, "Contact Email", "Primary email for the lead contact (required).", True),
    FieldDefinition(F.CONTACT_FIRST_NAME.value, "Contact First Name", "First name of the lead contact."),
    FieldDefinition(F.CONTACT_LAST_NAME.value, "Contact Last Name", "Last name of the lead contact."),
    FieldDefinition(
        F.CONTACT_FULL_NAME.value,
        "Contact Full Name",
        "Full name (used when first/last names are missing).",
    ),
    FieldDefinition(F.CONTACT_PHONE.value, "Contact Phone", "Phone number for the lead contact."),
    FieldDefinition(F.LEAD_TITLE.value, "Lead Title", "Lead title (defaults to opportunity title)."),
    FieldDefinition(F.LEAD_DESCRIPTION.value, "Lead Description", "Additional context for the lead record."),
    FieldDefinition(F.LEAD_STATUS.value, "Lead Status", "Lead status (NEW, QUALIFIED, etc.)."),
    FieldDefinition(
        F.JOB_DESCRIPTION_URL.value,
        "Job Description URL",
        "Link to a JD for staff augmentation opportunities.",
    ),
    FieldDefinition(F.NOTES.value, "Internal Notes", "Additional notes appended to the opportunity description."),
    FieldDefinition(F.IS_CLOSED.value, "Is Closed", "Marks the opportunity as closed when true."),
    FieldDefinition(F.IS_WON.value, "Is Won", "Marks the opportunity as won when true."),
]

# Field catalog per import type
FIELD_CATALOG: dict[ImportType, list[FieldDefinition]] = {
    ImportType.OPPORTUNITIES: OPPORTUNITY_FIELDS,
}

# Header alias table: lowercase alias -> field key (exact matches only)
HEADER_ALIASES: dict[ImportType, dict[str, str]] = {
    ImportType.OPPORTUNITIES: {
        # title
        "opportunity": F.TITLE.value,
        "opportunity name": F.TITLE.value,
        "deal": F.TITLE.value,
        "deal name": F.TITLE.value,
        # value
        "amount": F.VALUE.value,
        "expected revenue": F.VALUE.value,
        "revenue": F.VALUE.value,
        # customer
        "company": F.CUSTOMER_NAME.value,
        "account": F.CUSTOMER_NAME.value,
        "customer": F.CUSTOMER_NAME.value,
        # owner
        "salesperson": F.OWNER_EMAIL.value,
        "owner": F.OWNER_EMAIL.value,
        "assigned to": F.OWNER_EMAIL.value,
        # contact
        "email": F.CONTACT_EMAIL.value,
        "e-mail": F.CONTACT_EMAIL.value,
        "first name": F.CONTACT_FIRST_NAME.value,
        "last name": F.CONTACT_LAST_NAME.value,
        "contact": F.CONTACT_FULL_NAME.value,
        "contact name": F.CONTACT_FULL_NAME.value,
        "phone": F.CONTACT_PHONE.value,
        "mobile": F.CONTACT_PHONE.value,
        # flags
        "closed": F.IS_CLOSED.value,
        "won": F.IS_WON.value,
    },
}

# Truthy tokens for flag columns; anything else is false
TRUTHY_TOKENS = frozenset({"true", "1", "yes", "y"})

# Stage applied when neither the row nor the job supplies one
FALLBACK_STAGE = "Qualification"

LEAD_SOURCE = "Import"


def get_field_catalog(import_type: ImportType) -> list[FieldDefinition]:
    """Return the importable target fields for an import type."""
    return FIELD_CATALOG[import_type]


def get_required_fields(import_type: ImportType) -> list[FieldDefinition]:
    """Return the target fields that must be mapped before execution."""
    return [field for field in FIELD_CATALOG[import_type] if field.required]
