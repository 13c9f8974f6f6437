"""MongoDB document models for crmimport."""

from crmimport.models.contact import Contact
from crmimport.models.customer import Customer
from crmimport.models.import_job import (
    ImportErrorEntry,
    ImportJob,
    ImportStatus,
    ImportType,
    StoredFieldMapping,
)
from crmimport.models.lead import Lead, LeadStatus
from crmimport.models.opportunity import Opportunity, OpportunityType
from crmimport.models.user import User

__all__ = [
    # CRM documents
    "Contact",
    "Customer",
    "Lead",
    "Opportunity",
    "User",
    # Enums
    "LeadStatus",
    "OpportunityType",
    # Import
    "ImportJob",
    "ImportStatus",
    "ImportType",
    "ImportErrorEntry",
    "StoredFieldMapping",
]
