"""Entity resolution for import rows, with per-run lookup caches."""

import logging
from dataclasses import dataclass, field

from .converters import is_valid_email, normalize_email, split_full_name
from .errors import RowError
from .results import RowOutcome
from .store import ContactData, LeadData, OpportunityData, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ManualMatches:
    """Operator-supplied ids for imported values the store cannot resolve.

    Keys are the raw imported values, compared case-insensitively.
    """

    customers: dict[str, str] = field(default_factory=dict)
    owners: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.customers = {k.strip().lower(): v for k, v in self.customers.items()}
        self.owners = {k.strip().lower(): v for k, v in self.owners.items()}

    def customer_for(self, value: str) -> str | None:
        return self.customers.get(value.strip().lower())

    def owner_for(self, value: str) -> str | None:
        return self.owners.get(value.strip().lower())


@dataclass
class ContactInput:
    """Contact values extracted from a row."""

    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    phone: str | None = None


class ResolutionContext:
    """Lookup caches for one execution run.

    Misses are cached too (as None) for customers and owners, so an unknown
    value costs one store round-trip per run. Entries that point at records
    created by the current row are forgotten if that row rolls back.
    """

    def __init__(self) -> None:
        self.customers_by_email: dict[str, str | None] = {}
        self.customers_by_name: dict[str, str | None] = {}
        self.owners_by_email: dict[str, str | None] = {}
        self.contacts_by_email: dict[str, str] = {}
        self.leads_by_key: dict[str, str] = {}
        self._row_created: list[tuple[dict[str, str], str]] = []

    @staticmethod
    def lead_key(title: str, contact_email: str) -> str:
        return f"{title.strip().lower()}::{contact_email}"

    def remember_created(self, cache: dict[str, str], key: str, record_id: str) -> None:
        cache[key] = record_id
        self._row_created.append((cache, key))

    def commit_row(self) -> None:
        self._row_created.clear()

    def rollback_row(self) -> None:
        for cache, key in self._row_created:
            cache.pop(key, None)
        self._row_created.clear()


class EntityResolver:
    """Resolves or creates the records referenced by one import row."""

    def __init__(
        self,
        store: RecordStore,
        context: ResolutionContext,
        manual_matches: ManualMatches | None = None,
    ):
        self.store = store
        self.context = context
        self.manual_matches = manual_matches or ManualMatches()

    # -------------------------------------------------------------------------
    # Contacts
    # -------------------------------------------------------------------------

    async def resolve_contact(self, contact: ContactInput) -> tuple[str, str]:
        """Reuse the contact with this e-mail or create one.

        Returns:
            Tuple of (contact id, normalized e-mail).

        Raises:
            RowError: If the e-mail is missing or malformed.
        """
        if not contact.email:
            raise RowError("Contact email is required for each opportunity row.")
        email = normalize_email(contact.email)
        if not is_valid_email(email):
            raise RowError(f'Contact email "{contact.email}" is not a valid email address.')

        cached = self.context.contacts_by_email.get(email)
        if cached:
            return cached, email

        existing = await self.store.find_contact_id_by_email(email)
        if existing:
            self.context.contacts_by_email[email] = existing
            return existing, email

        first_name, last_name = self._contact_names(contact)
        contact_id = await self.store.create_contact(
            ContactData(
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone=contact.phone,
            )
        )
        logger.debug("Created contact %s for %s", contact_id, email)
        self.context.remember_created(self.context.contacts_by_email, email, contact_id)
        return contact_id, email

    @staticmethod
    def _contact_names(contact: ContactInput) -> tuple[str, str]:
        first_name = contact.first_name
        last_name = contact.last_name
        if contact.full_name and not (first_name and last_name):
            split_first, split_last = split_full_name(contact.full_name)
            first_name = first_name or split_first
            last_name = last_name or split_last

        first_name = first_name or last_name
        last_name = last_name or first_name
        if not first_name:
            raise RowError(
                "Each contact must include either first/last name or a full name column."
            )
        return first_name, last_name

    # -------------------------------------------------------------------------
    # Customers and owners
    # -------------------------------------------------------------------------

    async def resolve_customer(
        self,
        email: str | None,
        name: str | None,
        default_customer_id: str | None = None,
    ) -> str | None:
        """Resolve the row's customer: e-mail, then name, then the job default.

        An explicit e-mail or name that matches nothing (and has no manual
        match) fails the row rather than falling back to the default.
        """
        if email:
            key = normalize_email(email)
            if key not in self.context.customers_by_email:
                logger.debug("Customer cache miss for email %s", key)
                self.context.customers_by_email[key] = (
                    await self.store.find_customer_id_by_email(key)
                )
            customer_id = self.context.customers_by_email[key] or self.manual_matches.customer_for(email)
            if not customer_id:
                raise RowError(f'Customer email "{email}" does not match an existing customer.')
            return customer_id

        if name:
            key = name.strip().lower()
            if key not in self.context.customers_by_name:
                logger.debug("Customer cache miss for name %s", key)
                self.context.customers_by_name[key] = (
                    await self.store.find_customer_id_by_name(name)
                )
            customer_id = self.context.customers_by_name[key] or self.manual_matches.customer_for(name)
            if not customer_id:
                raise RowError(f'Customer name "{name}" does not match an existing customer.')
            return customer_id

        return default_customer_id

    async def resolve_owner(
        self,
        email: str | None,
        default_owner_email: str | None = None,
    ) -> str | None:
        """Resolve the owning user by the row's e-mail, else the job default."""
        owner_email = email or default_owner_email
        if not owner_email:
            return None

        key = normalize_email(owner_email)
        if key not in self.context.owners_by_email:
            logger.debug("Owner cache miss for %s", key)
            self.context.owners_by_email[key] = await self.store.find_user_id_by_email(key)

        owner_id = self.context.owners_by_email[key] or self.manual_matches.owner_for(owner_email)
        if not owner_id:
            raise RowError(
                f'Opportunity owner email "{owner_email}" does not match an existing user.'
            )
        return owner_id

    # -------------------------------------------------------------------------
    # Leads and opportunities
    # -------------------------------------------------------------------------

    async def resolve_lead(
        self,
        data: LeadData,
        contact_email: str,
        update_existing: bool = True,
    ) -> str:
        """Reuse the lead keyed by (title, contact e-mail) or create it.

        An existing lead is overwritten from the row when ``update_existing``
        is set, including dropping its owner when the row has none.
        """
        key = self.context.lead_key(data.title, contact_email)
        lead_id = self.context.leads_by_key.get(key)
        if not lead_id:
            lead_id = await self.store.find_lead_id(data.title, contact_email)
            if lead_id:
                self.context.leads_by_key[key] = lead_id

        if not lead_id:
            lead_id = await self.store.create_lead(data)
            self.context.remember_created(self.context.leads_by_key, key, lead_id)
            return lead_id

        if update_existing:
            await self.store.update_lead(lead_id, data)
        return lead_id

    async def upsert_opportunity(
        self, data: OpportunityData, update_existing: bool = True
    ) -> RowOutcome:
        """Create or update the opportunity keyed by (lead, title)."""
        existing = await self.store.find_opportunity_id(data.lead_id, data.title)
        if existing is None:
            await self.store.create_opportunity(data)
            return RowOutcome.CREATED
        if not update_existing:
            return RowOutcome.SKIPPED
        await self.store.update_opportunity(existing, data)
        return RowOutcome.UPDATED
