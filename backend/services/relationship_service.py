"""
Relationship Service - keeps the Contact <-> Company link consistent

A contact points at one company through `company_id`; a company lists its
members in `contacts`. The two sides live in different documents and the
store has no multi-document transaction, so every operation writes them in
a fixed order:

1. link / unlink write the contact first, then the company. A failure in
   between leaves the contact pointing at the company while the member set
   is stale, never the reverse.
2. replace_company_members writes the company first, then bulk-updates the
   contacts it gained and lost.

Nothing is retried here. Every operation converges when re-run with the
same arguments, so the caller can retry the whole call blindly.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

from models.schemas import Company, Contact, ContactCompanyPair, normalize_entity_id
from services.document_store import COMPANIES, CONTACTS
from services.errors import NotFoundError, ValidationMismatchError

logger = logging.getLogger(__name__)


def unique_ids(ids: Iterable) -> List[Optional[str]]:
    """Normalize ids and drop repeats, keeping the first occurrence"""
    seen = set()
    unique = []
    for raw in ids:
        entity_id = normalize_entity_id(raw)
        if entity_id not in seen:
            seen.add(entity_id)
            unique.append(entity_id)
    return unique


class RelationshipService:
    """Bidirectional Contact/Company membership over an owner-scoped store"""

    def __init__(self, store):
        self.store = store

    # ============ LOADING ============

    async def get_contact(self, contact_id, owner_id: str) -> Contact:
        contact_id = normalize_entity_id(contact_id)
        document = await self.store.find_one(CONTACTS, contact_id, owner_id)
        if document is None:
            logger.warning(f"Contact {contact_id} not found for owner {owner_id}")
            raise NotFoundError("contact", contact_id)
        return Contact.model_validate(document)

    async def get_company(self, company_id, owner_id: str) -> Company:
        company_id = normalize_entity_id(company_id)
        document = await self.store.find_one(COMPANIES, company_id, owner_id)
        if document is None:
            logger.warning(f"Company {company_id} not found for owner {owner_id}")
            raise NotFoundError("company", company_id)
        return Company.model_validate(document)

    async def _get_pair(self, contact_id: str, company_id: str, owner_id: str):
        contact_doc, company_doc = await asyncio.gather(
            self.store.find_one(CONTACTS, contact_id, owner_id),
            self.store.find_one(COMPANIES, company_id, owner_id)
        )
        if contact_doc is None:
            logger.warning(f"Contact {contact_id} not found for owner {owner_id}")
            raise NotFoundError("contact", contact_id)
        if company_doc is None:
            logger.warning(f"Company {company_id} not found for owner {owner_id}")
            raise NotFoundError("company", company_id)
        return Contact.model_validate(contact_doc), Company.model_validate(company_doc)

    async def resolve_contacts(self, contact_ids: Iterable, owner_id: str) -> List[Contact]:
        """
        Load every requested contact under the owner.
        Raises ValidationMismatchError unless all of them resolve.
        """
        requested = unique_ids(contact_ids)
        documents = await self.store.find_many(CONTACTS, requested, owner_id)
        if len(documents) != len(requested):
            logger.warning(
                f"Resolved {len(documents)} of {len(requested)} contacts for owner {owner_id}"
            )
            raise ValidationMismatchError(requested=len(requested), resolved=len(documents))
        return [Contact.model_validate(d) for d in documents]

    # ============ PERSISTENCE ============

    async def _save_contact(self, contact: Contact) -> Contact:
        stored = await self.store.save(CONTACTS, contact.model_dump())
        return Contact.model_validate(stored)

    async def _save_company(self, company: Company) -> Company:
        stored = await self.store.save(COMPANIES, company.model_dump())
        return Company.model_validate(stored)

    # ============ OPERATIONS ============

    async def link(self, contact_id, company_id, owner_id: str) -> ContactCompanyPair:
        """Point the contact at the company and add it to the member set"""
        contact_id = normalize_entity_id(contact_id)
        company_id = normalize_entity_id(company_id)
        contact, company = await self._get_pair(contact_id, company_id, owner_id)

        contact = await self._save_contact(contact.model_copy(update={"company_id": company.id}))

        if contact.id not in company.contacts:
            company = await self._save_company(
                company.model_copy(update={"contacts": [*company.contacts, contact.id]})
            )

        logger.info(f"Linked contact {contact.id} to company {company.id}")
        return ContactCompanyPair(contact, company)

    async def unlink(self, contact_id, company_id, owner_id: str) -> ContactCompanyPair:
        """Clear the contact's company and drop it from the member set"""
        contact_id = normalize_entity_id(contact_id)
        company_id = normalize_entity_id(company_id)
        contact, company = await self._get_pair(contact_id, company_id, owner_id)

        contact = await self._save_contact(contact.model_copy(update={"company_id": None}))

        company = await self._save_company(
            company.model_copy(update={"contacts": [m for m in company.contacts if m != contact.id]})
        )

        logger.info(f"Unlinked contact {contact.id} from company {company.id}")
        return ContactCompanyPair(contact, company)

    async def replace_company_members(self, company_id, new_contact_ids: Iterable, owner_id: str) -> Company:
        """
        Make `new_contact_ids` the company's exact member set.

        Contacts that left lose their back-reference, contacts that joined gain
        it, and a joining contact is also removed from whichever other company
        of the same owner still listed it.
        """
        company = await self.get_company(company_id, owner_id)
        requested = unique_ids(new_contact_ids)
        await self.resolve_contacts(requested, owner_id)

        previous = list(company.contacts)

        company = await self._save_company(company.model_copy(update={"contacts": requested}))

        await self.store.update_many(
            CONTACTS, requested, owner_id,
            set_fields={"company_id": company.id}
        )

        kept = set(requested)
        removed = [member for member in previous if member not in kept]
        if removed:
            await self.store.update_many(
                CONTACTS, removed, owner_id,
                unset_fields=["company_id"]
            )

        await self.store.pull_from_members(COMPANIES, requested, owner_id, exclude_id=company.id)

        logger.info(
            f"Replaced members of company {company.id}: "
            f"{len(requested)} now, {len(removed)} removed"
        )
        return company

    async def reassign_contact_company(self, contact_id, new_company_id, owner_id: str) -> ContactCompanyPair:
        """
        Move the contact to `new_company_id`, or detach it when that is None.

        The current company must still exist: a stale reference fails with
        NotFoundError before any write. See clear_stale_company_reference.
        """
        contact = await self.get_contact(contact_id, owner_id)
        current_company_id = contact.company_id
        new_company_id = normalize_entity_id(new_company_id)

        if new_company_id is None:
            if current_company_id is None:
                return ContactCompanyPair(contact, None)
            return await self.unlink(contact.id, current_company_id, owner_id)

        await self.get_company(new_company_id, owner_id)

        if current_company_id is not None and current_company_id != new_company_id:
            await self.unlink(contact.id, current_company_id, owner_id)

        return await self.link(contact.id, new_company_id, owner_id)

    # ============ REPAIR ============

    async def clear_stale_company_reference(self, contact_id, owner_id: str) -> Contact:
        """
        Clear a contact's company_id when that company no longer exists.
        Contacts without a company, or pointing at a live one, are returned untouched.
        """
        contact = await self.get_contact(contact_id, owner_id)
        if contact.company_id is None:
            return contact

        if await self.store.find_one(COMPANIES, contact.company_id, owner_id) is not None:
            return contact

        logger.warning(f"Contact {contact.id} referenced missing company {contact.company_id}, clearing it")
        return await self._save_contact(contact.model_copy(update={"company_id": None}))

    async def release_company(self, company_id, owner_id: str) -> Company:
        """
        Detach every contact from a company ahead of its deletion.

        Besides the member set, this also clears contacts that point at the
        company without being listed in it, the state left behind when a
        link failed between its contact and company writes.
        """
        company = await self.get_company(company_id, owner_id)
        if company.contacts:
            company = await self.replace_company_members(company.id, [], owner_id)

        cleared = await self.store.unset_where(
            CONTACTS, {"company_id": company.id}, owner_id, ["company_id"]
        )
        if cleared:
            logger.info(f"Cleared {cleared} unlisted references to company {company.id}")
        return company
