"""
Contacts Router - CRUD over contacts, company membership through RelationshipService

Handlers never write `company_id` themselves once a contact exists; every
change to it goes through the relationship service so the company's member
set follows.
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from datetime import datetime, timezone
import uuid
import re
import logging

from config import DEFAULT_LIST_LIMIT
from models.schemas import Contact, ContactCreate, ContactUpdate, ContactCompanyUpdate, ContactImportRequest
from services.document_store import COMPANIES, CONTACTS
from services.relationship_service import unique_ids
from .auth import get_current_user
from .dependencies import get_store, get_relationship_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])

SEARCH_FIELDS = ("first_name", "last_name", "email", "position")


def pair_response(pair) -> dict:
    return {
        "contact": pair.contact.model_dump(),
        "company": pair.company.model_dump() if pair.company else None
    }


def build_duplicate_query(contact: ContactCreate) -> Optional[dict]:
    """Email wins over phone, phone over the exact first+last name"""
    if contact.email:
        return {"email": contact.email}
    if contact.phone:
        return {"phone": contact.phone}
    if contact.first_name and contact.last_name:
        return {
            "first_name": {"$regex": f"^{re.escape(contact.first_name)}$", "$options": "i"},
            "last_name": {"$regex": f"^{re.escape(contact.last_name)}$", "$options": "i"}
        }
    return None


async def attach_company_summaries(store, contacts: List[dict], owner_id: str) -> List[dict]:
    """Add a `company` entry (id, name, industry) to each contact, None when unlinked or missing"""
    company_ids = [cid for cid in unique_ids(c.get("company_id") for c in contacts) if cid]
    companies = await store.find_many(COMPANIES, company_ids, owner_id)
    summaries = {
        company["id"]: {
            "id": company["id"],
            "name": company.get("name"),
            "industry": company.get("industry")
        }
        for company in companies
    }
    return [{**contact, "company": summaries.get(contact.get("company_id"))} for contact in contacts]


@router.get("")
async def list_contacts(
    search: Optional[str] = None,
    company: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = DEFAULT_LIST_LIMIT,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store)
):
    """List the caller's contacts, newest first"""
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{field: pattern} for field in SEARCH_FIELDS]
    if company:
        query["company_id"] = company
    if status == "active":
        query["is_active"] = True
    elif status == "inactive":
        query["is_active"] = False

    contacts = await store.find(CONTACTS, query, current_user["id"], limit=limit, sort=[("created_at", -1)])
    contacts = await attach_company_summaries(store, contacts, current_user["id"])
    return {"contacts": contacts, "total": len(contacts)}


@router.get("/all")
async def get_all_contacts(
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store)
):
    """Active contacts with a full name and email, for dropdowns"""
    contacts = await store.find(
        CONTACTS,
        {"is_active": True},
        current_user["id"],
        limit=DEFAULT_LIST_LIMIT,
        sort=[("first_name", 1), ("last_name", 1)]
    )
    contacts = [c for c in contacts if c.get("first_name") and c.get("last_name") and c.get("email")]
    contacts = await attach_company_summaries(store, contacts, current_user["id"])

    options = [
        {
            "id": c["id"],
            "name": f"{c['first_name']} {c['last_name']}",
            "email": c["email"],
            "phone": c.get("phone"),
            "position": c.get("position"),
            "company": c["company"]
        }
        for c in contacts
    ]
    return {"contacts": options, "count": len(options)}


@router.get("/company/{company_id}")
async def get_contacts_by_company(
    company_id: str,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store)
):
    """Active contacts that point at a company"""
    contacts = await store.find(
        CONTACTS,
        {"company_id": company_id, "is_active": True},
        current_user["id"],
        limit=DEFAULT_LIST_LIMIT,
        sort=[("created_at", -1)]
    )
    contacts = await attach_company_summaries(store, contacts, current_user["id"])
    return {"contacts": contacts, "total": len(contacts)}


@router.get("/{contact_id}")
async def get_contact(
    contact_id: str,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    contact = await service.get_contact(contact_id, current_user["id"])
    [response] = await attach_company_summaries(store, [contact.model_dump()], current_user["id"])
    return response


@router.post("", status_code=201)
async def create_contact(
    contact: ContactCreate,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Create a contact; a given company_id is linked through the relationship service"""
    owner_id = current_user["id"]

    duplicate_query = build_duplicate_query(contact)
    if duplicate_query:
        existing = await store.find_duplicate(CONTACTS, duplicate_query, owner_id)
        if existing:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Contact already exists",
                    "duplicate": {
                        "id": existing["id"],
                        "name": f"{existing.get('first_name') or ''} {existing.get('last_name') or ''}".strip(),
                        "email": existing.get("email"),
                        "phone": existing.get("phone")
                    }
                }
            )

    # Fail before inserting anything when the company does not exist
    if contact.company_id:
        await service.get_company(contact.company_id, owner_id)

    now = datetime.now(timezone.utc).isoformat()
    new_contact = {
        **contact.model_dump(exclude={"company_id"}),
        "id": str(uuid.uuid4()),
        "created_by": owner_id,
        "company_id": None,
        "created_at": now,
        "updated_at": now
    }
    await store.insert(CONTACTS, new_contact)
    logger.info(f"Created contact {new_contact['id']} for owner {owner_id}")

    if contact.company_id:
        pair = await service.link(new_contact["id"], contact.company_id, owner_id)
        return pair.contact.model_dump()

    return new_contact


@router.post("/import", status_code=201)
async def import_contacts(
    request: ContactImportRequest,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Bulk insert; contacts naming a company are linked after the insert"""
    owner_id = current_user["id"]

    # Every referenced company must exist before anything is written
    company_ids = [cid for cid in unique_ids(c.company_id for c in request.contacts) if cid]
    for company_id in company_ids:
        await service.get_company(company_id, owner_id)

    now = datetime.now(timezone.utc).isoformat()
    new_contacts = [
        {
            **contact.model_dump(exclude={"company_id"}),
            "id": str(uuid.uuid4()),
            "created_by": owner_id,
            "company_id": None,
            "created_at": now,
            "updated_at": now
        }
        for contact in request.contacts
    ]
    await store.insert_many(CONTACTS, new_contacts)
    logger.info(f"Imported {len(new_contacts)} contacts for owner {owner_id}")

    imported = []
    for contact, new_contact in zip(request.contacts, new_contacts):
        if contact.company_id:
            pair = await service.link(new_contact["id"], contact.company_id, owner_id)
            imported.append(pair.contact.model_dump())
        else:
            imported.append(new_contact)

    return {"contacts": imported, "count": len(imported)}


@router.put("/{contact_id}")
async def update_contact(
    contact_id: str,
    updates: ContactUpdate,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Update plain fields; a company_id in the payload (even null) reassigns the company"""
    owner_id = current_user["id"]
    contact = await service.get_contact(contact_id, owner_id)

    fields = updates.model_dump(exclude_unset=True)
    company_change = "company_id" in fields
    new_company_id = fields.pop("company_id", None)

    if company_change and new_company_id:
        await service.get_company(new_company_id, owner_id)

    if fields:
        stored = await store.save(CONTACTS, contact.model_copy(update=fields).model_dump())
        contact = Contact.model_validate(stored)

    if company_change:
        pair = await service.reassign_contact_company(contact.id, new_company_id, owner_id)
        contact = pair.contact

    return contact.model_dump()


@router.put("/{contact_id}/company")
async def reassign_contact_company(
    contact_id: str,
    request: ContactCompanyUpdate,
    current_user: dict = Depends(get_current_user),
    service=Depends(get_relationship_service)
):
    """Move a contact to another company, or detach it with company_id null"""
    pair = await service.reassign_contact_company(contact_id, request.company_id, current_user["id"])
    return pair_response(pair)


@router.post("/{contact_id}/clear-stale-company")
async def clear_stale_company(
    contact_id: str,
    current_user: dict = Depends(get_current_user),
    service=Depends(get_relationship_service)
):
    """Drop a company_id that points at a deleted company"""
    contact = await service.clear_stale_company_reference(contact_id, current_user["id"])
    return contact.model_dump()


@router.post("/{contact_id}/company/{company_id}")
async def link_contact_to_company(
    contact_id: str,
    company_id: str,
    current_user: dict = Depends(get_current_user),
    service=Depends(get_relationship_service)
):
    """Assign the company, leaving any previous company's member set"""
    pair = await service.reassign_contact_company(contact_id, company_id, current_user["id"])
    return pair_response(pair)


@router.delete("/{contact_id}/company/{company_id}")
async def unlink_contact_from_company(
    contact_id: str,
    company_id: str,
    current_user: dict = Depends(get_current_user),
    service=Depends(get_relationship_service)
):
    pair = await service.unlink(contact_id, company_id, current_user["id"])
    return pair_response(pair)


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Delete a contact after removing it from its company's member set"""
    owner_id = current_user["id"]
    # A company deleted out from under the contact has no member set to leave
    contact = await service.clear_stale_company_reference(contact_id, owner_id)

    if contact.company_id:
        await service.reassign_contact_company(contact.id, None, owner_id)

    await store.delete(CONTACTS, contact.id, owner_id)
    return {"success": True, "deleted_id": contact.id}
