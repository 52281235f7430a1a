"""
Companies Router - CRUD over companies, member set changes through RelationshipService
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from datetime import datetime, timezone
import uuid
import re
import logging

from config import DEFAULT_LIST_LIMIT
from models.schemas import Company, CompanyCreate, CompanyUpdate, CompanyContactsUpdate
from services.document_store import COMPANIES, CONTACTS
from .auth import get_current_user
from .dependencies import get_store, get_relationship_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/companies", tags=["Companies"])

SEARCH_FIELDS = ("name", "industry", "sector")
MEMBER_SUMMARY_FIELDS = ("id", "first_name", "last_name", "email", "phone", "position")
OPTION_FIELDS = ("id", "name", "industry", "website", "phone", "sector", "email")


@router.get("")
async def list_companies(
    search: Optional[str] = None,
    industry: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = DEFAULT_LIST_LIMIT,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store)
):
    """List the caller's companies, newest first"""
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{field: pattern} for field in SEARCH_FIELDS]
    if industry:
        query["industry"] = {"$regex": re.escape(industry), "$options": "i"}
    if status:
        query["status"] = status

    companies = await store.find(COMPANIES, query, current_user["id"], limit=limit, sort=[("created_at", -1)])
    return {"companies": companies, "total": len(companies)}


@router.get("/all")
async def get_all_companies(
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store)
):
    """Named companies sorted by name, for dropdowns"""
    companies = await store.find(
        COMPANIES,
        {},
        current_user["id"],
        limit=DEFAULT_LIST_LIMIT,
        sort=[("name", 1)]
    )
    options = [
        {field: company.get(field) for field in OPTION_FIELDS}
        for company in companies
        if (company.get("name") or "").strip()
    ]
    return {"companies": options, "count": len(options)}


@router.get("/{company_id}")
async def get_company(
    company_id: str,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Get a company with summaries of its member contacts"""
    owner_id = current_user["id"]
    company = await service.get_company(company_id, owner_id)
    members = await store.find_many(CONTACTS, company.contacts, owner_id)
    return {
        **company.model_dump(),
        "members": [
            {field: member.get(field) for field in MEMBER_SUMMARY_FIELDS}
            for member in members
        ]
    }


@router.post("", status_code=201)
async def create_company(
    company: CompanyCreate,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Create a company; initial contacts become members through the relationship service"""
    owner_id = current_user["id"]
    name = company.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Company name is required")

    existing = await store.find_duplicate(
        COMPANIES,
        {"name": {"$regex": f"^{re.escape(name)}$", "$options": "i"}},
        owner_id
    )
    if existing:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Company already exists",
                "duplicate": {
                    "id": existing["id"],
                    "name": existing.get("name"),
                    "email": existing.get("email"),
                    "website": existing.get("website"),
                    "industry": existing.get("industry")
                }
            }
        )

    # Resolve the initial members first so a bad id creates nothing
    if company.contacts:
        await service.resolve_contacts(company.contacts, owner_id)

    now = datetime.now(timezone.utc).isoformat()
    new_company = {
        **company.model_dump(exclude={"contacts"}),
        "id": str(uuid.uuid4()),
        "name": name,
        "contacts": [],
        "created_by": owner_id,
        "created_at": now,
        "updated_at": now
    }
    await store.insert(COMPANIES, new_company)
    logger.info(f"Created company '{name}' ({new_company['id']}) for owner {owner_id}")

    if company.contacts:
        updated = await service.replace_company_members(new_company["id"], company.contacts, owner_id)
        return updated.model_dump()

    return new_company


@router.put("/{company_id}")
async def update_company(
    company_id: str,
    updates: CompanyUpdate,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Update plain fields; a `contacts` list replaces the member set"""
    owner_id = current_user["id"]
    company = await service.get_company(company_id, owner_id)

    fields = updates.model_dump(exclude_unset=True)
    new_members = fields.pop("contacts", None)

    if new_members is not None:
        await service.resolve_contacts(new_members, owner_id)

    if fields:
        stored = await store.save(COMPANIES, company.model_copy(update=fields).model_dump())
        company = Company.model_validate(stored)

    if new_members is not None:
        company = await service.replace_company_members(company.id, new_members, owner_id)

    return company.model_dump()


@router.put("/{company_id}/contacts")
async def replace_company_contacts(
    company_id: str,
    request: CompanyContactsUpdate,
    current_user: dict = Depends(get_current_user),
    service=Depends(get_relationship_service)
):
    company = await service.replace_company_members(company_id, request.contact_ids, current_user["id"])
    return company.model_dump()


@router.delete("/{company_id}")
async def delete_company(
    company_id: str,
    current_user: dict = Depends(get_current_user),
    store=Depends(get_store),
    service=Depends(get_relationship_service)
):
    """Delete a company after clearing every contact's reference to it"""
    owner_id = current_user["id"]
    company = await service.release_company(company_id, owner_id)

    await store.delete(COMPANIES, company.id, owner_id)
    return {"success": True, "deleted_id": company.id}
