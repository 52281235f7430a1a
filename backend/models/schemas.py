"""
Pydantic models for the CRM Backend
Stored entities and request schemas are defined here
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, NamedTuple, Optional


def normalize_entity_id(value: Any) -> Optional[str]:
    """
    Canonical string form of an entity id.
    ObjectIds, padded strings and plain strings of the same id compare equal
    once normalized; None and blank values become None.
    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ============ ENTITY MODELS ============

class Contact(BaseModel):
    """Stored contact document. Immutable: use model_copy(update=...)"""
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    created_by: str
    company_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("id", "created_by", "company_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value):
        return normalize_entity_id(value)


class Company(BaseModel):
    """Stored company document. `contacts` is the member set of contact ids"""
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    created_by: str
    name: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    sector: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("id", "created_by", mode="before")
    @classmethod
    def _normalize_ids(cls, value):
        return normalize_entity_id(value)

    @field_validator("contacts", mode="before")
    @classmethod
    def _normalize_members(cls, value):
        if value is None:
            return []
        members = []
        for member in value:
            member_id = normalize_entity_id(member)
            if member_id is not None and member_id not in members:
                members.append(member_id)
        return members


class ContactCompanyPair(NamedTuple):
    contact: Contact
    company: Optional[Company]


# ============ CONTACT REQUEST MODELS ============

class ContactCreate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    is_active: bool = True
    company_id: Optional[str] = None

class ContactUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    is_active: Optional[bool] = None
    company_id: Optional[str] = None  # Explicit null unlinks

class ContactCompanyUpdate(BaseModel):
    company_id: Optional[str] = None

class ContactImportRequest(BaseModel):
    contacts: List[ContactCreate]


# ============ COMPANY REQUEST MODELS ============

class CompanyCreate(BaseModel):
    name: str
    industry: Optional[str] = None
    sector: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = "active"
    contacts: Optional[List[str]] = None

class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    industry: Optional[str] = None
    sector: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    contacts: Optional[List[str]] = None  # Replaces the member set when present

class CompanyContactsUpdate(BaseModel):
    contact_ids: List[str]
