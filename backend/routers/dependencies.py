"""
Shared FastAPI dependencies for the contact and company routers
"""
from fastapi import Depends

from database import db
from services.document_store import MongoDocumentStore
from services.relationship_service import RelationshipService


def get_store() -> MongoDocumentStore:
    return MongoDocumentStore(db)


def get_relationship_service(store=Depends(get_store)) -> RelationshipService:
    return RelationshipService(store)
