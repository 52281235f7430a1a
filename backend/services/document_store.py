"""
Document Store - owner-scoped access to the contacts and companies collections

Every lookup filters on created_by, so a document owned by another user is
indistinguishable from a missing one. Writes are single-document or
bulk-by-id-set; there is no multi-document transaction.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pymongo.errors import PyMongoError

from services.errors import PersistenceError

logger = logging.getLogger(__name__)

CONTACTS = "contacts"
COMPANIES = "companies"

ENTITY_KINDS = {CONTACTS: "contact", COMPANIES: "company"}

NO_MONGO_ID = {"_id": 0}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def persistence_guard(operation: str, kind: str):
    """Re-raise driver errors as PersistenceError"""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Store {operation} on '{kind}' failed: {e}")
        raise PersistenceError(f"{operation} on {kind} failed") from e


class MongoDocumentStore:
    """Owner-scoped document store over a motor database handle"""

    def __init__(self, db):
        self.db = db

    def _collection(self, kind: str):
        if kind not in ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind: {kind}")
        return self.db[kind]

    async def find_one(self, kind: str, entity_id: str, owner_id: str) -> Optional[dict]:
        with persistence_guard("find_one", kind):
            return await self._collection(kind).find_one(
                {"id": entity_id, "created_by": owner_id},
                NO_MONGO_ID
            )

    async def find_many(self, kind: str, ids: Iterable[str], owner_id: str) -> List[dict]:
        ids = list(ids)
        if not ids:
            return []
        with persistence_guard("find_many", kind):
            cursor = self._collection(kind).find(
                {"id": {"$in": ids}, "created_by": owner_id},
                NO_MONGO_ID
            )
            return await cursor.to_list(len(ids))

    async def find(
        self,
        kind: str,
        query: dict,
        owner_id: str,
        limit: int = 100,
        sort: Optional[list] = None
    ) -> List[dict]:
        """Run a handler query; the owner filter always overrides the caller's"""
        scoped = {**query, "created_by": owner_id}
        with persistence_guard("find", kind):
            cursor = self._collection(kind).find(scoped, NO_MONGO_ID)
            if sort:
                cursor = cursor.sort(sort)
            return await cursor.to_list(limit)

    async def find_duplicate(self, kind: str, query: dict, owner_id: str) -> Optional[dict]:
        with persistence_guard("find_duplicate", kind):
            return await self._collection(kind).find_one(
                {**query, "created_by": owner_id},
                NO_MONGO_ID
            )

    async def insert(self, kind: str, document: dict) -> dict:
        with persistence_guard("insert", kind):
            # insert_one adds _id to the dict it is given
            await self._collection(kind).insert_one(dict(document))
        return document

    async def insert_many(self, kind: str, documents: List[dict]) -> List[dict]:
        if not documents:
            return []
        with persistence_guard("insert_many", kind):
            await self._collection(kind).insert_many([dict(d) for d in documents])
        return documents

    async def save(self, kind: str, document: dict) -> dict:
        """Persist the full document state, replacing the stored one"""
        stored = {**document, "updated_at": utc_now()}
        stored.pop("_id", None)
        with persistence_guard("save", kind):
            result = await self._collection(kind).replace_one(
                {"id": stored["id"], "created_by": stored["created_by"]},
                stored
            )
        if result.matched_count == 0:
            logger.error(f"Save on '{kind}' matched nothing for id {stored['id']}")
            raise PersistenceError(f"{ENTITY_KINDS[kind]} {stored['id']} no longer exists")
        return stored

    async def update_many(
        self,
        kind: str,
        ids: Iterable[str],
        owner_id: str,
        set_fields: Optional[dict] = None,
        unset_fields: Optional[Iterable[str]] = None
    ) -> int:
        ids = list(ids)
        if not ids:
            return 0
        update = {"$set": {**(set_fields or {}), "updated_at": utc_now()}}
        if unset_fields:
            update["$unset"] = {field: "" for field in unset_fields}
        with persistence_guard("update_many", kind):
            result = await self._collection(kind).update_many(
                {"id": {"$in": ids}, "created_by": owner_id},
                update
            )
        return result.modified_count

    async def unset_where(self, kind: str, query: dict, owner_id: str, fields: Iterable[str]) -> int:
        """Unset fields on every owned document matching a query"""
        with persistence_guard("unset_where", kind):
            result = await self._collection(kind).update_many(
                {**query, "created_by": owner_id},
                {
                    "$unset": {field: "" for field in fields},
                    "$set": {"updated_at": utc_now()}
                }
            )
        return result.modified_count

    async def pull_from_members(
        self,
        kind: str,
        member_ids: Iterable[str],
        owner_id: str,
        exclude_id: Optional[str] = None
    ) -> int:
        """Remove member ids from the `contacts` list of every other document"""
        member_ids = list(member_ids)
        if not member_ids:
            return 0
        query = {"created_by": owner_id, "contacts": {"$in": member_ids}}
        if exclude_id is not None:
            query["id"] = {"$ne": exclude_id}
        with persistence_guard("pull_from_members", kind):
            result = await self._collection(kind).update_many(
                query,
                {
                    "$pull": {"contacts": {"$in": member_ids}},
                    "$set": {"updated_at": utc_now()}
                }
            )
        return result.modified_count

    async def delete(self, kind: str, entity_id: str, owner_id: str) -> bool:
        with persistence_guard("delete", kind):
            result = await self._collection(kind).delete_one(
                {"id": entity_id, "created_by": owner_id}
            )
        return result.deleted_count > 0
