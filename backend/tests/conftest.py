"""
Shared fixtures: an in-memory, owner-scoped stand-in for MongoDocumentStore
"""
import copy
import os
import re
import sys
import uuid

import pytest

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.document_store import COMPANIES, CONTACTS  # noqa: E402
from services.errors import PersistenceError  # noqa: E402

OWNER = "user-1"
OTHER_OWNER = "user-2"


def matches(document: dict, query: dict) -> bool:
    """Just enough of the Mongo query language for the routers"""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif isinstance(condition, dict) and "$regex" in condition:
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            if not re.search(condition["$regex"], str(document.get(key) or ""), flags):
                return False
        elif document.get(key) != condition:
            return False
    return True


class InMemoryDocumentStore:
    """Implements the MongoDocumentStore interface over plain dicts"""

    def __init__(self):
        self.collections = {CONTACTS: {}, COMPANIES: {}}
        self.writes = []
        self._failures = []

    # ----- test helpers -----

    def add(self, kind, **fields):
        document = {"id": str(uuid.uuid4()), "created_by": OWNER, **fields}
        if kind == COMPANIES:
            document.setdefault("contacts", [])
        self.collections[kind][document["id"]] = copy.deepcopy(document)
        return document["id"]

    def get(self, kind, entity_id):
        document = self.collections[kind].get(entity_id)
        return copy.deepcopy(document) if document else None

    def fail_next(self, operation, kind):
        self._failures.append((operation, kind))

    def _maybe_fail(self, operation, kind):
        if (operation, kind) in self._failures:
            self._failures.remove((operation, kind))
            raise PersistenceError(f"{operation} on {kind} failed")

    def _owned(self, kind, owner_id):
        return [d for d in self.collections[kind].values() if d.get("created_by") == owner_id]

    # ----- store interface -----

    async def find_one(self, kind, entity_id, owner_id):
        self._maybe_fail("find_one", kind)
        document = self.collections[kind].get(entity_id)
        if document is None or document.get("created_by") != owner_id:
            return None
        return copy.deepcopy(document)

    async def find_many(self, kind, ids, owner_id):
        self._maybe_fail("find_many", kind)
        wanted = set(ids)
        return [copy.deepcopy(d) for d in self._owned(kind, owner_id) if d["id"] in wanted]

    async def find(self, kind, query, owner_id, limit=100, sort=None):
        self._maybe_fail("find", kind)
        found = [copy.deepcopy(d) for d in self._owned(kind, owner_id) if matches(d, query)]
        # Stable sorts applied last-key-first give Mongo's multi-key order
        for key, direction in reversed(sort or []):
            found.sort(key=lambda d: str(d.get(key) or ""), reverse=direction < 0)
        return found[:limit]

    async def find_duplicate(self, kind, query, owner_id):
        found = await self.find(kind, query, owner_id, limit=1)
        return found[0] if found else None

    async def insert(self, kind, document):
        self._maybe_fail("insert", kind)
        self.writes.append(("insert", kind, document["id"]))
        self.collections[kind][document["id"]] = copy.deepcopy(document)
        return document

    async def insert_many(self, kind, documents):
        for document in documents:
            await self.insert(kind, document)
        return documents

    async def unset_where(self, kind, query, owner_id, fields):
        self._maybe_fail("unset_where", kind)
        modified = 0
        for document in self._owned(kind, owner_id):
            if not matches(document, query):
                continue
            for field in fields:
                document.pop(field, None)
            modified += 1
        if modified:
            self.writes.append(("unset_where", kind, tuple(sorted(query.items()))))
        return modified

    async def save(self, kind, document):
        self._maybe_fail("save", kind)
        stored = self.collections[kind].get(document["id"])
        if stored is None or stored.get("created_by") != document["created_by"]:
            raise PersistenceError(f"{kind} {document['id']} no longer exists")
        self.writes.append(("save", kind, document["id"]))
        self.collections[kind][document["id"]] = copy.deepcopy(document)
        return copy.deepcopy(document)

    async def update_many(self, kind, ids, owner_id, set_fields=None, unset_fields=None):
        ids = list(ids)
        if not ids:
            return 0
        self._maybe_fail("update_many", kind)
        self.writes.append(("update_many", kind, tuple(ids)))
        modified = 0
        for document in self._owned(kind, owner_id):
            if document["id"] not in ids:
                continue
            document.update(set_fields or {})
            for field in unset_fields or []:
                document.pop(field, None)
            modified += 1
        return modified

    async def pull_from_members(self, kind, member_ids, owner_id, exclude_id=None):
        member_ids = list(member_ids)
        if not member_ids:
            return 0
        self._maybe_fail("pull_from_members", kind)
        modified = 0
        for document in self._owned(kind, owner_id):
            if document["id"] == exclude_id:
                continue
            remaining = [m for m in document.get("contacts", []) if m not in member_ids]
            if remaining != document.get("contacts", []):
                document["contacts"] = remaining
                modified += 1
        if modified:
            self.writes.append(("pull_from_members", kind, tuple(member_ids)))
        return modified

    async def delete(self, kind, entity_id, owner_id):
        document = self.collections[kind].get(entity_id)
        if document is None or document.get("created_by") != owner_id:
            return False
        self.writes.append(("delete", kind, entity_id))
        del self.collections[kind][entity_id]
        return True


@pytest.fixture
def store():
    return InMemoryDocumentStore()
