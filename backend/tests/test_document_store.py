"""
Tests for MongoDocumentStore against a mocked motor database

Validates:
- Every query is scoped by owner and drops _id
- Bulk updates build the expected $set / $unset / $pull documents
- Driver errors surface as PersistenceError
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import ServerSelectionTimeoutError

from services.document_store import COMPANIES, CONTACTS, MongoDocumentStore
from services.errors import PersistenceError

# Configure pytest-asyncio
pytestmark = pytest.mark.asyncio(loop_scope="function")


@pytest.fixture
def collections():
    return {CONTACTS: MagicMock(), COMPANIES: MagicMock()}


@pytest.fixture
def mock_db(collections):
    """Create mock database whose item access returns the mocked collections"""
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    return db


@pytest.fixture
def store(mock_db):
    return MongoDocumentStore(mock_db)


class TestReads:
    async def test_find_one_is_owner_scoped(self, store, collections):
        collections[CONTACTS].find_one = AsyncMock(return_value={"id": "c1", "created_by": "u1"})

        result = await store.find_one(CONTACTS, "c1", "u1")

        assert result == {"id": "c1", "created_by": "u1"}
        collections[CONTACTS].find_one.assert_awaited_once_with(
            {"id": "c1", "created_by": "u1"},
            {"_id": 0}
        )

    async def test_find_many_with_no_ids_skips_the_query(self, store, collections):
        collections[CONTACTS].find = MagicMock()

        assert await store.find_many(CONTACTS, [], "u1") == []
        collections[CONTACTS].find.assert_not_called()

    async def test_find_many_uses_in_filter(self, store, collections):
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[{"id": "c1"}, {"id": "c2"}])
        collections[CONTACTS].find = MagicMock(return_value=cursor)

        result = await store.find_many(CONTACTS, ["c1", "c2"], "u1")

        assert len(result) == 2
        collections[CONTACTS].find.assert_called_once_with(
            {"id": {"$in": ["c1", "c2"]}, "created_by": "u1"},
            {"_id": 0}
        )
        cursor.to_list.assert_awaited_once_with(2)

    async def test_find_cannot_escape_owner_scope(self, store, collections):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[])
        collections[COMPANIES].find = MagicMock(return_value=cursor)

        await store.find(COMPANIES, {"created_by": "someone-else", "status": "active"}, "u1", limit=5,
                         sort=[("created_at", -1)])

        query = collections[COMPANIES].find.call_args[0][0]
        assert query == {"created_by": "u1", "status": "active"}
        cursor.sort.assert_called_once_with([("created_at", -1)])
        cursor.to_list.assert_awaited_once_with(5)

    async def test_unknown_kind_is_rejected(self, store):
        with pytest.raises(ValueError):
            await store.find_one("leads", "x", "u1")


class TestWrites:
    async def test_save_replaces_full_document(self, store, collections):
        collections[CONTACTS].replace_one = AsyncMock(return_value=MagicMock(matched_count=1))

        saved = await store.save(CONTACTS, {"_id": "mongo", "id": "c1", "created_by": "u1", "company_id": "co1"})

        filter_doc, stored = collections[CONTACTS].replace_one.call_args[0]
        assert filter_doc == {"id": "c1", "created_by": "u1"}
        assert "_id" not in stored
        assert stored["company_id"] == "co1"
        assert "updated_at" in saved

    async def test_save_of_vanished_document_fails(self, store, collections):
        collections[COMPANIES].replace_one = AsyncMock(return_value=MagicMock(matched_count=0))

        with pytest.raises(PersistenceError):
            await store.save(COMPANIES, {"id": "co1", "created_by": "u1", "contacts": []})

    async def test_update_many_set_and_unset(self, store, collections):
        collections[CONTACTS].update_many = AsyncMock(return_value=MagicMock(modified_count=2))

        count = await store.update_many(CONTACTS, ["c1", "c2"], "u1", unset_fields=["company_id"])

        assert count == 2
        query, update = collections[CONTACTS].update_many.call_args[0]
        assert query == {"id": {"$in": ["c1", "c2"]}, "created_by": "u1"}
        assert update["$unset"] == {"company_id": ""}
        assert "updated_at" in update["$set"]

    async def test_update_many_with_no_ids_is_free(self, store, collections):
        collections[CONTACTS].update_many = AsyncMock()

        assert await store.update_many(CONTACTS, [], "u1", set_fields={"company_id": "co1"}) == 0
        collections[CONTACTS].update_many.assert_not_awaited()

    async def test_pull_from_members_excludes_target_company(self, store, collections):
        collections[COMPANIES].update_many = AsyncMock(return_value=MagicMock(modified_count=1))

        count = await store.pull_from_members(COMPANIES, ["c1"], "u1", exclude_id="co1")

        assert count == 1
        query, update = collections[COMPANIES].update_many.call_args[0]
        assert query == {"created_by": "u1", "contacts": {"$in": ["c1"]}, "id": {"$ne": "co1"}}
        assert update["$pull"] == {"contacts": {"$in": ["c1"]}}

    async def test_insert_does_not_leak_mongo_id(self, store, collections):
        collections[CONTACTS].insert_one = AsyncMock()
        document = {"id": "c1", "created_by": "u1"}

        result = await store.insert(CONTACTS, document)

        assert "_id" not in result
        collections[CONTACTS].insert_one.assert_awaited_once()

    async def test_insert_many_copies_documents(self, store, collections):
        collections[CONTACTS].insert_many = AsyncMock()
        documents = [{"id": "c1", "created_by": "u1"}, {"id": "c2", "created_by": "u1"}]

        result = await store.insert_many(CONTACTS, documents)

        assert result == documents
        inserted = collections[CONTACTS].insert_many.call_args[0][0]
        assert inserted == documents
        assert inserted[0] is not documents[0]

    async def test_insert_many_with_no_documents_is_free(self, store, collections):
        collections[CONTACTS].insert_many = AsyncMock()

        assert await store.insert_many(CONTACTS, []) == []
        collections[CONTACTS].insert_many.assert_not_awaited()

    async def test_unset_where_is_owner_scoped(self, store, collections):
        collections[CONTACTS].update_many = AsyncMock(return_value=MagicMock(modified_count=3))

        count = await store.unset_where(CONTACTS, {"company_id": "co1", "created_by": "u2"}, "u1", ["company_id"])

        assert count == 3
        query, update = collections[CONTACTS].update_many.call_args[0]
        assert query == {"company_id": "co1", "created_by": "u1"}
        assert update["$unset"] == {"company_id": ""}
        assert "updated_at" in update["$set"]

    async def test_delete_reports_whether_anything_was_removed(self, store, collections):
        collections[CONTACTS].delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))

        assert await store.delete(CONTACTS, "c1", "u1") is False
        collections[CONTACTS].delete_one.assert_awaited_once_with({"id": "c1", "created_by": "u1"})


class TestDriverErrors:
    async def test_driver_error_becomes_persistence_error(self, store, collections):
        collections[CONTACTS].replace_one = AsyncMock(side_effect=ServerSelectionTimeoutError("down"))

        with pytest.raises(PersistenceError) as exc_info:
            await store.save(CONTACTS, {"id": "c1", "created_by": "u1"})

        assert isinstance(exc_info.value.__cause__, ServerSelectionTimeoutError)
