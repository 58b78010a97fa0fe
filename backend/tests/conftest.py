# shared fixtures for backend api tests
# provides mock db with sessions/transactions, test identities, invitation docs and httpx test clients

import asyncio
import re
from datetime import datetime, timezone, timedelta
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId

from httpx import AsyncClient, ASGITransport

from app.main import app
from app.services.db import get_db
from app.dependencies import get_current_user
from app.models.user import AuthContext


# test identities (uids issued by the identity provider)
THERAPIST_ID = "therapist-uid-0001"
OTHER_THERAPIST_ID = "therapist-uid-0002"
PATIENT_ID = "patient-uid-0001"
PATIENT_2_ID = "patient-uid-0002"


# user documents as the identity side stores them

PATIENT_DOC = {
    "_id": PATIENT_ID,
    "email": "alex.rivera@email.com",
    "role": "patient",
    "therapist_id": THERAPIST_ID,
    "patient_onboarding_data": {"share_summaries_with_therapist": False},
}

PATIENT_2_DOC = {
    "_id": PATIENT_2_ID,
    "email": "jordan.kim@email.com",
    "role": "patient",
    "therapist_id": THERAPIST_ID,
}


def make_invitation(
    code: str,
    therapist_id: str = THERAPIST_ID,
    created_at: datetime = None,
    expires_at: datetime = None,
    is_used: bool = False,
    used_at: datetime = None,
    patient_id: str = None,
    email: str = "p@x.com",
    first_name: str = "Jo",
) -> dict:
    """invitation_codes document as the store writes it"""
    created_at = created_at or datetime.now(timezone.utc)
    return {
        "_id": ObjectId(),
        "code": code,
        "therapist_id": therapist_id,
        "patient_email": email,
        "patient_first_name": first_name,
        "patient_last_name": "",
        "is_used": is_used,
        "created_at": created_at,
        "expires_at": expires_at or created_at + timedelta(hours=48),
        "used_at": used_at,
        "patient_id": patient_id,
    }


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor, supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = data or []
        self._index = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        # stable sorts applied from the last key to the first; None sorts lowest like bson null
        for key, order in reversed(keys):
            present = [d for d in self._data if d.get(key) is not None]
            missing = [d for d in self._data if d.get(key) is None]
            present.sort(key=lambda d: d[key], reverse=order < 0)
            self._data = present + missing if order < 0 else missing + present
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


class MockCollection:
    """mock for a motor collection with async methods.

    find_one returns a copy and yields to the event loop so concurrent
    callers interleave between their read and their write, like real
    round trips do.
    """

    def __init__(self, data=None):
        self._data = data or []
        self.inserted = []

    def find(self, query=None, projection=None, session=None):
        results = self._data
        if query:
            results = [d for d in results if self._matches(d, query)]
        return AsyncCursorMock(list(results))

    async def find_one(self, query=None, projection=None, sort=None, session=None):
        cursor = self.find(query)
        if sort:
            cursor.sort(sort)
        # snapshot before yielding, as a server read would
        found = dict(cursor._data[0]) if cursor._data else None
        await asyncio.sleep(0)
        return found

    async def insert_one(self, doc, session=None):
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def count_documents(self, query=None):
        if not query:
            return len(self._data)
        return len([d for d in self._data if self._matches(d, query)])

    async def update_one(self, query, update, upsert=False, session=None):
        result = MagicMock()
        result.modified_count = 0
        for doc in self._data:
            if self._matches(doc, query):
                if "$set" in update:
                    doc.update(update["$set"])
                result.modified_count = 1
                break
        else:
            if upsert:
                doc = {k: v for k, v in query.items() if not k.startswith("$")}
                doc.update(update.get("$set", {}))
                self._data.append(doc)
        return result

    async def delete_one(self, query, session=None):
        result = MagicMock()
        result.deleted_count = 0
        for i, doc in enumerate(self._data):
            if self._matches(doc, query):
                self._data.pop(i)
                result.deleted_count = 1
                break
        return result

    async def create_index(self, *args, **kwargs):
        return "mock_index"

    def _matches(self, doc, query):
        """basic mongodb query matching for tests"""
        for key, value in query.items():
            if key == "$or":
                if not any(self._matches(doc, cond) for cond in value):
                    return False
                continue
            doc_val = doc.get(key)
            if isinstance(value, dict):
                if "$in" in value:
                    if doc_val not in value["$in"]:
                        return False
                elif "$gt" in value:
                    if doc_val is None or not doc_val > value["$gt"]:
                        return False
                elif "$gte" in value:
                    if doc_val is None or doc_val < value["$gte"]:
                        return False
                elif "$regex" in value:
                    flags = re.IGNORECASE if value.get("$options") == "i" else 0
                    if doc_val is None or not re.search(value["$regex"], str(doc_val), flags):
                        return False
            elif doc_val != value:
                return False
        return True


class FailingCollection(MockCollection):
    """collection whose reads blow up, for store-outage paths"""

    def find(self, query=None, projection=None, session=None):
        raise RuntimeError("connection pool closed")

    async def find_one(self, query=None, projection=None, sort=None, session=None):
        raise RuntimeError("connection pool closed")


class MockDatabase:
    """mock database that mimics the Database class.

    run_transaction serializes callbacks the way the server serializes
    conflicting single-document transactions.
    """

    def __init__(self, serialize_transactions: bool = True):
        self.users = MockCollection([PATIENT_DOC.copy(), PATIENT_2_DOC.copy()])
        self.invitation_codes = MockCollection([])
        self.invitation_errors = MockCollection([])
        self.admin_settings = MockCollection([])
        self.ai_conversation_summaries = MockCollection([])
        self.serialize_transactions = serialize_transactions
        self.transactions = 0
        self._txn_lock = asyncio.Lock()

    async def run_transaction(self, callback):
        self.transactions += 1
        session = MagicMock(name="session")
        if not self.serialize_transactions:
            return await callback(session)
        async with self._txn_lock:
            return await callback(session)

    async def connect(self):
        pass

    async def ensure_indexes(self):
        pass

    async def close(self):
        pass


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture(autouse=True)
def clean_collaborator_env(monkeypatch):
    """keep developer .env secrets out of tests"""
    for name in (
        "OPENAI_API_KEY", "SENDGRID_API_KEY", "SENDGRID_API_KEY_ID",
        "SENDGRID_FROM_EMAIL", "OPENAI_BASE_URL", "SENDGRID_BASE_URL",
    ):
        monkeypatch.setenv(name, "")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://openai.test/v1")
    monkeypatch.setenv("SENDGRID_BASE_URL", "https://sendgrid.test")
    monkeypatch.setenv("SENDGRID_FROM_EMAIL", "no-reply@therapii.app")


def _client_for(mock_db, identity=None):
    async def override_get_db():
        return mock_db

    app.dependency_overrides[get_db] = override_get_db
    if identity is not None:
        async def override_get_current_user():
            return identity

        app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def client(mock_db):
    """httpx async test client with the real bearer-token dependency"""
    async with _client_for(mock_db) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def therapist_client(mock_db):
    """client authenticated as the test therapist"""
    async with _client_for(mock_db, AuthContext(uid=THERAPIST_ID, role="therapist")) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def other_therapist_client(mock_db):
    async with _client_for(mock_db, AuthContext(uid=OTHER_THERAPIST_ID, role="therapist")) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def patient_client(mock_db):
    """client authenticated as the test patient"""
    async with _client_for(mock_db, AuthContext(uid=PATIENT_ID, role="patient")) as ac:
        yield ac
    app.dependency_overrides.clear()
