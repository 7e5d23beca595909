"""
Pytest configuration and shared test helpers for backend tests.

Tests never talk to MongoDB. `fake_db` swaps database.db for an in-memory
stand-in of the motor collections used by the app, and database.transaction for
a snapshot/restore version so rollback behaviour can be asserted.
"""
import copy
import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from datetime import datetime, timezone

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app
from auth import create_access_token
from database import database
from utils.rate_limiter import rate_limiter

WEBHOOK_TOKEN = "test-kirvano-token"
OPERATOR_EMAIL = "owner@example.com"


# ============================================================================
# In-memory motor stand-in
# ============================================================================

def _matches(doc, query):
    return all(doc.get(key) == value for key, value in (query or {}).items())


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        return {k: doc[k] for k in included if k in doc}
    for key, value in projection.items():
        if not value:
            doc.pop(key, None)
    return doc


def _sort_key(field):
    def key(doc):
        value = doc.get(field)
        return (value is not None, value if value is not None else 0)
    return key


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._skip = 0
        self._limit = None

    def sort(self, field, direction=1):
        self._docs.sort(key=_sort_key(field), reverse=direction == -1)
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        caps = [x for x in (self._limit, length) if x]
        return docs[:min(caps)] if caps else docs


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []
        # Operation names that raise, for failure injection
        self.fail_on = set()
        # Operation name -> exception instance to raise instead
        self.fail_with = {}

    def _check(self, op):
        if op in self.fail_with:
            raise self.fail_with[op]
        if op in self.fail_on:
            raise RuntimeError(f"injected failure: {self.name}.{op}")

    async def find_one(self, query=None, projection=None, session=None):
        self._check("find_one")
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None, session=None):
        self._check("find")
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query)])

    async def insert_one(self, doc, session=None):
        self._check("insert_one")
        doc.setdefault("_id", uuid.uuid4().hex)
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query, update, upsert=False, session=None):
        self._check("update_one")
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = {
                **query,
                **copy.deepcopy(update.get("$setOnInsert", {})),
                **copy.deepcopy(update.get("$set", {})),
                **update.get("$inc", {}),
                "_id": uuid.uuid4().hex,
            }
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, query, session=None):
        self._check("delete_one")
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query, session=None):
        self._check("delete_many")
        kept = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)

    async def count_documents(self, query, session=None):
        self._check("count_documents")
        return sum(1 for d in self.docs if _matches(d, query))

    async def create_index(self, *args, **kwargs):
        return None


class FakeDB:
    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    async def command(self, *args, **kwargs):
        return {"ok": 1}

    def snapshot(self):
        return {name: copy.deepcopy(c.docs) for name, c in self._collections.items()}

    def restore(self, snapshot):
        for name, collection in self._collections.items():
            collection.docs = copy.deepcopy(snapshot.get(name, []))

    @asynccontextmanager
    async def transaction(self):
        """All-or-nothing like a Mongo transaction: restore the snapshot on error."""
        snapshot = self.snapshot()
        try:
            yield SimpleNamespace(name="fake-session")
        except Exception:
            self.restore(snapshot)
            raise


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    monkeypatch.setenv("KIRVANO_WEBHOOK_TOKEN", WEBHOOK_TOKEN)
    monkeypatch.setenv("OPERATOR_EMAIL", OPERATOR_EMAIL)
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    rate_limiter.attempts.clear()
    yield
    rate_limiter.attempts.clear()


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDB()
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(database, "transaction", db.transaction)
    return db


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


# ============================================================================
# Helpers
# ============================================================================

def add_user(db, email="trader@example.com", plan="free", operator=False, **fields):
    """Insert a profile (and operator role) directly. Returns the profile dict."""
    user_id = fields.pop("user_id", str(uuid.uuid4()))
    profile = {
        "user_id": user_id,
        "email": email,
        "email_lower": email.strip().lower(),
        "name": fields.pop("name", "Trader"),
        "whatsapp": "",
        "cpf": "",
        "plan": plan,
        "member_since": fields.pop("member_since", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        "last_payment": None,
        "plan_updated_at": None,
        **fields,
    }
    db.users.docs.append(copy.deepcopy(profile))
    if operator:
        db.admin_roles.docs.append({"user_id": user_id, "email": email, "role": "ROLE_OWNER"})
    return profile


def auth_headers(user_id, email="trader@example.com"):
    token = create_access_token({"user_id": user_id, "email": email})
    return {"Authorization": f"Bearer {token}"}


def webhook_headers(token=WEBHOOK_TOKEN):
    return {"x-kirvano-token": token, "Content-Type": "application/json"}
