"""
Pytest configuration and shared test helpers for backend tests.
"""
import os

# Skip MongoDB connection in the app lifespan when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("BILLING_WEBHOOK_SECRET", "whsec_test_secret")

import copy
import re
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import DuplicateKeyError

from fastapi.testclient import TestClient
from auth import create_access_token
from database import database
from models import User
from server import app
from utils.rate_limiter import rate_limiter


UNIQUE_KEYS = {
    "users": ("email", "user_id"),
    "quotations": ("short_id", "quotation_id"),
    "booking_requests": ("booking_id",),
    "magic_links": ("token_hash",),
}


def _get_path(doc, dotted):
    value = doc
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(doc, query):
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        value = _get_path(doc, key)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            if "$gt" in cond and not (value is not None and value > cond["$gt"]):
                return False
            if "$regex" in cond:
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                if value is None or not re.search(cond["$regex"], str(value), flags):
                    return False
        elif value != cond:
            return False
    return True


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    doc.pop("_id", None)
    if projection:
        included = [k for k, v in projection.items() if v and k != "_id"]
        if included:
            doc = {k: doc[k] for k in included if k in doc}
    return doc


class _Result:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class _Cursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs = sorted(self.docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    async def to_list(self, length=None):
        return self.docs[:length] if length else self.docs


class FakeCollection:
    """Subset of the Motor collection API backed by a list of dicts."""

    def __init__(self, name):
        self.name = name
        self.docs = []

    def _first(self, query):
        return next((d for d in self.docs if _matches(d, query)), None)

    def _apply(self, doc, update):
        for key, value in update.get("$set", {}).items():
            doc[key] = value
        for key, value in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + value

    async def insert_one(self, doc, **kw):
        for key in UNIQUE_KEYS.get(self.name, ()):
            if any(d.get(key) == doc.get(key) for d in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key error {self.name}.{key}")
        self.docs.append(copy.deepcopy(doc))
        return _Result(inserted_id=len(self.docs))

    async def find_one(self, query, projection=None, **kw):
        doc = self._first(query)
        return _project(doc, projection) if doc else None

    def find(self, query, projection=None):
        return _Cursor([_project(d, projection) for d in self.docs if _matches(d, query)])

    async def update_one(self, query, update, **kw):
        doc = self._first(query)
        if doc:
            self._apply(doc, update)
        return _Result(matched_count=int(bool(doc)), modified_count=int(bool(doc)))

    async def find_one_and_update(self, query, update, projection=None, return_document=None, **kw):
        doc = self._first(query)
        if not doc:
            return None
        before = _project(doc, projection)
        self._apply(doc, update)
        return _project(doc, projection) if return_document else before

    async def delete_one(self, query, **kw):
        doc = self._first(query)
        if doc:
            self.docs.remove(doc)
        return _Result(deleted_count=int(bool(doc)))

    async def count_documents(self, query, **kw):
        return sum(1 for d in self.docs if _matches(d, query))


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self._collections.setdefault(name, FakeCollection(name))


@pytest.fixture
def store():
    """In-memory database patched in for every module using database.get_db()."""
    fake = FakeDatabase()
    with patch.object(database, "get_db", MagicMock(return_value=fake)):
        yield fake


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app)."""
    return TestClient(app)


def make_user(store, email="owner@forwarder.com", **overrides):
    """Insert a user document directly and return a copy."""
    user = User(email=email, name=overrides.pop("name", "Owner"), **overrides)
    doc = user.model_dump()
    for key in ("subscription_status", "provider"):
        doc[key] = getattr(doc[key], "value", doc[key])
    store.users.docs.append(doc)
    return copy.deepcopy(doc)


def auth_headers(user):
    token = create_access_token({"sub": user["user_id"], "email": user["email"]})
    return {"Authorization": f"Bearer {token}"}


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)
