"""
Cordova CMS Backend - Test Configuration (conftest.py)
========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures:
    ├── mock_collection: AsyncMock standing in for a Motor collection
    ├── mock_database: MagicMock database handing out mock collections
    ├── mongo_database: mongomock-motor database with real index semantics
    ├── role_dao: In-memory DAO honouring the DAO contract
    ├── role_app: FastAPI app serving /role from role_dao
    └── test_client: HTTPX AsyncClient bound to role_app
"""

import asyncio
import os
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# Override settings for testing BEFORE any cms imports
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["MONGODB_DATABASE"] = "cordova-cms-test"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from cms.controllers.base import BaseController, ResourceConfig
from cms.exceptions import ConflictError, ValidationError
from cms.main import register_exception_handlers
from cms.middleware.request_id import RequestIDMiddleware


class InMemoryDAO:
    """
    Dict-backed DAO for endpoint tests.

    Each write checks and mutates the store without awaiting in between,
    which gives it the same per-document atomicity a unique index gives
    MongoDB: of two racing creates with one identifier, one wins.
    """

    def __init__(self, id_field: str):
        self.id_field = id_field
        self.documents: Dict[str, Dict[str, Any]] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        filter = dict(filter or {})
        return [
            dict(doc) for doc in self.documents.values()
            if all(doc.get(k) == v for k, v in filter.items())
        ]

    async def get_by_id(self, id_value: str) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        doc = self.documents.get(id_value)
        return dict(doc) if doc is not None else None

    async def create(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise ValidationError("Payload must be a JSON object", field="body")
        document = dict(payload)
        document.setdefault(self.id_field, uuid4().hex)
        await asyncio.sleep(0)
        key = str(document[self.id_field])
        if key in self.documents:
            raise ConflictError("role", key)
        document[self.id_field] = key
        self.documents[key] = document
        return dict(document)

    async def update_by_id(self, id_value: str, payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, Mapping) or not payload:
            raise ValidationError("Payload must be a non-empty JSON object", field="body")
        await asyncio.sleep(0)
        current = self.documents.get(id_value)
        if current is None:
            return None
        merged = {**current, **payload}
        new_key = str(merged[self.id_field])
        if new_key != id_value and new_key in self.documents:
            raise ConflictError("role", new_key)
        del self.documents[id_value]
        merged[self.id_field] = new_key
        self.documents[new_key] = merged
        return dict(merged)

    async def delete_by_id(self, id_value: str) -> bool:
        await asyncio.sleep(0)
        return self.documents.pop(id_value, None) is not None


def build_app(*configs: ResourceConfig) -> FastAPI:
    """Minimal app: request ids, exception handlers, and the given resources."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)
    router = APIRouter()
    for config in configs:
        BaseController(config, router).register_base_routes()
    app.include_router(router)
    return app


@pytest.fixture
def mock_collection():
    """
    Provides an AsyncMock shaped like a Motor collection.

    Usage:
        mock_collection.find_one.return_value = {"RoleId": "admin"}
        doc = await DocumentDAO(mock_collection, "RoleId").get_by_id("admin")
    """
    collection = MagicMock()
    collection.name = "role"
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.delete_one = AsyncMock()
    collection.create_index = AsyncMock(return_value="uniq_RoleId")

    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    return collection


@pytest.fixture
def mock_database(mock_collection):
    """A database handle whose every collection is `mock_collection`."""
    database = MagicMock()
    database.__getitem__.return_value = mock_collection
    database.command = AsyncMock(return_value={"ok": 1.0})
    return database


@pytest.fixture
def mongo_database():
    """
    An in-process MongoDB stand-in that enforces unique indexes.

    Usage:
        dao = DocumentDAO(mongo_database["role"], "RoleId")
        await dao.ensure_indexes()
    """
    return AsyncMongoMockClient()["cordova-cms-test"]


@pytest.fixture
def role_dao():
    return InMemoryDAO("RoleId")


@pytest.fixture
def role_app(role_dao):
    return build_app(ResourceConfig(name="role", id_field="RoleId", dao=role_dao))


@pytest_asyncio.fixture
async def test_client(role_app):
    """
    Provides an async HTTP client talking to role_app in-process.

    Usage:
        async def test_list(test_client):
            response = await test_client.get("/role")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=role_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
