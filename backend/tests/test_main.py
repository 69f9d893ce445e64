"""
Cordova CMS Backend - Application Factory Tests
=================================================

What:  Tests for create_app(): mounted routes, health check, lifespan hooks.
How:   Passes a MagicMock database so no MongoDB is needed.
"""

from unittest.mock import patch

import pytest
from fastapi.routing import APIRoute
from httpx import ASGITransport, AsyncClient
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from cms import __version__
from cms.main import create_app, lifespan


async def send(app, method, path, **kwargs):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.request(method, path, **kwargs)


async def get(app, path):
    return await send(app, "GET", path)


class TestCreateApp:
    """Tests for application assembly."""

    def test_mounts_role_and_health_routes(self, mock_database):
        app = create_app(database=mock_database)

        paths = {route.path for route in app.routes if isinstance(route, APIRoute)}

        assert {"/health", "/role", "/role/{document_id}"} <= paths
        assert app.state.database is mock_database
        assert app.state.owns_client is False

    @pytest.mark.asyncio
    async def test_list_roles_through_dao(self, mock_database, mock_collection):
        mock_collection.find.return_value.to_list.return_value = [{"RoleId": "admin"}]
        app = create_app(database=mock_database)

        response = await get(app, "/role")

        assert response.status_code == 200
        assert response.json() == [{"RoleId": "admin"}]
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_store_outage_is_500(self, mock_database, mock_collection):
        mock_collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")
        app = create_app(database=mock_database)

        response = await get(app, "/role/admin")

        assert response.status_code == 500
        assert response.json()["error"] == "store_error"
        assert "no servers" not in response.text


class TestHealth:
    """Tests for GET /health."""

    @pytest.mark.asyncio
    async def test_healthy(self, mock_database):
        app = create_app(database=mock_database)

        response = await get(app, "/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["version"] == __version__
        mock_database.command.assert_awaited_once_with("ping")

    @pytest.mark.asyncio
    async def test_unhealthy_when_ping_fails(self, mock_database):
        mock_database.command.side_effect = ServerSelectionTimeoutError("timeout")
        app = create_app(database=mock_database)

        response = await get(app, "/health")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"


class TestLifespan:
    """Startup creates identifier indexes; failures do not stop the server."""

    @pytest.mark.asyncio
    async def test_startup_ensures_indexes(self, mock_database, mock_collection):
        app = create_app(database=mock_database)

        with patch("cms.main.setup_logging"), patch("cms.main.close_client") as close:
            async with lifespan(app):
                mock_collection.create_index.assert_awaited_once_with(
                    "RoleId", unique=True, name="uniq_RoleId"
                )
        close.assert_not_called()

    @pytest.mark.asyncio
    async def test_index_failure_is_logged_not_raised(self, mock_database, mock_collection):
        mock_collection.create_index.side_effect = OperationFailure("not authorized")
        app = create_app(database=mock_database)

        with patch("cms.main.setup_logging"):
            async with lifespan(app):
                pass

    @pytest.mark.asyncio
    async def test_shutdown_closes_owned_client(self, mock_database):
        app = create_app(database=mock_database)
        app.state.owns_client = True

        with patch("cms.main.setup_logging"), patch("cms.main.close_client") as close:
            async with lifespan(app):
                pass
        close.assert_called_once()

    @pytest.mark.asyncio
    async def test_writes_wait_for_index_after_failed_startup(
        self, mock_database, mock_collection
    ):
        mock_collection.create_index.side_effect = [
            ServerSelectionTimeoutError("starting"),
            ServerSelectionTimeoutError("starting"),
            "uniq_RoleId",
        ]
        app = create_app(database=mock_database)

        with patch("cms.main.setup_logging"), patch("cms.main.close_client"):
            async with lifespan(app):
                refused = await send(app, "POST", "/role", json={"RoleId": "admin"})
                accepted = await send(app, "POST", "/role", json={"RoleId": "admin"})

        assert refused.status_code == 500
        assert refused.json()["error"] == "store_error"
        assert accepted.status_code == 201
        mock_collection.insert_one.assert_awaited_once()


class TestRoutingErrors:
    """Unknown paths and methods get the same error body as everything else."""

    @pytest.mark.asyncio
    async def test_unknown_path(self, mock_database):
        app = create_app(database=mock_database)

        response = await send(app, "GET", "/nope", headers={"X-Request-ID": "r-1"})

        assert response.status_code == 404
        assert response.json() == {
            "error": "not_found",
            "message": "Not Found",
            "request_id": "r-1",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, path", [("PATCH", "/role/admin"), ("DELETE", "/role"), ("POST", "/role/admin")]
    )
    async def test_wrong_method(self, mock_database, method, path):
        app = create_app(database=mock_database)

        response = await send(app, method, path)

        assert response.status_code == 405
        body = response.json()
        assert body["error"] == "method_not_allowed"
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert "Allow" in response.headers
