"""
Cordova CMS Backend - Base Resource Controller
================================================

What:  Registers the standard CRUD route set for one resource on a router
       and delegates persistence to the resource's DAO.
How:   `register_base_routes(router, config)` defines five handlers that
       close over the config. `BaseController` wraps a config and a router
       and makes registration idempotent per instance.
Who:   Concrete controllers (cms.controllers.role) build a config and call
       register_base_routes(); nothing else about them is resource-specific.

Route Table (prefix = /<name>):
    GET     /<name>          → 200 [Document...]
    GET     /<name>/{id}     → 200 Document | 404
    POST    /<name>          → 201 Document | 400 | 409
    PUT     /<name>/{id}     → 200 Document | 400 | 404 | 409
    DELETE  /<name>/{id}     → 204 | 404

Handlers raise the application exceptions; the global handlers registered
in main.py turn them into responses, so each request is answered once.
"""

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Set, TypeVar

from bson import ObjectId
from fastapi import APIRouter, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from cms.dao import ResourceDAO
from cms.exceptions import NotFoundError, ValidationError
from cms.schemas import ErrorResponse

logger = logging.getLogger(__name__)

RESOURCE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

T = TypeVar("T")


@dataclass(frozen=True)
class ResourceConfig:
    """
    Everything the route wiring needs to know about one resource.

    Attributes:
        name:      Collection name and route prefix (e.g. "role").
        id_field:  Public identifier attribute (e.g. "RoleId").
        dao:       Data access object for the resource's collection.
    """
    name: str
    id_field: str
    dao: ResourceDAO

    def __post_init__(self) -> None:
        if not RESOURCE_NAME_PATTERN.match(self.name):
            raise ValueError(
                f"Invalid resource name {self.name!r}: use letters, digits, '-' or '_'"
            )
        if not self.id_field:
            raise ValueError(f"Resource {self.name!r} needs an identifier field")
        dao_field = getattr(self.dao, "id_field", self.id_field)
        if dao_field != self.id_field:
            raise ValueError(
                f"Resource {self.name!r} uses id field {self.id_field!r} "
                f"but its DAO is keyed by {dao_field!r}"
            )

    @property
    def path(self) -> str:
        return f"/{self.name}"


def render(content: Any, status_code: int = 200) -> JSONResponse:
    """Serialize documents, rendering stray ObjectId references as strings."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(content, custom_encoder={ObjectId: str}),
    )


async def read_json_object(request: Request) -> Dict[str, Any]:
    """
    Parse the request body as a non-empty JSON object.

    Raises ValidationError before any store call when the body is missing,
    is not JSON, is not an object, or is an empty object.
    """
    raw = await request.body()
    if not raw.strip():
        raise ValidationError("Request body is required", field="body")
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body is not valid JSON", field="body")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", field="body")
    if not body:
        raise ValidationError("Request body must not be empty", field="body")
    return body


# Strong references to writes still running after their request was cancelled
_detached_writes: Set["asyncio.Task[Any]"] = set()


def _log_detached_write(description: str, task: "asyncio.Task[Any]") -> None:
    _detached_writes.discard(task)
    if task.cancelled():
        logger.warning("%s was cancelled after the client disconnected", description)
        return
    error = task.exception()
    if error is not None:
        logger.warning(
            "%s failed after the client disconnected: %s", description, type(error).__name__
        )
    else:
        logger.info("%s completed after the client disconnected", description)


async def shielded_write(description: str, write: Awaitable[T]) -> T:
    """
    Await a DAO write so that cancelling the request does not cancel it.

    If the request is cancelled the write keeps running; its outcome is
    logged when it finishes.
    """
    task = asyncio.ensure_future(write)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        _detached_writes.add(task)
        task.add_done_callback(functools.partial(_log_detached_write, description))
        raise


def _is_registered(router: APIRouter, prefix: str) -> bool:
    for route in router.routes:
        if isinstance(route, APIRoute) and (
            route.path == prefix or route.path.startswith(prefix + "/")
        ):
            return True
    return False


def register_base_routes(router: APIRouter, config: ResourceConfig) -> APIRouter:
    """
    Add the CRUD route set for `config` to `router`.

    Raises ValueError if the router already serves this resource's prefix;
    the same resource registered twice would shadow its own handlers.
    """
    prefix = router.prefix + config.path
    if _is_registered(router, prefix):
        raise ValueError(f"Routes for {prefix!r} are already registered on this router")

    dao = config.dao
    name = config.name
    item_path = config.path + "/{document_id}"
    tags = [name]

    @router.get(
        config.path,
        name=f"list_{name}",
        summary=f"List all {name} documents",
        responses={500: {"model": ErrorResponse}},
        tags=tags,
    )
    async def list_documents() -> JSONResponse:
        documents = await dao.list()
        response = render(documents)
        response.headers["X-Total-Count"] = str(len(documents))
        return response

    @router.get(
        item_path,
        name=f"get_{name}",
        summary=f"Get a {name} by {config.id_field}",
        responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=tags,
    )
    async def get_document(document_id: str) -> JSONResponse:
        document = await dao.get_by_id(document_id)
        if document is None:
            raise NotFoundError(resource=name, resource_id=document_id)
        return render(document)

    @router.post(
        config.path,
        name=f"create_{name}",
        status_code=201,
        summary=f"Create a {name}",
        responses={
            400: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
        tags=tags,
    )
    async def create_document(request: Request) -> JSONResponse:
        body = await read_json_object(request)
        document = await shielded_write(f"Create {name}", dao.create(body))
        logger.info("Created %s %s", name, document.get(config.id_field))
        return render(document, status_code=201)

    @router.put(
        item_path,
        name=f"update_{name}",
        summary=f"Update fields of a {name}",
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
        tags=tags,
    )
    async def update_document(document_id: str, request: Request) -> JSONResponse:
        body = await read_json_object(request)
        document = await shielded_write(
            f"Update {name} {document_id}", dao.update_by_id(document_id, body)
        )
        if document is None:
            raise NotFoundError(resource=name, resource_id=document_id)
        logger.info("Updated %s %s", name, document_id)
        return render(document)

    @router.delete(
        item_path,
        name=f"delete_{name}",
        status_code=204,
        summary=f"Delete a {name}",
        responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=tags,
    )
    async def delete_document(document_id: str) -> Response:
        removed = await shielded_write(
            f"Delete {name} {document_id}", dao.delete_by_id(document_id)
        )
        if not removed:
            raise NotFoundError(resource=name, resource_id=document_id)
        logger.info("Deleted %s %s", name, document_id)
        return Response(status_code=204)

    logger.debug("Registered CRUD routes for %s", prefix)
    return router


class BaseController:
    """
    Holds one resource's config and the router it is served from.

    register_base_routes() wires the route table the first time it is
    called and is a no-op afterwards.
    """

    def __init__(self, config: ResourceConfig, router: APIRouter):
        self.config = config
        self.router = router
        self._registered = False

    @classmethod
    def for_resource(
        cls, name: str, id_field: str, router: APIRouter, dao: ResourceDAO
    ) -> "BaseController":
        return cls(ResourceConfig(name=name, id_field=id_field, dao=dao), router)

    @property
    def registered(self) -> bool:
        return self._registered

    def register_base_routes(self) -> "BaseController":
        if not self._registered:
            register_base_routes(self.router, self.config)
            self._registered = True
        return self
