"""Role controller: the `role` collection served under /role, keyed by RoleId."""

from fastapi import APIRouter
from motor.motor_asyncio import AsyncIOMotorDatabase

from cms.controllers.base import BaseController, ResourceConfig
from cms.dao import DocumentDAO

ROLE_RESOURCE = "role"
ROLE_ID_FIELD = "RoleId"


def role_controller(router: APIRouter, database: AsyncIOMotorDatabase) -> BaseController:
    dao = DocumentDAO(database[ROLE_RESOURCE], ROLE_ID_FIELD)
    config = ResourceConfig(name=ROLE_RESOURCE, id_field=ROLE_ID_FIELD, dao=dao)
    return BaseController(config, router).register_base_routes()
