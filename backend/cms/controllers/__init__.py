"""
Cordova CMS Backend - Resource Controllers
============================================

What:  Registry of the resources this backend serves.
How:   Each entry is a factory `(router, database) -> BaseController` that
       builds the resource's DAO and registers its CRUD routes. The app
       factory registers them all on one router; the lifespan hook walks
       the same list to create unique indexes.

Adding a resource is one factory in its own module plus one line here.
"""

from typing import Callable, List

from fastapi import APIRouter
from motor.motor_asyncio import AsyncIOMotorDatabase

from cms.controllers.base import BaseController, ResourceConfig, register_base_routes
from cms.controllers.role import role_controller

ControllerFactory = Callable[[APIRouter, AsyncIOMotorDatabase], BaseController]

CONTROLLERS: List[ControllerFactory] = [
    role_controller,
]


def register_controllers(
    router: APIRouter, database: AsyncIOMotorDatabase
) -> List[BaseController]:
    """Instantiate every registered controller against `database`."""
    return [factory(router, database) for factory in CONTROLLERS]


__all__ = [
    "BaseController",
    "CONTROLLERS",
    "ResourceConfig",
    "register_base_routes",
    "register_controllers",
    "role_controller",
]
