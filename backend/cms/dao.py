"""
Cordova CMS Backend - Generic Document DAO
============================================

What:  Translates generic CRUD intents into MongoDB operations for one
       collection, keyed by a configurable public identifier field.
How:   `ResourceDAO` is the contract controllers depend on; `DocumentDAO`
       implements it on top of a Motor collection.
Who:   Constructed once per resource by the controller registry; called by
       base-controller route handlers.

Outcome conventions:
    get_by_id / update_by_id   → None when no document has the id
    delete_by_id               → False when nothing was removed
    ConflictError              → identifier already taken (unique index)
    ValidationError            → payload is not a usable mapping or id
    StoreError (on writes)     → unique index could not be created yet
    StoreError                 → any other driver failure (not retried)

Documents leave the DAO without MongoDB's `_id`: every read projects it
away and writes return a copy of what was stored.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from cms.exceptions import ConflictError, StoreError, ValidationError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

# Field MongoDB reserves for its own primary key
STORE_KEY = "_id"

# Regeneration attempts when a server-generated identifier collides
GENERATED_ID_ATTEMPTS = 3


class ResourceDAO(Protocol):
    """Contract every resource DAO satisfies."""

    id_field: str

    async def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]: ...

    async def get_by_id(self, id_value: str) -> Optional[Document]: ...

    async def create(self, payload: Any) -> Document: ...

    async def update_by_id(self, id_value: str, payload: Any) -> Optional[Document]: ...

    async def delete_by_id(self, id_value: str) -> bool: ...

    async def ensure_indexes(self) -> None: ...


def _new_identifier() -> str:
    return uuid4().hex


class DocumentDAO:
    """
    MongoDB-backed DAO for a single collection.

    Args:
        collection: Motor collection holding the resource's documents.
        id_field:   Name of the public identifier attribute (e.g. "RoleId").
        id_type:    Callable coercing identifiers to their stored type.
                    Applied to path ids, payload ids and generated ids.
        id_factory: Produces identifiers for payloads that omit `id_field`.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        id_field: str,
        id_type: Callable[[Any], Any] = str,
        id_factory: Callable[[], Any] = _new_identifier,
    ):
        self.collection = collection
        self.id_field = id_field
        self.id_type = id_type
        self.id_factory = id_factory
        self._indexed = False

    @property
    def resource(self) -> str:
        return self.collection.name

    # ── Indexes ───────────────────────────────────────────────────────────

    async def ensure_indexes(self) -> None:
        """
        Create the unique index on the identifier field.

        MongoDB skips indexes that already exist, so this runs on every
        startup. The index is what makes concurrent creates with the same
        identifier resolve to exactly one winner.
        """
        try:
            await self.collection.create_index(
                self.id_field, unique=True, name=f"uniq_{self.id_field}"
            )
        except PyMongoError as e:
            raise self._store_error("ensure_indexes", e)
        self._indexed = True

    async def _require_index(self) -> None:
        # Writes are refused until the unique index exists; a failed
        # startup attempt is retried by the next write.
        if not self._indexed:
            await self.ensure_indexes()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Document]:
        """
        Return every document matching an equality filter (all when empty).

        The cursor is drained before returning so callers get a plain list.
        """
        query = dict(filter or {})
        if STORE_KEY in query:
            raise ValidationError(f"Cannot filter on '{STORE_KEY}'", field=STORE_KEY)
        try:
            cursor = self.collection.find(query, projection={STORE_KEY: False})
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise self._store_error("list", e)

    async def get_by_id(self, id_value: str) -> Optional[Document]:
        key = self._coerce_id(id_value)
        try:
            return await self.collection.find_one(
                {self.id_field: key}, projection={STORE_KEY: False}
            )
        except PyMongoError as e:
            raise self._store_error("get_by_id", e, id_value=id_value)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, payload: Any) -> Document:
        """
        Insert a new document.

        A payload without the identifier field gets a generated one. When a
        generated identifier collides it is regenerated; a client-supplied
        one that collides raises ConflictError.
        """
        document = self._validate_payload(payload)
        supplied = self.id_field in document
        if supplied:
            document[self.id_field] = self._coerce_id(document[self.id_field])
        await self._require_index()

        attempts = 1 if supplied else GENERATED_ID_ATTEMPTS
        for attempt in range(1, attempts + 1):
            if not supplied:
                document[self.id_field] = self._coerce_id(self.id_factory())
            # insert_one stamps `_id` onto the dict it is given
            stored = dict(document)
            try:
                await self.collection.insert_one(stored)
            except DuplicateKeyError:
                if supplied:
                    raise ConflictError(self.resource, str(document[self.id_field]))
                logger.warning(
                    "Generated %s collided in %s (attempt %d/%d)",
                    self.id_field, self.resource, attempt, attempts,
                )
                continue
            except PyMongoError as e:
                raise self._store_error("create", e)

            logger.debug("Created %s %s", self.resource, document[self.id_field])
            return document

        raise StoreError(
            message="Could not allocate a unique identifier. Please try again.",
            context={"resource": self.resource, "attempts": attempts},
        )

    async def update_by_id(self, id_value: str, payload: Any) -> Optional[Document]:
        """
        Merge payload fields into the document and return the result.

        Fields absent from the payload are left untouched. The identifier
        may be renamed, but not onto a value another document holds.
        """
        changes = self._validate_payload(payload)
        if not changes:
            raise ValidationError("Update payload must contain at least one field", field="body")
        key = self._coerce_id(id_value)
        if self.id_field in changes:
            changes[self.id_field] = self._coerce_id(changes[self.id_field])
        await self._require_index()

        try:
            return await self.collection.find_one_and_update(
                {self.id_field: key},
                {"$set": changes},
                projection={STORE_KEY: False},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ConflictError(self.resource, str(changes[self.id_field]))
        except PyMongoError as e:
            raise self._store_error("update_by_id", e, id_value=id_value)

    async def delete_by_id(self, id_value: str) -> bool:
        key = self._coerce_id(id_value)
        try:
            result = await self.collection.delete_one({self.id_field: key})
        except PyMongoError as e:
            raise self._store_error("delete_by_id", e, id_value=id_value)
        return result.deleted_count > 0

    # ── Helpers ───────────────────────────────────────────────────────────

    def _validate_payload(self, payload: Any) -> Document:
        if not isinstance(payload, Mapping):
            raise ValidationError("Payload must be a JSON object", field="body")
        document = dict(payload)
        if STORE_KEY in document:
            raise ValidationError(f"Field '{STORE_KEY}' is reserved", field=STORE_KEY)
        for key in document:
            # `$` and `.` are operator and path syntax to MongoDB
            if not isinstance(key, str) or not key or key.startswith("$") or "." in key:
                raise ValidationError(
                    f"Invalid field name {key!r}: must be non-empty, "
                    "not start with '$' and not contain '.'",
                    field=str(key),
                )
        return document

    def _coerce_id(self, value: Any) -> Any:
        if value is None or value == "":
            raise ValidationError(f"'{self.id_field}' must not be empty", field=self.id_field)
        try:
            key = self.id_type(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"'{self.id_field}' has an invalid value: {value!r}", field=self.id_field
            )
        # Identifiers are single path segments in /<name>/{id}
        if isinstance(key, str) and "/" in key:
            raise ValidationError(
                f"'{self.id_field}' must not contain '/'", field=self.id_field
            )
        return key

    def _store_error(self, operation: str, error: PyMongoError, **context: Any) -> StoreError:
        logger.error(
            "MongoDB %s failed on %s: %s", operation, self.resource, str(error)
        )
        return StoreError(
            context={
                "resource": self.resource,
                "operation": operation,
                "error_type": type(error).__name__,
                **context,
            }
        )
