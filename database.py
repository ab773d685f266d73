"""
Persistence access for the DevCamper collections.

Documents are plain dicts keyed by ``_id`` (a bson ObjectId). Two backends
share the Store contract:

- MongoStore talks to MongoDB through motor.
- MemoryStore keeps collections in process memory and evaluates the subset of
  the MongoDB query language the API issues. It backs development runs with
  ``DATABASE_URL=memory://`` and the test-suite.
"""

import copy
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import Settings
from errors import NotFoundError, ValidationError
from logger import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]
Projection = Dict[str, int]
SortSpec = List[Tuple[str, int]]

# (collection, keys, unique)
INDEXES = [
    ("user", [("email", ASCENDING)], True),
    ("bootcamp", [("name", ASCENDING)], True),
    ("review", [("bootcamp", ASCENDING), ("user", ASCENDING)], True),
    ("bootcamp", [("location", GEOSPHERE)], False),
]

DUPLICATE_MESSAGE = "Duplicate field value entered"


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFoundError(f"Resource not found with id of {id_str}")


class Store(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def count(self, collection: str, query: Document) -> int: ...

    async def find(
        self,
        collection: str,
        query: Document,
        projection: Optional[Projection] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Document]: ...

    async def find_one(
        self, collection: str, query: Document, projection: Optional[Projection] = None
    ) -> Optional[Document]: ...

    async def find_by_id(
        self, collection: str, id: Any, projection: Optional[Projection] = None
    ) -> Optional[Document]: ...

    async def create(self, collection: str, doc: Document) -> Document: ...

    async def update_one(
        self,
        collection: str,
        query: Document,
        set_fields: Optional[Document] = None,
        unset_fields: Iterable[str] = (),
    ) -> Optional[Document]:
        """Atomically update the first document matching ``query``.

        Returns the updated document, or None when nothing matched at the
        moment of the write.
        """
        ...

    async def update_by_id(
        self,
        collection: str,
        id: Any,
        set_fields: Optional[Document] = None,
        unset_fields: Iterable[str] = (),
    ) -> Optional[Document]: ...

    async def delete_by_id(self, collection: str, id: Any) -> Optional[Document]: ...

    async def delete_many(self, collection: str, query: Document) -> int: ...


class MongoStore:
    """MongoDB backend using motor's asyncio client."""

    def __init__(self, url: str, name: str):
        self.client = AsyncIOMotorClient(url, tz_aware=True)
        self.db = self.client[name]

    async def connect(self) -> None:
        for collection, keys, unique in INDEXES:
            await self.db[collection].create_index(keys, unique=unique)
        logger.info("MongoDB connected", database=self.db.name)

    async def close(self) -> None:
        self.client.close()

    async def count(self, collection: str, query: Document) -> int:
        return await self.db[collection].count_documents(query)

    async def find(self, collection, query, projection=None, sort=None, skip=0, limit=0):
        cursor = self.db[collection].find(query, projection)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [doc async for doc in cursor]

    async def find_one(self, collection, query, projection=None):
        return await self.db[collection].find_one(query, projection)

    async def find_by_id(self, collection, id, projection=None):
        return await self.find_one(collection, {"_id": oid(id)}, projection)

    async def create(self, collection, doc):
        doc = dict(doc)
        try:
            result = await self.db[collection].insert_one(doc)
        except DuplicateKeyError:
            raise ValidationError(DUPLICATE_MESSAGE)
        doc["_id"] = result.inserted_id
        return doc

    async def update_one(self, collection, query, set_fields=None, unset_fields=()):
        update: Document = {}
        if set_fields:
            update["$set"] = set_fields
        unset_fields = list(unset_fields)
        if unset_fields:
            update["$unset"] = {field: "" for field in unset_fields}
        if not update:
            return await self.find_one(collection, query)
        try:
            return await self.db[collection].find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise ValidationError(DUPLICATE_MESSAGE)

    async def update_by_id(self, collection, id, set_fields=None, unset_fields=()):
        return await self.update_one(collection, {"_id": oid(id)}, set_fields, unset_fields)

    async def delete_by_id(self, collection, id):
        return await self.db[collection].find_one_and_delete({"_id": oid(id)})

    async def delete_many(self, collection, query):
        result = await self.db[collection].delete_many(query)
        return result.deleted_count


class MemoryStore:
    """In-process backend honouring the same unique indexes as MongoStore."""

    def __init__(self, indexes: Sequence[Tuple[str, list, bool]] = INDEXES):
        self._collections: Dict[str, List[Document]] = {}
        self._unique = [(coll, [key for key, _ in keys]) for coll, keys, unique in indexes if unique]

    async def connect(self) -> None:
        logger.info("In-memory store ready")

    async def close(self) -> None:
        self._collections.clear()

    def _docs(self, collection: str) -> List[Document]:
        return self._collections.setdefault(collection, [])

    def _check_unique(self, collection: str, doc: Document) -> None:
        for coll, keys in self._unique:
            if coll != collection or any(key not in doc for key in keys):
                continue
            for other in self._docs(collection):
                if other["_id"] == doc["_id"]:
                    continue
                if all(other.get(key) == doc[key] for key in keys):
                    raise ValidationError(DUPLICATE_MESSAGE)

    async def count(self, collection, query):
        return sum(1 for doc in self._docs(collection) if _matches(doc, query))

    async def find(self, collection, query, projection=None, sort=None, skip=0, limit=0):
        docs = [doc for doc in self._docs(collection) if _matches(doc, query)]
        for field, direction in reversed(sort or []):
            docs.sort(key=lambda d, f=field: _sort_key(_first(d, f)), reverse=direction == DESCENDING)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return [_project(doc, projection) for doc in docs]

    async def find_one(self, collection, query, projection=None):
        docs = await self.find(collection, query, projection, limit=1)
        return docs[0] if docs else None

    async def find_by_id(self, collection, id, projection=None):
        return await self.find_one(collection, {"_id": oid(id)}, projection)

    async def create(self, collection, doc):
        doc = copy.deepcopy(dict(doc))
        doc.setdefault("_id", ObjectId())
        self._check_unique(collection, doc)
        self._docs(collection).append(doc)
        return copy.deepcopy(doc)

    async def update_one(self, collection, query, set_fields=None, unset_fields=()):
        # match and write happen without yielding to the event loop
        docs = self._docs(collection)
        for i, doc in enumerate(docs):
            if not _matches(doc, query):
                continue
            updated = copy.deepcopy(doc)
            for path, value in (set_fields or {}).items():
                _set_path(updated, path, copy.deepcopy(value))
            for path in unset_fields:
                _unset_path(updated, path)
            self._check_unique(collection, updated)
            docs[i] = updated
            return copy.deepcopy(updated)
        return None

    async def update_by_id(self, collection, id, set_fields=None, unset_fields=()):
        return await self.update_one(collection, {"_id": oid(id)}, set_fields, unset_fields)

    async def delete_by_id(self, collection, id):
        docs = self._docs(collection)
        target = oid(id)
        for i, doc in enumerate(docs):
            if doc["_id"] == target:
                return docs.pop(i)
        return None

    async def delete_many(self, collection, query):
        docs = self._docs(collection)
        kept = [doc for doc in docs if not _matches(doc, query)]
        self._collections[collection] = kept
        return len(docs) - len(kept)


async def find_or_404(store: Store, collection: str, id: Any, message: Optional[str] = None) -> Document:
    doc = await store.find_by_id(collection, id)
    if not doc:
        raise NotFoundError(message or f"Resource not found with id of {id}")
    return doc


def open_store(settings: Settings) -> Store:
    if settings.database_url.startswith("memory://"):
        return MemoryStore()
    return MongoStore(settings.database_url, settings.database_name)


# Query evaluation for MemoryStore


def _resolve(doc: Document, path: str) -> List[Any]:
    values: List[Any] = [doc]
    for part in path.split("."):
        found = []
        for value in values:
            if isinstance(value, dict) and part in value:
                found.append(value[part])
            elif isinstance(value, list):
                found.extend(item[part] for item in value if isinstance(item, dict) and part in item)
        values = found
    expanded = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _first(doc: Document, path: str) -> Any:
    values = _resolve(doc, path)
    return values[0] if values else None


def _is_operator_dict(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(k.startswith("$") for k in condition)


def _matches(doc: Document, query: Document) -> bool:
    for path, condition in query.items():
        values = _resolve(doc, path)
        if _is_operator_dict(condition):
            if not all(_apply(op, arg, values) for op, arg in condition.items()):
                return False
        elif condition is None:
            if any(value is not None for value in values):
                return False
        elif not any(value == condition for value in values):
            return False
    return True


def _comparable(a: Any, b: Any) -> bool:
    numbers = (int, float)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool)
    if isinstance(a, numbers) and isinstance(b, numbers):
        return True
    return type(a) is type(b) or (isinstance(a, datetime) and isinstance(b, datetime))


def _apply(op: str, arg: Any, values: List[Any]) -> bool:
    if op == "$eq":
        return any(v == arg for v in values) or (arg is None and not values)
    if op == "$gt":
        return any(_comparable(v, arg) and v > arg for v in values)
    if op == "$gte":
        return any(_comparable(v, arg) and v >= arg for v in values)
    if op == "$lt":
        return any(_comparable(v, arg) and v < arg for v in values)
    if op == "$lte":
        return any(_comparable(v, arg) and v <= arg for v in values)
    if op == "$in":
        return any(v == a for v in values for a in arg)
    if op == "$ne":
        return not any(v == arg for v in values)
    if op == "$exists":
        return bool(values) == bool(arg)
    if op == "$geoWithin":
        (lng, lat), radius = arg["$centerSphere"]
        return any(_within_sphere(v, lng, lat, radius) for v in values)
    raise ValidationError(f"Unsupported query operator {op}")


def _within_sphere(value: Any, lng: float, lat: float, radius: float) -> bool:
    if not isinstance(value, dict) or not value.get("coordinates"):
        return False
    point_lng, point_lat = value["coordinates"][:2]
    return _angular_distance(point_lng, point_lat, lng, lat) <= radius


def _angular_distance(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Central angle in radians between two points (haversine)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(h)))


def _sort_key(value: Any) -> Tuple[int, Any]:
    # BSON comparison order
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (6, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, dict):
        return (3, str(value))
    if isinstance(value, list):
        return (4, str(value))
    if isinstance(value, ObjectId):
        return (5, value)
    if isinstance(value, datetime):
        return (7, value)
    return (8, str(value))


def _project(doc: Document, projection: Optional[Projection]) -> Document:
    if not projection:
        return copy.deepcopy(doc)
    include = {key.split(".")[0] for key, flag in projection.items() if flag}
    exclude = {key for key, flag in projection.items() if not flag}
    if include - {"_id"}:
        out = {key: copy.deepcopy(doc[key]) for key in include if key in doc}
        if "_id" not in exclude:
            out["_id"] = doc["_id"]
        return out
    return {key: copy.deepcopy(value) for key, value in doc.items() if key not in exclude}


def _set_path(doc: Document, path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    for part in parents:
        doc = doc.setdefault(part, {})
    doc[leaf] = value


def _unset_path(doc: Document, path: str) -> None:
    *parents, leaf = path.split(".")
    for part in parents:
        doc = doc.get(part)
        if not isinstance(doc, dict):
            return
    doc.pop(leaf, None)
