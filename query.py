"""
Generic list filtering, sorting, pagination and population.

Raw request parameters are parsed into a QueryDescriptor by an explicit
parser; only the comparison operators below ever reach the store, so a
parameter can never smuggle in an arbitrary ``$`` operator.

    GET /bootcamps?average_cost[lte]=10000&careers[in]=Business,UI/UX
        &select=name,average_cost&sort=-average_cost,name&page=2&limit=10
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from bson import ObjectId
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from database import Document, Store
from logger import get_logger

logger = get_logger(__name__)

RESERVED_PARAMS = ("select", "sort", "limit", "page")
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 25
MAX_LIMIT = 1000
# largest skip a MongoDB command can encode
MAX_SKIP = 2**63 - 1
DEFAULT_SORT_FIELD = "created_at"

_KEY_PATTERN = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)(?:\[(?P<op>[A-Za-z]+)\])?$")

RawValue = Union[str, Sequence[str], Mapping[str, Any]]


class Op(str, Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"

    @property
    def mongo(self) -> str:
        return f"${self.value}"


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Compare:
    field: str
    op: Op
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


Filter = Union[Equals, Compare, In]


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Populate:
    """Expansion of a related collection into ``field``.

    Forward references replace the id stored in ``field`` with the related
    document. With ``foreign_field`` set, ``field`` receives every document of
    ``collection`` whose ``foreign_field`` points back at this one.
    """

    field: str
    collection: str
    select: Tuple[str, ...] = ()
    foreign_field: Optional[str] = None


@dataclass
class QueryDescriptor:
    filters: List[Filter] = field(default_factory=list)
    select: Optional[Tuple[str, ...]] = None
    sort: Tuple[SortKey, ...] = (SortKey(DEFAULT_SORT_FIELD, descending=True),)
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    populate: Tuple[Populate, ...] = ()

    def mongo_filter(self) -> Document:
        criteria: Document = {}
        for f in self.filters:
            if isinstance(f, Equals):
                condition: Any = f.value
            elif isinstance(f, Compare):
                condition = {f.op.mongo: f.value}
            else:
                condition = {"$in": list(f.values)}
            criteria[f.field] = _merge(criteria.get(f.field, _MISSING), condition)
        return criteria

    def mongo_projection(self) -> Optional[Dict[str, int]]:
        if not self.select:
            return None
        return {name: 1 for name in self.select}

    def mongo_sort(self) -> List[Tuple[str, int]]:
        keys = [(key.field, -1 if key.descending else 1) for key in self.sort]
        if all(name != "_id" for name, _ in keys):
            # insertion order breaks ties
            keys.append(("_id", 1))
        return keys


_MISSING = object()


def _as_operators(condition: Any) -> Dict[str, Any]:
    return condition if isinstance(condition, dict) else {"$eq": condition}


def _merge(existing: Any, condition: Any) -> Any:
    if existing is _MISSING:
        return condition
    return {**_as_operators(existing), **_as_operators(condition)}


@dataclass(frozen=True)
class PageLink:
    page: int
    limit: int


@dataclass(frozen=True)
class PageWindow:
    start: int
    end: int
    next: Optional[PageLink] = None
    prev: Optional[PageLink] = None

    def links(self) -> Dict[str, Dict[str, int]]:
        out = {}
        if self.next:
            out["next"] = {"page": self.next.page, "limit": self.next.limit}
        if self.prev:
            out["prev"] = {"page": self.prev.page, "limit": self.prev.limit}
        return out


@dataclass
class ListResult:
    data: List[Document]
    pagination: Dict[str, Dict[str, int]]

    @property
    def count(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "count": self.count, "pagination": self.pagination, "data": self.data}


def page_window(total: int, page: int, limit: int) -> PageWindow:
    """Compute the ``[start, end)`` slice of a page and its neighbour links."""
    start = (page - 1) * limit
    end = page * limit
    return PageWindow(
        start=start,
        end=end,
        next=PageLink(page + 1, limit) if end < total else None,
        prev=PageLink(page - 1, limit) if start > 0 else None,
    )


def params_from(multi: Any) -> Dict[str, List[str]]:
    """Flatten a multi-dict (e.g. Starlette ``QueryParams``) into key -> values."""
    return {key: multi.getlist(key) for key in multi.keys()}


def parse_query(
    params: Mapping[str, RawValue],
    types: Optional[Mapping[str, Any]] = None,
    populate: Sequence[Populate] = (),
) -> QueryDescriptor:
    types = types or {}
    query = QueryDescriptor(populate=tuple(populate))

    select = _fields(_scalar(params.get("select")))
    if select:
        query.select = tuple(select)

    sort = _fields(_scalar(params.get("sort")))
    if sort:
        query.sort = tuple(SortKey(name.lstrip("-"), name.startswith("-")) for name in sort if name.lstrip("-"))

    query.page = _positive_int(_scalar(params.get("page")), DEFAULT_PAGE)
    query.limit = min(_positive_int(_scalar(params.get("limit")), DEFAULT_LIMIT), MAX_LIMIT)
    query.page = min(query.page, MAX_SKIP // query.limit + 1)

    for key, raw in params.items():
        if key in RESERVED_PARAMS:
            continue
        match = _KEY_PATTERN.match(key)
        if not match:
            logger.debug("Ignoring query parameter", key=key)
            continue
        name, op = match.group("field"), match.group("op")
        if isinstance(raw, Mapping):
            for nested_op, nested_value in raw.items():
                _add_filter(query.filters, name, nested_op, nested_value, types)
        else:
            _add_filter(query.filters, name, op, raw, types)
    return query


def _add_filter(filters: List[Filter], name: str, op: Optional[str], raw: Any, types: Mapping[str, Any]) -> None:
    values = [str(v) for v in raw] if isinstance(raw, (list, tuple)) else [str(raw)]
    if not values:
        return
    if op is None:
        if len(values) == 1:
            filters.append(Equals(name, _cast(name, values[0], types)))
        else:
            filters.append(In(name, tuple(_cast(name, v, types) for v in values)))
    elif op == "in":
        items = [item.strip() for v in values for item in v.split(",") if item.strip()]
        filters.append(In(name, tuple(_cast(name, item, types) for item in items)))
    elif op in {member.value for member in Op}:
        filters.append(Compare(name, Op(op), _cast(name, values[-1], types, numeric=True)))
    else:
        logger.debug("Ignoring unknown query operator", field=name, op=op)


def _cast(name: str, raw: str, types: Mapping[str, Any], numeric: bool = False) -> Any:
    annotation = types.get(name)
    if annotation is ObjectId:
        return ObjectId(raw) if ObjectId.is_valid(raw) else raw
    if annotation is not None:
        try:
            return _utc(TypeAdapter(annotation).validate_python(raw))
        except PydanticValidationError:
            return raw
    if numeric:
        for number in (int, float):
            try:
                return number(raw)
            except ValueError:
                pass
        try:
            return _utc(datetime.fromisoformat(raw))
        except ValueError:
            pass
    return raw


def _utc(value: Any) -> Any:
    # stored timestamps are timezone-aware UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _scalar(raw: Optional[RawValue]) -> Optional[str]:
    if raw is None or isinstance(raw, Mapping):
        return None
    if isinstance(raw, str):
        return raw
    return raw[0] if raw else None


def _fields(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [name.strip() for name in raw.split(",") if name.strip() and not name.strip().startswith("$")]


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


async def expand(store: Store, docs: List[Document], populate: Sequence[Populate]) -> List[Document]:
    for relation in populate:
        projection = {name: 1 for name in relation.select} or None
        if relation.foreign_field:
            if projection:
                projection[relation.foreign_field] = 1
            related = await store.find(
                relation.collection, {relation.foreign_field: {"$in": [doc["_id"] for doc in docs]}}, projection
            )
            for doc in docs:
                doc[relation.field] = [item for item in related if item.get(relation.foreign_field) == doc["_id"]]
        else:
            ids = list({doc[relation.field] for doc in docs if doc.get(relation.field) is not None})
            related = await store.find(relation.collection, {"_id": {"$in": ids}}, projection) if ids else []
            by_id = {item["_id"]: item for item in related}
            for doc in docs:
                if relation.field in doc:
                    doc[relation.field] = by_id.get(doc[relation.field])
    return docs


async def paginate(
    store: Store,
    collection: str,
    params: Mapping[str, RawValue],
    base_filter: Optional[Document] = None,
    types: Optional[Mapping[str, Any]] = None,
    populate: Sequence[Populate] = (),
    hidden: Sequence[str] = (),
) -> ListResult:
    """Run a list request against ``collection``.

    ``base_filter`` is applied on top of the parsed filters and always wins.
    ``hidden`` fields are removed from every result even when selected.
    """
    query = parse_query(params, types, populate)
    if hidden:
        query.filters = [f for f in query.filters if f.field.split(".")[0] not in hidden]
        query.sort = tuple(key for key in query.sort if key.field not in hidden) or QueryDescriptor.sort
    criteria = {**query.mongo_filter(), **(base_filter or {})}

    total = await store.count(collection, criteria)
    window = page_window(total, query.page, query.limit)
    docs = await store.find(
        collection,
        criteria,
        projection=query.mongo_projection(),
        sort=query.mongo_sort(),
        skip=window.start,
        limit=query.limit,
    )
    docs = await expand(store, docs, query.populate)
    if hidden:
        docs = [{key: value for key, value in doc.items() if key not in hidden} for doc in docs]
    return ListResult(data=docs, pagination=window.links())
