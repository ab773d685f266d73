from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from config import Settings
from database import MemoryStore, MongoStore, find_or_404, oid, open_store
from errors import NotFoundError, ValidationError

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_oid_rejects_malformed_ids():
    with pytest.raises(NotFoundError):
        oid("not-an-id")
    value = ObjectId()
    assert oid(str(value)) == value
    assert oid(value) is value


def test_open_store_picks_backend_from_url():
    assert isinstance(open_store(Settings(database_url="memory://")), MemoryStore)
    assert isinstance(open_store(Settings(database_url="mongodb://localhost:27017")), MongoStore)


@pytest.mark.asyncio
async def test_unique_index_on_create_and_update():
    store = MemoryStore()
    await store.create("user", {"email": "a@example.com"})
    other = await store.create("user", {"email": "b@example.com"})

    with pytest.raises(ValidationError, match="Duplicate field value entered"):
        await store.create("user", {"email": "a@example.com"})
    with pytest.raises(ValidationError):
        await store.update_by_id("user", other["_id"], {"email": "a@example.com"})

    # the failed update left the document untouched
    assert (await store.find_by_id("user", other["_id"]))["email"] == "b@example.com"


@pytest.mark.asyncio
async def test_compound_unique_index():
    store = MemoryStore()
    bootcamp, user = ObjectId(), ObjectId()
    await store.create("review", {"bootcamp": bootcamp, "user": user})
    await store.create("review", {"bootcamp": ObjectId(), "user": user})

    with pytest.raises(ValidationError):
        await store.create("review", {"bootcamp": bootcamp, "user": user})


@pytest.mark.asyncio
async def test_comparison_operators():
    store = MemoryStore()
    for i in range(5):
        await store.create("course", {"tuition": i * 1000, "created_at": NOW + timedelta(days=i)})

    assert await store.count("course", {"tuition": {"$gt": 1000, "$lte": 3000}}) == 2
    assert await store.count("course", {"tuition": {"$in": [0, 4000]}}) == 2
    assert await store.count("course", {"tuition": {"$ne": 0}}) == 4
    assert await store.count("course", {"created_at": {"$gte": NOW + timedelta(days=3)}}) == 2
    # strings never compare against numbers
    assert await store.count("course", {"tuition": {"$gt": "1000"}}) == 0


@pytest.mark.asyncio
async def test_array_fields_match_any_element():
    store = MemoryStore()
    await store.create("bootcamp", {"careers": ["Business", "UI/UX"]})
    await store.create("bootcamp", {"careers": ["Data Science"]})

    assert await store.count("bootcamp", {"careers": "Business"}) == 1
    assert await store.count("bootcamp", {"careers": {"$in": ["UI/UX", "Data Science"]}}) == 2


@pytest.mark.asyncio
async def test_exists_and_unset():
    store = MemoryStore()
    doc = await store.create("user", {"email": "a@example.com", "reset_password_token": "abc"})

    assert await store.count("user", {"reset_password_token": {"$exists": True}}) == 1
    updated = await store.update_by_id("user", doc["_id"], unset_fields=["reset_password_token"])
    assert "reset_password_token" not in updated
    assert await store.count("user", {"reset_password_token": {"$exists": True}}) == 0


@pytest.mark.asyncio
async def test_geo_within_center_sphere():
    store = MemoryStore()
    await store.create("bootcamp", {"name": "Boston", "location": {"type": "Point", "coordinates": [-71.0589, 42.3601]}})
    await store.create("bootcamp", {"name": "Cambridge", "location": {"type": "Point", "coordinates": [-71.1097, 42.3736]}})
    await store.create("bootcamp", {"name": "LA", "location": {"type": "Point", "coordinates": [-118.2437, 34.0522]}})

    radius = 20 / 6378
    docs = await store.find(
        "bootcamp", {"location": {"$geoWithin": {"$centerSphere": [[-71.0589, 42.3601], radius]}}}
    )
    assert sorted(doc["name"] for doc in docs) == ["Boston", "Cambridge"]


@pytest.mark.asyncio
async def test_unsupported_operator_is_rejected():
    store = MemoryStore()
    await store.create("course", {"title": "x"})
    with pytest.raises(ValidationError):
        await store.find("course", {"title": {"$where": "sleep(100)"}})


@pytest.mark.asyncio
async def test_sort_skip_limit_and_projection():
    store = MemoryStore()
    for name in ["c", "a", "b", "d"]:
        await store.create("bootcamp", {"name": name, "secret": 1})

    docs = await store.find("bootcamp", {}, projection={"secret": 0}, sort=[("name", 1)], skip=1, limit=2)

    assert [doc["name"] for doc in docs] == ["b", "c"]
    assert all("secret" not in doc for doc in docs)


@pytest.mark.asyncio
async def test_returned_documents_are_copies():
    store = MemoryStore()
    doc = await store.create("bootcamp", {"name": "a", "careers": ["Business"]})
    doc["careers"].append("Other")

    stored = await store.find_by_id("bootcamp", doc["_id"])
    assert stored["careers"] == ["Business"]


@pytest.mark.asyncio
async def test_delete_by_id_and_delete_many():
    store = MemoryStore()
    bootcamp = ObjectId()
    first = await store.create("course", {"bootcamp": bootcamp})
    await store.create("course", {"bootcamp": bootcamp})
    await store.create("course", {"bootcamp": ObjectId()})

    deleted = await store.delete_by_id("course", first["_id"])
    assert deleted["_id"] == first["_id"]
    assert await store.delete_by_id("course", first["_id"]) is None
    assert await store.delete_many("course", {"bootcamp": bootcamp}) == 1
    assert await store.count("course", {}) == 1


@pytest.mark.asyncio
async def test_find_or_404():
    store = MemoryStore()
    with pytest.raises(NotFoundError, match="No bootcamp"):
        await find_or_404(store, "bootcamp", ObjectId(), "No bootcamp")
    with pytest.raises(NotFoundError):
        await find_or_404(store, "bootcamp", "garbage")


@pytest.mark.asyncio
async def test_update_one_writes_only_when_the_condition_still_holds():
    store = MemoryStore()
    user = await store.create("user", {"email": "a@example.com", "reset_password_token": "abc"})

    updated = await store.update_one(
        "user", {"reset_password_token": "abc"}, {"password": "new"}, unset_fields=["reset_password_token"]
    )
    assert updated["_id"] == user["_id"]
    assert updated["password"] == "new"
    assert "reset_password_token" not in updated

    again = await store.update_one("user", {"reset_password_token": "abc"}, {"password": "other"})
    assert again is None
    assert (await store.find_by_id("user", user["_id"]))["password"] == "new"
