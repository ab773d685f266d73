"""
FastAPI routes for bootcamps.

Prefix: /api/v1/bootcamps

Publishers own at most one bootcamp; admins may own any number. Only the
owner or an admin may modify, delete or upload a photo for a bootcamp.
"""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from config import Settings
from database import Document, Store, find_or_404
from errors import DeliveryError, ValidationError
from geocoder import Geocoder
from guards import authorize, ensure_owner, get_app_settings, get_geocoder, get_store
from logger import get_logger
from query import Populate, paginate, params_from
from schemas import Bootcamp, BootcampBody, BootcampUpdateBody, field_types, serialize, slugify, utcnow

logger = get_logger(__name__)

router = APIRouter(prefix="/bootcamps", tags=["Bootcamps"])

BOOTCAMPS = "bootcamp"
COURSES = "course"
REVIEWS = "review"
BOOTCAMP_TYPES = field_types(Bootcamp)
EARTH_RADIUS_KM = 6378


def _not_found(bootcamp_id: str) -> str:
    return f"Bootcamp not found with id of {bootcamp_id}"


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


@router.get("")
async def get_bootcamps(request: Request, store: Store = Depends(get_store)):
    result = await paginate(
        store,
        BOOTCAMPS,
        params_from(request.query_params),
        types=BOOTCAMP_TYPES,
        populate=[Populate("courses", COURSES, foreign_field="bootcamp")],
    )
    return serialize(result.to_dict())


@router.get("/radius/{zipcode}/{distance}")
async def get_bootcamps_in_radius(
    zipcode: str,
    distance: float,
    store: Store = Depends(get_store),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """Bootcamps within ``distance`` kilometres of a postal code."""
    loc = await geocoder.geocode(zipcode)
    radius = distance / EARTH_RADIUS_KM
    bootcamps = await store.find(
        BOOTCAMPS,
        {"location": {"$geoWithin": {"$centerSphere": [[loc.longitude, loc.latitude], radius]}}},
    )
    return {"success": True, "count": len(bootcamps), "data": serialize(bootcamps)}


@router.get("/{bootcamp_id}")
async def get_bootcamp(bootcamp_id: str, store: Store = Depends(get_store)):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, _not_found(bootcamp_id))
    return {"success": True, "data": serialize(bootcamp)}


@router.post("", status_code=201)
async def create_bootcamp(
    body: BootcampBody,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
    geocoder: Geocoder = Depends(get_geocoder),
):
    if user["role"] != "admin" and await store.find_one(BOOTCAMPS, {"user": user["_id"]}):
        raise ValidationError(f"The user with ID {user['_id']} has already published a bootcamp")

    loc = await geocoder.geocode(body.address)
    bootcamp = await store.create(
        BOOTCAMPS,
        {
            **body.model_dump(exclude={"address"}),
            "slug": slugify(body.name),
            "location": loc.to_location(),
            "photo": "no-photo.jpg",
            "created_at": utcnow(),
            "user": user["_id"],
        },
    )
    logger.info("Bootcamp created", bootcamp_id=str(bootcamp["_id"]), user_id=str(user["_id"]))
    return {"success": True, "data": serialize(bootcamp)}


@router.put("/{bootcamp_id}")
async def update_bootcamp(
    bootcamp_id: str,
    body: BootcampUpdateBody,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
    geocoder: Geocoder = Depends(get_geocoder),
):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, _not_found(bootcamp_id))
    ensure_owner(user, bootcamp, "update", "bootcamp")

    changes = body.model_dump(exclude_unset=True, exclude_none=True, exclude={"address"})
    if "name" in changes:
        changes["slug"] = slugify(changes["name"])
    if body.address:
        changes["location"] = (await geocoder.geocode(body.address)).to_location()

    bootcamp = await store.update_by_id(BOOTCAMPS, bootcamp["_id"], changes)
    return {"success": True, "data": serialize(bootcamp)}


@router.delete("/{bootcamp_id}")
async def delete_bootcamp(
    bootcamp_id: str,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, _not_found(bootcamp_id))
    ensure_owner(user, bootcamp, "delete", "bootcamp")

    courses = await store.delete_many(COURSES, {"bootcamp": bootcamp["_id"]})
    reviews = await store.delete_many(REVIEWS, {"bootcamp": bootcamp["_id"]})
    await store.delete_by_id(BOOTCAMPS, bootcamp["_id"])
    logger.info("Bootcamp deleted", bootcamp_id=bootcamp_id, courses=courses, reviews=reviews)
    return {"success": True, "data": {}}


@router.put("/{bootcamp_id}/photo")
async def upload_bootcamp_photo(
    bootcamp_id: str,
    file: Optional[UploadFile] = File(None),
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, _not_found(bootcamp_id))
    ensure_owner(user, bootcamp, "update", "bootcamp")

    if file is None:
        raise ValidationError("Please upload a file")
    if not file.content_type or not file.content_type.startswith("image/"):
        raise ValidationError("Please upload an image file")
    content = await file.read(settings.max_file_upload + 1)
    if len(content) > settings.max_file_upload:
        raise ValidationError(f"Please upload an image less than {settings.max_file_upload} bytes")

    filename = f"photo_{bootcamp['_id']}{Path(file.filename or '').suffix}"
    try:
        await run_in_threadpool(_write_file, Path(settings.file_upload_path) / filename, content)
    except OSError as e:
        logger.error("Photo upload failed", bootcamp_id=bootcamp_id, error=str(e))
        raise DeliveryError("Problem with file upload")

    await store.update_by_id(BOOTCAMPS, bootcamp["_id"], {"photo": filename})
    return {"success": True, "data": filename}
