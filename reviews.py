"""
FastAPI routes for reviews.

A user may review each bootcamp once. Every change recomputes the
bootcamp's ``average_rating``.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from database import Document, Store, find_or_404
from guards import authorize, ensure_owner, get_store
from logger import get_logger
from query import Populate, expand, paginate, params_from
from schemas import Review, ReviewBody, ReviewUpdateBody, field_types, serialize, utcnow

logger = get_logger(__name__)

router = APIRouter(tags=["Reviews"])

REVIEWS = "review"
BOOTCAMPS = "bootcamp"
REVIEW_TYPES = field_types(Review)
BOOTCAMP_SUMMARY = Populate("bootcamp", BOOTCAMPS, select=("name", "description"))


async def update_average_rating(store: Store, bootcamp_id: Any) -> None:
    reviews = await store.find(REVIEWS, {"bootcamp": bootcamp_id}, {"rating": 1})
    ratings = [review["rating"] for review in reviews if review.get("rating") is not None]
    if not ratings:
        await store.update_by_id(BOOTCAMPS, bootcamp_id, unset_fields=["average_rating"])
        return
    await store.update_by_id(BOOTCAMPS, bootcamp_id, {"average_rating": round(sum(ratings) / len(ratings), 1)})


@router.get("/reviews")
async def get_reviews(request: Request, store: Store = Depends(get_store)):
    result = await paginate(
        store, REVIEWS, params_from(request.query_params), types=REVIEW_TYPES, populate=[BOOTCAMP_SUMMARY]
    )
    return serialize(result.to_dict())


@router.get("/bootcamps/{bootcamp_id}/reviews")
async def get_bootcamp_reviews(bootcamp_id: str, store: Store = Depends(get_store)):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, f"No bootcamp found with the id of {bootcamp_id}")
    reviews = await store.find(REVIEWS, {"bootcamp": bootcamp["_id"]}, sort=[("created_at", 1), ("_id", 1)])
    return {"success": True, "count": len(reviews), "data": serialize(reviews)}


@router.get("/reviews/{review_id}")
async def get_review(review_id: str, store: Store = Depends(get_store)):
    review = await find_or_404(store, REVIEWS, review_id, f"No review found with the id of {review_id}")
    [review] = await expand(store, [review], [BOOTCAMP_SUMMARY])
    return {"success": True, "data": serialize(review)}


@router.post("/bootcamps/{bootcamp_id}/reviews", status_code=201)
async def add_review(
    bootcamp_id: str,
    body: ReviewBody,
    user: Document = Depends(authorize("user", "admin")),
    store: Store = Depends(get_store),
):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, f"No bootcamp found with the id of {bootcamp_id}")
    review = await store.create(
        REVIEWS,
        {**body.model_dump(), "created_at": utcnow(), "bootcamp": bootcamp["_id"], "user": user["_id"]},
    )
    await update_average_rating(store, bootcamp["_id"])
    logger.info("Review added", review_id=str(review["_id"]), bootcamp_id=bootcamp_id)
    return {"success": True, "data": serialize(review)}


@router.put("/reviews/{review_id}")
async def update_review(
    review_id: str,
    body: ReviewUpdateBody,
    user: Document = Depends(authorize("user", "admin")),
    store: Store = Depends(get_store),
):
    review = await find_or_404(store, REVIEWS, review_id, f"No review found with the id of {review_id}")
    ensure_owner(user, review, "update", "review")

    review = await store.update_by_id(
        REVIEWS, review["_id"], body.model_dump(exclude_unset=True, exclude_none=True)
    )
    await update_average_rating(store, review["bootcamp"])
    return {"success": True, "data": serialize(review)}


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: str,
    user: Document = Depends(authorize("user", "admin")),
    store: Store = Depends(get_store),
):
    review = await find_or_404(store, REVIEWS, review_id, f"No review found with the id of {review_id}")
    ensure_owner(user, review, "delete", "review")

    await store.delete_by_id(REVIEWS, review["_id"])
    await update_average_rating(store, review["bootcamp"])
    return {"success": True, "data": {}}
