"""
FastAPI routes for courses.

    GET    /api/v1/courses
    GET    /api/v1/bootcamps/{bootcamp_id}/courses
    GET    /api/v1/courses/{course_id}
    POST   /api/v1/bootcamps/{bootcamp_id}/courses
    PUT    /api/v1/courses/{course_id}
    DELETE /api/v1/courses/{course_id}

Every change to a bootcamp's courses recomputes its ``average_cost``.
"""

import math
from typing import Any

from fastapi import APIRouter, Depends, Request

from database import Document, Store, find_or_404
from guards import authorize, ensure_owner, get_store
from logger import get_logger
from query import Populate, expand, paginate, params_from
from schemas import Course, CourseBody, CourseUpdateBody, field_types, serialize, utcnow

logger = get_logger(__name__)

router = APIRouter(tags=["Courses"])

COURSES = "course"
BOOTCAMPS = "bootcamp"
COURSE_TYPES = field_types(Course)
BOOTCAMP_SUMMARY = Populate("bootcamp", BOOTCAMPS, select=("name", "description"))


async def update_average_cost(store: Store, bootcamp_id: Any) -> None:
    """Mean tuition of the bootcamp's courses, rounded up to the next ten."""
    courses = await store.find(COURSES, {"bootcamp": bootcamp_id}, {"tuition": 1})
    tuitions = [course["tuition"] for course in courses if course.get("tuition") is not None]
    if not tuitions:
        await store.update_by_id(BOOTCAMPS, bootcamp_id, unset_fields=["average_cost"])
        return
    average = math.ceil(sum(tuitions) / len(tuitions) / 10) * 10
    await store.update_by_id(BOOTCAMPS, bootcamp_id, {"average_cost": average})


@router.get("/courses")
async def get_courses(request: Request, store: Store = Depends(get_store)):
    result = await paginate(
        store, COURSES, params_from(request.query_params), types=COURSE_TYPES, populate=[BOOTCAMP_SUMMARY]
    )
    return serialize(result.to_dict())


@router.get("/bootcamps/{bootcamp_id}/courses")
async def get_bootcamp_courses(bootcamp_id: str, store: Store = Depends(get_store)):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, f"No bootcamp with the id of {bootcamp_id}")
    courses = await store.find(COURSES, {"bootcamp": bootcamp["_id"]}, sort=[("created_at", 1), ("_id", 1)])
    return {"success": True, "count": len(courses), "data": serialize(courses)}


@router.get("/courses/{course_id}")
async def get_course(course_id: str, store: Store = Depends(get_store)):
    course = await find_or_404(store, COURSES, course_id, f"No course with the id of {course_id}")
    [course] = await expand(store, [course], [BOOTCAMP_SUMMARY])
    return {"success": True, "data": serialize(course)}


@router.post("/bootcamps/{bootcamp_id}/courses", status_code=201)
async def add_course(
    bootcamp_id: str,
    body: CourseBody,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
):
    bootcamp = await find_or_404(store, BOOTCAMPS, bootcamp_id, f"No bootcamp with the id of {bootcamp_id}")
    ensure_owner(user, bootcamp, "add a course to", "bootcamp")

    course = await store.create(
        COURSES,
        {**body.model_dump(), "created_at": utcnow(), "bootcamp": bootcamp["_id"], "user": user["_id"]},
    )
    await update_average_cost(store, bootcamp["_id"])
    logger.info("Course added", course_id=str(course["_id"]), bootcamp_id=bootcamp_id)
    return {"success": True, "data": serialize(course)}


@router.put("/courses/{course_id}")
async def update_course(
    course_id: str,
    body: CourseUpdateBody,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
):
    course = await find_or_404(store, COURSES, course_id, f"No course with the id of {course_id}")
    ensure_owner(user, course, "update", "course")

    course = await store.update_by_id(
        COURSES, course["_id"], body.model_dump(exclude_unset=True, exclude_none=True)
    )
    await update_average_cost(store, course["bootcamp"])
    return {"success": True, "data": serialize(course)}


@router.delete("/courses/{course_id}")
async def delete_course(
    course_id: str,
    user: Document = Depends(authorize("publisher", "admin")),
    store: Store = Depends(get_store),
):
    course = await find_or_404(store, COURSES, course_id, f"No course with the id of {course_id}")
    ensure_owner(user, course, "delete", "course")

    await store.delete_by_id(COURSES, course["_id"])
    await update_average_cost(store, course["bootcamp"])
    return {"success": True, "data": {}}
