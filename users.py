"""
FastAPI routes for user administration. Every route requires an admin.

Prefix: /api/v1/users
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from config import Settings
from database import Store, find_or_404
from guards import authorize, get_app_settings, get_store
from logger import get_logger
from query import paginate, params_from
from schemas import PRIVATE_USER_FIELDS, User, UserBody, UserUpdateBody, field_types, public_user, serialize, utcnow
from security import hash_password

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(authorize("admin"))])

USERS = "user"
USER_TYPES = field_types(User)


def _not_found(user_id: str) -> str:
    return f"User not found with id of {user_id}"


@router.get("")
async def get_users(request: Request, store: Store = Depends(get_store)):
    result = await paginate(
        store, USERS, params_from(request.query_params), types=USER_TYPES, hidden=PRIVATE_USER_FIELDS
    )
    return serialize(result.to_dict())


@router.get("/{user_id}")
async def get_user(user_id: str, store: Store = Depends(get_store)):
    user = await find_or_404(store, USERS, user_id, _not_found(user_id))
    return {"success": True, "data": public_user(user)}


@router.post("", status_code=201)
async def create_user(
    body: UserBody,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    password_hash = await run_in_threadpool(hash_password, body.password, settings.bcrypt_rounds)
    user = await store.create(
        USERS,
        {
            "name": body.name,
            "email": body.email.lower(),
            "role": body.role,
            "password": password_hash,
            "created_at": utcnow(),
        },
    )
    logger.info("User created by admin", user_id=str(user["_id"]), role=body.role)
    return {"success": True, "data": public_user(user)}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdateBody,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    user = await find_or_404(store, USERS, user_id, _not_found(user_id))
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
    if "password" in changes:
        changes["password"] = await run_in_threadpool(hash_password, changes["password"], settings.bcrypt_rounds)

    user = await store.update_by_id(USERS, user["_id"], changes)
    return {"success": True, "data": public_user(user)}


@router.delete("/{user_id}")
async def delete_user(user_id: str, store: Store = Depends(get_store)):
    user = await find_or_404(store, USERS, user_id, _not_found(user_id))
    await store.delete_by_id(USERS, user["_id"])
    logger.info("User deleted", user_id=user_id)
    return {"success": True, "data": {}}
