"""
Request guards.

We expose ``protect`` as a FastAPI dependency that:
- Reads the session token from the Authorization header or the token cookie
- Verifies it and resolves the account it was issued to
- Returns the account (also left on ``request.state.user``)

``authorize(*roles)`` layers a role check on top of ``protect``. Ownership of
courses, reviews and bootcamps is checked by the handlers with
``ensure_owner``.
"""

from typing import Any, Callable, Iterable, Mapping, Optional

from fastapi import Depends, Request

from auth import TOKEN_COOKIE, AuthService
from config import Settings
from database import Document, Store
from errors import AuthenticationError, AuthorizationError, NotFoundError
from geocoder import Geocoder
from schemas import PRIVATE_USER_FIELDS
from security import TokenIssuer

NOT_AUTHORIZED = "Not authorized to access this route"


def extract_token(authorization: Optional[str], cookies: Mapping[str, str]) -> Optional[str]:
    # Prefer an explicit bearer header over the browser cookie
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return cookies.get(TOKEN_COOKIE) or None


class AuthGuard:
    def __init__(self, store: Store, tokens: TokenIssuer):
        self.store = store
        self.tokens = tokens

    async def authenticate(self, token: Optional[str]) -> Document:
        """Resolve the account behind ``token`` or raise AuthenticationError."""
        if not token:
            raise AuthenticationError(NOT_AUTHORIZED)
        data = self.tokens.verify(token)
        try:
            user = await self.store.find_by_id("user", data.sub, {name: 0 for name in PRIVATE_USER_FIELDS})
        except NotFoundError:
            user = None
        if not user:
            raise AuthenticationError(NOT_AUTHORIZED)
        return user


def require_role(user: Document, roles: Iterable[str]) -> None:
    if user.get("role") not in tuple(roles):
        raise AuthorizationError(f"User role {user.get('role')} is not authorized to access this route")


def ensure_owner(user: Document, resource: Document, action: str, kind: str) -> None:
    """Allow the resource's owner or an admin, nobody else."""
    if str(resource.get("user")) != str(user["_id"]) and user.get("role") != "admin":
        raise AuthorizationError(f"User {user['_id']} is not authorized to {action} this {kind}")


# FastAPI dependencies


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_geocoder(request: Request) -> Geocoder:
    return request.app.state.geocoder


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_guard(request: Request) -> AuthGuard:
    return request.app.state.guard


async def protect(request: Request, guard: AuthGuard = Depends(get_guard)) -> Document:
    token = extract_token(request.headers.get("Authorization"), request.cookies)
    user = await guard.authenticate(token)
    request.state.user = user
    return user


def authorize(*roles: str) -> Callable[..., Any]:
    async def dependency(user: Document = Depends(protect)) -> Document:
        require_role(user, roles)
        return user

    return dependency
