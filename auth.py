"""
Authentication service.

Registration, login, the password-reset lifecycle and profile updates. Every
successful credential change issues a fresh session token; the HTTP layer
hands it back in the body and as an http-only cookie built by
``token_cookie``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi.concurrency import run_in_threadpool

from config import Settings
from database import Document, Store
from errors import AuthenticationError, DeliveryError, NotFoundError, ValidationError
from logger import get_logger
from mailer import Mailer
from schemas import utcnow
from security import TokenIssuer, generate_reset_token, hash_password, hash_reset_token, verify_password

logger = get_logger(__name__)

USERS = "user"
TOKEN_COOKIE = "token"
INVALID_CREDENTIALS = "Invalid credentials"
RESET_FIELDS = ("reset_password_token", "reset_password_expire")
SELF_ASSIGNABLE_ROLES = ("user", "publisher")


@dataclass
class AuthResult:
    user: Document
    token: str


def token_cookie(token: str, settings: Settings, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie`` carrying a session token."""
    now = now or utcnow()
    max_age = settings.jwt_cookie_expire_days * 24 * 60 * 60
    return {
        "key": TOKEN_COOKIE,
        "value": token,
        "max_age": max_age,
        "expires": now + timedelta(seconds=max_age),
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
    }


class AuthService:
    def __init__(self, store: Store, settings: Settings, tokens: TokenIssuer, mailer: Mailer):
        self.store = store
        self.settings = settings
        self.tokens = tokens
        self.mailer = mailer
        # verified against when the email is unknown
        self._dummy_hash = hash_password("devcamper-unknown-account", settings.bcrypt_rounds)

    async def _hash(self, password: str) -> str:
        return await run_in_threadpool(hash_password, password, self.settings.bcrypt_rounds)

    def _issue(self, user: Document) -> AuthResult:
        return AuthResult(user=user, token=self.tokens.sign(str(user["_id"])))

    async def register(self, name: str, email: str, password: str, role: str = "user") -> AuthResult:
        """
        Create an account and sign it in.

        - Email must be unique (case-insensitive).
        - Password is stored only as a bcrypt hash.
        """
        if not name or not email or not password:
            raise ValidationError("Please provide a name, email and password")
        if role not in SELF_ASSIGNABLE_ROLES:
            raise ValidationError(f"Role {role} cannot be self-assigned")

        user = await self.store.create(
            USERS,
            {
                "name": name,
                "email": email.strip().lower(),
                "role": role,
                "password": await self._hash(password),
                "created_at": utcnow(),
            },
        )
        logger.info("User registered", user_id=str(user["_id"]), role=role)
        return self._issue(user)

    async def login(self, email: str, password: str) -> AuthResult:
        if not email or not password:
            raise ValidationError("Please provide an email and password")

        user = await self.store.find_one(USERS, {"email": email.strip().lower()})
        # unknown email and wrong password must be indistinguishable
        password_hash = user["password"] if user else self._dummy_hash
        matched = await run_in_threadpool(verify_password, password, password_hash)
        if not user or not matched:
            logger.info("Login rejected")
            raise AuthenticationError(INVALID_CREDENTIALS)
        logger.info("User logged in", user_id=str(user["_id"]))
        return self._issue(user)

    async def get_current_account(self, user_id: Any) -> Document:
        user = await self.store.find_by_id(USERS, user_id)
        if not user:
            raise NotFoundError(f"User not found with id of {user_id}")
        return user

    async def forgot_password(self, email: str, reset_url_base: str) -> None:
        """
        Store a hashed single-use reset token and email its plaintext.

        If the email cannot be delivered the token is removed again, so an
        account never holds a token its owner never received.
        """
        user = await self.store.find_one(USERS, {"email": email.strip().lower()})
        if not user:
            raise NotFoundError("There is no user with that email")

        token, token_hash = generate_reset_token()
        expires = utcnow() + timedelta(minutes=self.settings.reset_token_expire_minutes)
        await self.store.update_by_id(
            USERS, user["_id"], {"reset_password_token": token_hash, "reset_password_expire": expires}
        )

        reset_url = f"{reset_url_base.rstrip('/')}/{token}"
        body = (
            "You are receiving this email because you (or someone else) has requested "
            f"the reset of a password. Please make a PUT request to: \n\n {reset_url}"
        )
        try:
            await self.mailer.send(to=user["email"], subject="Password reset token", body=body)
        except Exception as e:
            # leave a token written by an overlapping request in place
            await self.store.update_one(
                USERS, {"_id": user["_id"], "reset_password_token": token_hash}, unset_fields=RESET_FIELDS
            )
            logger.warning("Reset token cleared after failed delivery", user_id=str(user["_id"]))
            raise DeliveryError("Email could not be sent") from e
        logger.info("Password reset requested", user_id=str(user["_id"]))

    async def reset_password(self, token: str, password: str) -> AuthResult:
        password_hash = await self._hash(password)
        # lookup and consumption are one write, so a token resets at most once
        user = await self.store.update_one(
            USERS,
            {"reset_password_token": hash_reset_token(token), "reset_password_expire": {"$gt": utcnow()}},
            {"password": password_hash},
            unset_fields=RESET_FIELDS,
        )
        if not user:
            raise AuthenticationError("Invalid token")
        logger.info("Password reset", user_id=str(user["_id"]))
        return self._issue(user)

    async def update_details(self, user_id: Any, name: Optional[str] = None, email: Optional[str] = None) -> Document:
        changes: Document = {}
        if name is not None:
            changes["name"] = name
        if email is not None:
            changes["email"] = email.strip().lower()
        user = await self.store.update_by_id(USERS, user_id, changes)
        if not user:
            raise NotFoundError(f"User not found with id of {user_id}")
        return user

    async def update_password(self, user_id: Any, current_password: str, new_password: str) -> AuthResult:
        user = await self.get_current_account(user_id)
        if not await run_in_threadpool(verify_password, current_password, user["password"]):
            raise AuthenticationError("Password is incorrect")
        user = await self.store.update_by_id(USERS, user_id, {"password": await self._hash(new_password)})
        logger.info("Password updated", user_id=str(user_id))
        return self._issue(user)
