"""
Credential hashing, session tokens and password-reset tokens.

- Passwords: bcrypt, one-way.
- Session tokens: HS256 JWTs carrying the account id as ``sub``. There is no
  server-side revocation; a token lives until its ``exp``.
- Reset tokens: random hex handed to the user once, stored only as sha256.
"""

import hashlib
import secrets
import time
from typing import Optional, Tuple

import bcrypt
import jwt
from pydantic import BaseModel

from config import Settings
from errors import AuthenticationError

SECONDS_PER_DAY = 24 * 60 * 60


class TokenData(BaseModel):
    sub: str
    iat: int
    exp: int


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_reset_token() -> Tuple[str, str]:
    """Return ``(plaintext, sha256 hex)`` for a new password-reset token."""
    token = secrets.token_hex(20)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenIssuer:
    """Signs and verifies session tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_days: int = 30):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_days = expire_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_expire_days)

    def sign(self, subject: str, now: Optional[int] = None) -> str:
        issued_at = int(time.time()) if now is None else now
        payload = {
            "sub": subject,
            "iat": issued_at,
            "exp": issued_at + self.expire_days * SECONDS_PER_DAY,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenData:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Not authorized to access this route")
        data = TokenData(**payload)
        # expired at the boundary second as well
        if data.exp <= int(time.time()):
            raise AuthenticationError("Token has expired")
        return data
