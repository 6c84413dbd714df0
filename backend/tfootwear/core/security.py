"""
Password hashing, JWT tokens and the token denylist.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis
from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext

from tfootwear.core.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash a plain password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain password against its stored hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unrecognised hash format counts as a failed login
        return False


def create_access_token(
    subject: int | str,
    expires_minutes: int | None = None,
    **claims: Any,
) -> str:
    """Issue a signed JWT for a user id."""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.jwt_access_token_expire_minutes
    )
    payload = {"sub": str(subject), "exp": expire, **claims}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify a JWT and return its claims, or None if invalid or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def token_ttl_seconds(token: str) -> int:
    """Seconds until the token expires, read without verifying the signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return 0
    exp = claims.get("exp")
    if not exp:
        return 0
    return int(exp - datetime.now(timezone.utc).timestamp())


class TokenDenylist:
    """
    Invalidated tokens kept in Redis until they would have expired.

    Usage:
        denylist = TokenDenylist(redis_client)
        await denylist.add(token)
        if await denylist.contains(token): ...
    """

    PREFIX = "bl_"

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    def _key(self, token: str) -> str:
        return f"{self.PREFIX}{token}"

    async def add(self, token: str) -> bool:
        """Deny a token for the rest of its lifetime. Returns False if already expired."""
        ttl = token_ttl_seconds(token)
        if ttl <= 0:
            return False
        await self._redis.setex(self._key(token), ttl, "true")
        logger.debug(f"Token denylisted for {ttl}s")
        return True

    async def contains(self, token: str) -> bool:
        """Check whether a token has been invalidated."""
        return bool(await self._redis.get(self._key(token)))


def create_redis() -> redis.Redis:
    """Build the shared Redis client from settings."""
    return redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
