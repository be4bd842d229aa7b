import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

import redis.asyncio as redis

from postboard.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Claim:
    """A token taken out of the store by ``TokenStore.consume``."""

    user_id: int
    remaining_ms: int


def create_redis() -> redis.Redis:
    """Build the process-wide Redis client.  Called once at startup."""
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )


class TokenStore:
    """
    Single-use password-reset tokens backed by Redis.

    Each token is a key ``<prefix><token>`` holding the user id, written
    with an expiry so Redis drops it on its own once the TTL elapses.
    There is no sweeping here: an expired key simply reads as missing.

    Unlike a cache, this store is authoritative, so Redis errors are not
    swallowed.  A failed write must fail the reset request.
    """

    def __init__(
        self,
        client: redis.Redis,
        prefix: str | None = None,
        ttl: timedelta | None = None,
    ) -> None:
        self._redis = client
        self.prefix = settings.FORGOT_PASSWORD_PREFIX if prefix is None else prefix
        self.ttl = ttl if ttl is not None else timedelta(seconds=settings.RESET_TOKEN_TTL_SECONDS)

    def _key(self, token: str) -> str:
        return f"{self.prefix}{token}"

    async def issue(self, user_id: int) -> str:
        """Create a token for *user_id* and return it."""
        token = str(uuid.uuid4())
        await self._redis.set(self._key(token), str(user_id), px=self.ttl)
        logger.info("Issued password reset token for user_id=%s", user_id)
        return token

    async def resolve(self, token: str) -> int | None:
        """Return the user id for *token*, or None if unknown or expired."""
        if not token:
            return None
        value = await self._redis.get(self._key(token))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Discarding malformed reset token payload %r", value)
            return None

    async def consume(self, token: str) -> Claim | None:
        """
        Atomically take *token* out of the store.

        GETDEL guarantees that of several concurrent callers presenting
        the same token at most one gets a claim back; the others see None.
        The remaining expiry is read in the same transaction so the claim
        can be put back with ``restore`` if the reset fails afterwards.
        """
        if not token:
            return None
        key = self._key(token)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.pttl(key)
            pipe.getdel(key)
            remaining_ms, value = await pipe.execute()
        if value is None:
            return None
        try:
            user_id = int(value)
        except ValueError:
            logger.warning("Discarding malformed reset token payload %r", value)
            return None
        if remaining_ms <= 0:
            remaining_ms = int(self.ttl.total_seconds() * 1000)
        return Claim(user_id=user_id, remaining_ms=remaining_ms)

    async def restore(self, token: str, claim: Claim) -> None:
        """Put a consumed token back with whatever lifetime it had left."""
        await self._redis.set(
            self._key(token), str(claim.user_id), px=claim.remaining_ms, nx=True
        )
        logger.info("Restored password reset token for user_id=%s", claim.user_id)

    async def invalidate(self, token: str) -> None:
        await self._redis.delete(self._key(token))
