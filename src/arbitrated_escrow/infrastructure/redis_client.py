"""Redis client for create idempotency keys.

Usage:
    from arbitrated_escrow.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from arbitrated_escrow.config import get_settings
from arbitrated_escrow.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def redis_available() -> bool:
    return _redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Idempotency Helpers ---


def _idempotency_key(uid: str, key: str) -> str:
    # Keys are scoped per caller so two users can't collide.
    return f"idempotency:create:{uid}:{key}"


async def lookup_idempotency(uid: str, key: str) -> str | None:
    """Return the transaction id stored for a key, or None if the key is new."""
    redis = get_redis()
    return await redis.get(_idempotency_key(uid, key))


async def claim_idempotency(uid: str, key: str, transaction_id: str) -> bool:
    """Store ``transaction_id`` under the key unless it is already taken.

    Returns True if this call claimed the key.
    """
    settings = get_settings()
    redis = get_redis()
    claimed = await redis.set(
        _idempotency_key(uid, key),
        transaction_id,
        ex=settings.redis_idempotency_ttl_seconds,
        nx=True,
    )
    return bool(claimed)


async def release_idempotency(uid: str, key: str) -> None:
    """Forget a claimed key, e.g. when the create it guarded was rejected."""
    redis = get_redis()
    await redis.delete(_idempotency_key(uid, key))
