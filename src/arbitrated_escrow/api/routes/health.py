"""Health check endpoint.

Verifies the document store and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from arbitrated_escrow.api.deps import get_runtime
from arbitrated_escrow.domain.collaborators import TRANSACTIONS
from arbitrated_escrow.infrastructure import redis_client
from arbitrated_escrow.logging_config import get_logger
from arbitrated_escrow.schemas.escrow import HealthResponse
from arbitrated_escrow.services.runtime import EscrowRuntime

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(runtime: EscrowRuntime = Depends(get_runtime)) -> HealthResponse:
    """Check the document store and Redis."""
    store_status = "unknown"
    redis_status = "disabled"

    # Check the document store
    try:
        await runtime.store.get(TRANSACTIONS, "__health__")
        store_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        store_status = f"unhealthy: {exc}"
        logger.error("health.store_check_failed", error=str(exc))

    # Check Redis (optional: only used for create idempotency keys)
    if redis_client.redis_available():
        try:
            await redis_client.get_redis().ping()
            redis_status = "healthy"
        except (RedisError, OSError) as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    healthy = store_status == "healthy" and not redis_status.startswith("unhealthy")
    overall = "ok" if healthy else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        store=store_status,
        redis=redis_status,
    )
