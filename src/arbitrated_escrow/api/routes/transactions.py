"""Escrow transaction REST API routes.

These endpoints are a thin HTTP shell over TransactionService and
QueryService; every rule lives in the engine.

Routes:
    POST   /api/v1/transactions                          — Create a transaction
    GET    /api/v1/transactions                          — List visible transactions
    GET    /api/v1/transactions/stream                   — Live NDJSON snapshots
    GET    /api/v1/transactions/{id}                     — Get one transaction
    GET    /api/v1/transactions/{id}/status              — Allowed actions, whose turn
    GET    /api/v1/transactions/{id}/audit               — Audit trail (arbitrators)
    POST   /api/v1/transactions/{id}/actions/{action}    — Perform a transition
    DELETE /api/v1/transactions/{id}                     — Delete (deletable statuses)
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import StreamingResponse
from redis.exceptions import RedisError

from arbitrated_escrow.api.deps import (
    get_identity,
    get_query_service,
    get_transaction_service,
)
from arbitrated_escrow.domain.exceptions import DuplicateOperationError
from arbitrated_escrow.domain.models import Identity, TransactionRecord
from arbitrated_escrow.infrastructure import redis_client
from arbitrated_escrow.logging_config import get_logger
from arbitrated_escrow.schemas.escrow import (
    ActionRequest,
    AuditEntryResponse,
    CreateTransactionRequest,
    TransactionResponse,
    TransactionStatusResponse,
)
from arbitrated_escrow.services.query_service import QueryService
from arbitrated_escrow.services.transaction_service import TransactionService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

router = APIRouter(prefix="/api/v1/transactions", tags=["Transactions"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=201,
    summary="Create a new escrow transaction",
)
async def create_transaction(
    request: CreateTransactionRequest,
    identity: Identity = Depends(get_identity),
    svc: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    """Open a transaction in pending_acceptance and invite the counterparty."""
    transaction_id = None
    claimed_key = None
    if request.idempotency_key and redis_client.redis_available():
        transaction_id = svc.new_transaction_id()
        try:
            claimed = await redis_client.claim_idempotency(
                identity.uid, request.idempotency_key, transaction_id
            )
        except RedisError as exc:
            logger.warning("idempotency.redis_unavailable", error=str(exc))
        else:
            if not claimed:
                existing = await _existing_transaction_id(identity.uid, request.idempotency_key)
                raise DuplicateOperationError(request.idempotency_key, existing_id=existing)
            claimed_key = request.idempotency_key

    try:
        record = await svc.create(
            identity,
            invite_email=request.invite_email,
            role=request.role,
            amount=request.amount,
            currency=request.currency,
            terms=request.terms,
            transaction_id=transaction_id,
        )
    except Exception:
        if claimed_key is not None:
            await _release_claim(identity.uid, claimed_key)
        raise
    return TransactionResponse.model_validate(record)


async def _existing_transaction_id(uid: str, key: str) -> str | None:
    """The id a taken key points at. None if Redis fails after the claim did."""
    try:
        return await redis_client.lookup_idempotency(uid, key)
    except RedisError as exc:
        logger.warning("idempotency.lookup_failed", key=key, error=str(exc))
        return None


async def _release_claim(uid: str, key: str) -> None:
    try:
        await redis_client.release_idempotency(uid, key)
    except RedisError as exc:
        # The key expires on its own TTL; the create error is what the caller needs.
        logger.warning("idempotency.release_failed", key=key, error=str(exc))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List transactions visible to the caller",
)
async def list_transactions(
    identity: Identity = Depends(get_identity),
    queries: QueryService = Depends(get_query_service),
) -> list[TransactionResponse]:
    """Participants see their own deals; arbitrators see every deal. Newest first."""
    records = await queries.list_visible(identity)
    return [TransactionResponse.model_validate(r) for r in records]


@router.get(
    "/stream",
    summary="Live stream of visible transactions",
    response_class=StreamingResponse,
)
async def stream_transactions(
    identity: Identity = Depends(get_identity),
    queries: QueryService = Depends(get_query_service),
    max_snapshots: int | None = Query(default=None, ge=1),
) -> StreamingResponse:
    """Newline-delimited JSON: one sorted snapshot now and after every change."""
    snapshots = queries.watch(identity)
    # Pull the first snapshot here so lookup errors map to HTTP errors.
    first = await anext(snapshots)

    async def body() -> AsyncIterator[str]:
        sent = 0
        try:
            batch = first
            while True:
                yield _snapshot_line(batch)
                sent += 1
                if max_snapshots is not None and sent >= max_snapshots:
                    return
                batch = await anext(snapshots)
        finally:
            await snapshots.aclose()

    return StreamingResponse(body(), media_type="application/x-ndjson")


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get transaction details",
)
async def get_transaction(
    transaction_id: str,
    identity: Identity = Depends(get_identity),
    svc: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    record = await svc.get(transaction_id, identity)
    return TransactionResponse.model_validate(record)


@router.get(
    "/{transaction_id}/status",
    response_model=TransactionStatusResponse,
    summary="What the caller may do next",
)
async def get_transaction_status(
    transaction_id: str,
    identity: Identity = Depends(get_identity),
    svc: TransactionService = Depends(get_transaction_service),
) -> TransactionStatusResponse:
    view = await svc.describe(transaction_id, identity)
    return TransactionStatusResponse(
        transaction_id=view.record.id,
        status=view.record.status.value,
        version=view.record.version,
        role=view.role.value if view.role else None,
        is_arbitrator=view.is_arbitrator,
        allowed_actions=[a.value for a in view.allowed_actions],
        awaiting=view.awaiting,
        progress=view.progress,
    )


@router.get(
    "/{transaction_id}/audit",
    response_model=list[AuditEntryResponse],
    summary="Get audit trail (arbitrators only)",
)
async def get_audit_trail(
    transaction_id: str,
    identity: Identity = Depends(get_identity),
    queries: QueryService = Depends(get_query_service),
) -> list[AuditEntryResponse]:
    entries = await queries.audit_trail(transaction_id, identity)
    return [AuditEntryResponse.model_validate(e) for e in entries]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/actions/{action}",
    response_model=TransactionResponse,
    summary="Perform a transition action",
)
async def perform_action(
    transaction_id: str,
    action: str,
    request: ActionRequest | None = Body(default=None),
    identity: Identity = Depends(get_identity),
    svc: TransactionService = Depends(get_transaction_service),
) -> TransactionResponse:
    """Apply accept, reject, mark_payment_sent, confirm_payment, release_goods,
    approve_release, mark_under_review, resolve_review or mark_refunded."""
    request = request or ActionRequest()
    record = await svc.perform(
        transaction_id,
        identity,
        action,
        reason=request.reason,
        expected_version=request.expected_version,
    )
    return TransactionResponse.model_validate(record)


@router.delete(
    "/{transaction_id}",
    status_code=204,
    response_class=Response,
    summary="Delete a transaction",
)
async def delete_transaction(
    transaction_id: str,
    identity: Identity = Depends(get_identity),
    svc: TransactionService = Depends(get_transaction_service),
    expected_version: int | None = Query(default=None, ge=1),
) -> Response:
    await svc.delete(transaction_id, identity, expected_version=expected_version)
    return Response(status_code=204)


def _snapshot_line(records: list[TransactionRecord]) -> str:
    payload = [TransactionResponse.model_validate(r).model_dump(mode="json") for r in records]
    return json.dumps(payload) + "\n"
