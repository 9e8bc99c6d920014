"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the runtime, its
services, the caller identity and configuration.
"""

from __future__ import annotations

from fastapi import Depends, Header, Request

from arbitrated_escrow.config import Settings, get_settings
from arbitrated_escrow.domain.exceptions import AuthenticationRequiredError
from arbitrated_escrow.domain.models import Identity
from arbitrated_escrow.services.notification_service import NotificationOutbox
from arbitrated_escrow.services.query_service import QueryService
from arbitrated_escrow.services.runtime import EscrowRuntime
from arbitrated_escrow.services.transaction_service import TransactionService
from arbitrated_escrow.services.user_service import UserService


def get_runtime(request: Request) -> EscrowRuntime:
    """Provide the runtime built during the app lifespan."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise RuntimeError("Escrow runtime not initialized")
    return runtime


class HeaderIdentityProvider:
    """IdentityProvider backed by the X-User-Id / X-User-Email request headers."""

    def __init__(self, uid: str | None, email: str | None = None) -> None:
        self._uid = (uid or "").strip()
        self._email = email

    def current_identity(self) -> Identity | None:
        if not self._uid:
            return None
        return Identity(uid=self._uid, email=self._email)


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> Identity:
    """Resolve the caller identity from request headers.

    Raises:
        AuthenticationRequiredError: If no X-User-Id header was supplied.
    """
    identity = HeaderIdentityProvider(x_user_id, x_user_email).current_identity()
    if identity is None:
        raise AuthenticationRequiredError()
    return identity


def get_transaction_service(
    runtime: EscrowRuntime = Depends(get_runtime),
) -> TransactionService:
    return runtime.transactions


def get_query_service(runtime: EscrowRuntime = Depends(get_runtime)) -> QueryService:
    return runtime.queries


def get_outbox(runtime: EscrowRuntime = Depends(get_runtime)) -> NotificationOutbox:
    return runtime.outbox


def get_user_service(runtime: EscrowRuntime = Depends(get_runtime)) -> UserService:
    return runtime.users


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
