"""Application services — use case orchestration."""

from arbitrated_escrow.services.audit_service import AuditLog
from arbitrated_escrow.services.notification_service import MarkAllReadResult, NotificationOutbox
from arbitrated_escrow.services.query_service import QueryService
from arbitrated_escrow.services.runtime import (
    EscrowRuntime,
    build_memory_runtime,
    build_runtime,
    build_sql_runtime,
)
from arbitrated_escrow.services.side_effects import SideEffectDispatcher
from arbitrated_escrow.services.transaction_service import TransactionService, TransactionView
from arbitrated_escrow.services.user_service import UserService

__all__ = [
    "AuditLog",
    "EscrowRuntime",
    "MarkAllReadResult",
    "NotificationOutbox",
    "QueryService",
    "SideEffectDispatcher",
    "TransactionService",
    "TransactionView",
    "UserService",
    "build_memory_runtime",
    "build_runtime",
    "build_sql_runtime",
]
