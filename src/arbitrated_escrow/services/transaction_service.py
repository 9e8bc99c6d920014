"""Transaction Service — commits planned transitions with compare-and-swap.

This is the application layer that coordinates between:
    - Identity resolution (caller -> Actor, once per action)
    - The pure transition planner (permission gate + state machine guard)
    - The document store (conditional update on the record's version)
    - The side-effect dispatcher (audit + notifications, after commit)

Every action other than create is a single conditional update. A lost race
raises ConflictError; the engine never retries a transition on its own,
because blind replays of actions like mark_refunded would double-notify.
"""

from __future__ import annotations

import dataclasses
import functools
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from arbitrated_escrow.domain.collaborators import TRANSACTIONS
from arbitrated_escrow.domain.enums import STATUS_PROGRESS, Action, PartyRole, TxStatus
from arbitrated_escrow.domain.exceptions import (
    ConflictError,
    DeletionRefusedError,
    DuplicateOperationError,
    EscrowValidationError,
    InvalidStateError,
    PermissionDeniedError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from arbitrated_escrow.domain.models import TransactionRecord
from arbitrated_escrow.domain.permissions import (
    ACTION_REQUIREMENTS,
    awaiting_party,
    can_view,
    capabilities_for,
    role_of,
)
from arbitrated_escrow.domain.state_machine import available_actions
from arbitrated_escrow.domain.transitions import plan_transition
from arbitrated_escrow.logging_config import get_logger
from arbitrated_escrow.services.identity import resolve_actor

if TYPE_CHECKING:
    from arbitrated_escrow.config import Settings
    from arbitrated_escrow.domain.collaborators import DocumentStore, UserDirectory
    from arbitrated_escrow.domain.models import Actor, Identity
    from arbitrated_escrow.domain.transitions import TransitionPlan
    from arbitrated_escrow.services.audit_service import AuditLog
    from arbitrated_escrow.services.notification_service import NotificationOutbox
    from arbitrated_escrow.services.side_effects import SideEffectDispatcher

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransactionView:
    """A record as seen by one caller: what they are and what they can do now."""

    record: TransactionRecord
    role: PartyRole | None
    is_arbitrator: bool
    allowed_actions: list[Action]
    awaiting: str | None
    progress: int


class TransactionService:
    """Manages the escrow transaction lifecycle."""

    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        audit: AuditLog,
        outbox: NotificationOutbox,
        dispatcher: SideEffectDispatcher,
        settings: Settings,
    ) -> None:
        self._store = store
        self._directory = directory
        self._audit = audit
        self._outbox = outbox
        self._dispatcher = dispatcher
        self._settings = settings
        self._last_commit_at: datetime | None = None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        identity: Identity | None,
        *,
        invite_email: str,
        role: PartyRole | str,
        amount: Decimal | str | float,
        currency: str,
        terms: str = "",
        transaction_id: str | None = None,
    ) -> TransactionRecord:
        """Open a new transaction in pending_acceptance and invite the counterparty.

        Raises:
            EscrowValidationError: Bad role, amount or currency, or a self-invite.
            UserNotFoundError: No user is registered under ``invite_email``.
            DuplicateOperationError: ``transaction_id`` is already taken.
        """
        creator = await resolve_actor(self._directory, identity)
        creator_role = self._parse_role(role)
        value = self._parse_amount(amount)
        currency = self._parse_currency(currency)

        invite_email = invite_email.strip().lower()
        invited = await self._directory.lookup_by_email(invite_email)
        if invited is None:
            raise UserNotFoundError(email=invite_email)
        if invited.uid == creator.uid:
            raise EscrowValidationError("invite_email", "You cannot invite yourself")

        creator_wallet = {
            PartyRole.SELLER: {"seller_wallet_address": creator.wallet_address},
            PartyRole.BUYER: {"buyer_wallet_address": creator.wallet_address},
        }[creator_role]
        record = TransactionRecord(
            id=transaction_id or self.new_transaction_id(),
            creator_uid=creator.uid,
            creator_role=creator_role,
            invited_uid=invited.uid,
            invited_role=creator_role.complement,
            amount=value,
            currency=currency,
            terms=terms.strip(),
            status=TxStatus.PENDING_ACCEPTANCE,
            escrow_wallet_address=self._settings.escrow_wallet_address,
            created_at=datetime.now(UTC),
            **creator_wallet,
        )

        stored = await self._store.insert(TRANSACTIONS, record.id, record.to_document())
        if stored is None:
            raise DuplicateOperationError(record.id, existing_id=record.id)
        record = dataclasses.replace(record, version=stored.version)

        self._notify(
            record.id,
            invited.uid,
            f"{creator.display_name} invited you to an escrow ({record.id}).",
        )
        logger.info(
            "transaction.created",
            transaction_id=record.id,
            creator_uid=creator.uid,
            creator_role=creator_role.value,
            amount=str(value),
            currency=currency,
        )
        return record

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def perform(
        self,
        transaction_id: str,
        identity: Identity | None,
        action: Action | str,
        *,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> TransactionRecord:
        """Apply one transition action and commit it conditionally.

        Args:
            transaction_id: The record to act on.
            identity: The caller.
            action: Any action except create and delete.
            reason: Optional justification, kept in the audit entry.
            expected_version: The version the caller last saw. If the record
                has moved on since, the action fails with ConflictError.

        Raises:
            PermissionDeniedError: The caller is not the actor the action needs.
            InvalidStateError: The record's status or flags forbid the action.
            ConflictError: The record changed before the update committed.
            TransactionNotFoundError: Unknown transaction id.
        """
        action = self._parse_action(action)
        actor = await resolve_actor(self._directory, identity)
        record = await self._load(transaction_id)

        plan = plan_transition(record, actor, action, reason=reason)
        if action is Action.MARK_PAYMENT_SENT:
            # Arbitrators are looked up only once the action is known to be legal.
            arbitrator_uids = [p.uid for p in await self._directory.list_arbitrators()]
            plan = plan_transition(
                record, actor, action, arbitrator_uids=arbitrator_uids, reason=reason
            )
        if expected_version is not None and expected_version != record.version:
            raise self._conflict(record, action, expected_version, actor)

        committed = await self._store.put_if_version(
            TRANSACTIONS, record.id, plan.record.to_document(), record.version
        )
        if not committed:
            raise self._conflict(record, action, record.version, actor)

        updated = dataclasses.replace(plan.record, version=record.version + 1)
        self._dispatch(plan, actor, self._commit_time())

        logger.info(
            "transaction.transitioned",
            transaction_id=record.id,
            action=action.value,
            actor_uid=actor.uid,
            from_status=record.status.value,
            to_status=updated.status.value,
            version=updated.version,
        )
        return updated

    async def accept(self, transaction_id: str, identity: Identity | None, **kwargs: Any) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.ACCEPT, **kwargs)

    async def reject(self, transaction_id: str, identity: Identity | None, **kwargs: Any) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.REJECT, **kwargs)

    async def mark_payment_sent(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.MARK_PAYMENT_SENT, **kwargs)

    async def confirm_payment(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.CONFIRM_PAYMENT, **kwargs)

    async def release_goods(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.RELEASE_GOODS, **kwargs)

    async def approve_release(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.APPROVE_RELEASE, **kwargs)

    async def mark_under_review(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.MARK_UNDER_REVIEW, **kwargs)

    async def resolve_review(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.RESOLVE_REVIEW, **kwargs)

    async def mark_refunded(
        self, transaction_id: str, identity: Identity | None, **kwargs: Any
    ) -> TransactionRecord:
        return await self.perform(transaction_id, identity, Action.MARK_REFUNDED, **kwargs)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(
        self,
        transaction_id: str,
        identity: Identity | None,
        *,
        expected_version: int | None = None,
    ) -> None:
        """Remove a not-yet-consummated transaction and purge its audit trail.

        Notifications already delivered are left untouched.

        Raises:
            DeletionRefusedError: The caller is not a participant.
            InvalidStateError: The status is outside the deletable set.
            ConflictError: The record changed before the delete committed.
        """
        actor = await resolve_actor(self._directory, identity)
        record = await self._load(transaction_id)

        if not record.is_participant(actor.uid):
            raise DeletionRefusedError(record.id, actor.uid, record.status.value)
        if not record.status.is_deletable:
            raise InvalidStateError(
                transaction_id=record.id,
                action=Action.DELETE.value,
                current_status=record.status.value,
                reason=(
                    "only rejected, pending_acceptance, waiting_payment or "
                    "awaiting_confirmation transactions can be deleted"
                ),
            )
        if expected_version is not None and expected_version != record.version:
            raise self._conflict(record, Action.DELETE, expected_version, actor)

        deleted = await self._store.delete_if_version(TRANSACTIONS, record.id, record.version)
        if not deleted:
            raise self._conflict(record, Action.DELETE, record.version, actor)

        self._dispatcher.submit(
            "audit.purge",
            functools.partial(self._audit.purge, record.id),
            transaction_id=record.id,
        )
        logger.info(
            "transaction.deleted",
            transaction_id=record.id,
            actor_uid=actor.uid,
            status=record.status.value,
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get(self, transaction_id: str, identity: Identity | None) -> TransactionRecord:
        """Read one transaction. Participants and arbitrators only."""
        actor = await resolve_actor(self._directory, identity)
        record = await self._load(transaction_id)
        self._ensure_visible(actor, record)
        return record

    async def describe(self, transaction_id: str, identity: Identity | None) -> TransactionView:
        """The record plus what the caller may do with it right now."""
        actor = await resolve_actor(self._directory, identity)
        record = await self._load(transaction_id)
        self._ensure_visible(actor, record)

        caps = capabilities_for(actor, record)
        allowed = [a for a in available_actions(record) if ACTION_REQUIREMENTS[a] in caps]
        if record.is_participant(actor.uid) and record.status.is_deletable:
            allowed.append(Action.DELETE)

        return TransactionView(
            record=record,
            role=role_of(actor.uid, record),
            is_arbitrator=actor.is_arbitrator,
            allowed_actions=allowed,
            awaiting=awaiting_party(record),
            progress=STATUS_PROGRESS[record.status],
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load(self, transaction_id: str) -> TransactionRecord:
        stored = await self._store.get(TRANSACTIONS, transaction_id)
        if stored is None:
            raise TransactionNotFoundError(transaction_id)
        return TransactionRecord.from_document(
            stored.doc_id, stored.data, stored.version, stored.created_at
        )

    def new_transaction_id(self) -> str:
        return f"{self._settings.transaction_id_prefix}{uuid.uuid4().hex[:12].upper()}"

    @staticmethod
    def _ensure_visible(actor: Actor, record: TransactionRecord) -> None:
        if not can_view(actor, record):
            raise PermissionDeniedError(
                action="view",
                actor_uid=actor.uid,
                required="participant or arbitrator",
                transaction_id=record.id,
            )

    @staticmethod
    def _conflict(
        record: TransactionRecord, action: Action, expected_version: int, actor: Actor
    ) -> ConflictError:
        logger.warning(
            "transaction.conflict",
            transaction_id=record.id,
            action=action.value,
            actor_uid=actor.uid,
            expected_version=expected_version,
        )
        return ConflictError(record.id, action.value, expected_version)

    def _commit_time(self) -> datetime:
        """Wall-clock time of a commit, strictly increasing within this service."""
        now = datetime.now(UTC)
        if self._last_commit_at is not None and now <= self._last_commit_at:
            now = self._last_commit_at + timedelta(microseconds=1)
        self._last_commit_at = now
        return now

    def _dispatch(self, plan: TransitionPlan, actor: Actor, committed_at: datetime) -> None:
        """Schedule the audit entry and notifications of a committed plan."""
        tx_id = plan.record.id
        self._dispatcher.submit(
            "audit.record",
            functools.partial(
                self._audit.record,
                tx_id,
                actor.uid,
                plan.audit_action.value,
                plan.audit_metadata,
                committed_at,
            ),
            transaction_id=tx_id,
            audit_action=plan.audit_action.value,
        )
        for intent in plan.notifications:
            self._notify(tx_id, intent.recipient_uid, intent.message)

    def _notify(self, transaction_id: str, recipient_uid: str, message: str) -> None:
        self._dispatcher.submit(
            "notification.enqueue",
            functools.partial(self._outbox.enqueue, recipient_uid, message, transaction_id),
            transaction_id=transaction_id,
            recipient_uid=recipient_uid,
        )

    @staticmethod
    def _parse_action(action: Action | str) -> Action:
        try:
            parsed = Action(action)
        except ValueError as err:
            raise EscrowValidationError("action", f"Unknown action: {action!r}") from err
        if parsed in (Action.CREATE, Action.DELETE):
            raise EscrowValidationError(
                "action", f"'{parsed.value}' has its own operation and cannot be performed"
            )
        return parsed

    @staticmethod
    def _parse_role(role: PartyRole | str) -> PartyRole:
        try:
            return PartyRole(role)
        except ValueError as err:
            raise EscrowValidationError(
                "role", f"Role must be 'seller' or 'buyer', got {role!r}"
            ) from err

    @staticmethod
    def _parse_amount(amount: Decimal | str | float) -> Decimal:
        try:
            value = Decimal(str(amount))
        except InvalidOperation as err:
            raise EscrowValidationError("amount", f"Not a number: {amount!r}") from err
        if not value.is_finite() or value <= 0:
            raise EscrowValidationError("amount", "Amount must be greater than zero")
        return value

    def _parse_currency(self, currency: str) -> str:
        code = currency.strip().upper()
        supported = self._settings.supported_currency_list
        if code not in supported:
            raise EscrowValidationError(
                "currency",
                f"Unsupported currency {currency!r}; expected one of {', '.join(supported)}",
            )
        return code
