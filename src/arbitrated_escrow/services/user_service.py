"""User registration against the directory.

Arbitrator membership is decided here, once, from the configured arbitrator
email set. The engine only ever reads the resulting ``is_arbitrator`` flag.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from arbitrated_escrow.domain.exceptions import EscrowValidationError
from arbitrated_escrow.domain.models import UserProfile
from arbitrated_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from arbitrated_escrow.config import Settings
    from arbitrated_escrow.domain.collaborators import UserDirectory

logger = get_logger(__name__)


class UserService:
    """Registers users and exposes directory reads."""

    def __init__(self, directory: UserDirectory, settings: Settings) -> None:
        self._directory = directory
        self._settings = settings

    async def register(
        self,
        uid: str,
        email: str,
        username: str = "",
        wallet_address: str = "",
    ) -> UserProfile:
        email = email.strip().lower()
        if not uid.strip():
            raise EscrowValidationError("uid", "A user id is required")
        if "@" not in email:
            raise EscrowValidationError("email", f"Not a valid email address: {email!r}")

        existing = await self._directory.lookup_by_email(email)
        if existing is not None and existing.uid != uid:
            raise EscrowValidationError("email", f"{email} is already registered")

        profile = UserProfile(
            uid=uid,
            email=email,
            username=username.strip() or email.split("@", 1)[0],
            wallet_address=wallet_address.strip(),
            is_arbitrator=email in self._settings.arbitrator_email_set,
        )
        await self._directory.add(profile)
        logger.info("user.registered", uid=uid, is_arbitrator=profile.is_arbitrator)
        return profile

    async def get(self, uid: str) -> UserProfile | None:
        return await self._directory.get(uid)
