"""Caller identity resolution.

The engine resolves a caller exactly once per action: identity -> directory
profile -> Actor. Everything downstream (permission gate, audit stamp,
notification wording) works from that Actor.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from arbitrated_escrow.domain.exceptions import AuthenticationRequiredError, UserNotFoundError
from arbitrated_escrow.domain.models import Actor, Identity

if TYPE_CHECKING:
    from arbitrated_escrow.domain.collaborators import IdentityProvider, UserDirectory


class FixedIdentityProvider:
    """IdentityProvider that always reports the same caller (bots, scripts, tests)."""

    def __init__(self, uid: str | None, email: str | None = None) -> None:
        self._identity = Identity(uid=uid, email=email) if uid else None

    def current_identity(self) -> Identity | None:
        return self._identity


def current_identity(provider: IdentityProvider) -> Identity:
    identity = provider.current_identity()
    if identity is None:
        raise AuthenticationRequiredError()
    return identity


async def resolve_actor(directory: UserDirectory, identity: Identity | None) -> Actor:
    """Turn a caller identity into an Actor.

    Raises:
        AuthenticationRequiredError: No identity was supplied.
        UserNotFoundError: The identity has no directory entry.
    """
    if identity is None:
        raise AuthenticationRequiredError()
    profile = await directory.get(identity.uid)
    if profile is None:
        raise UserNotFoundError(uid=identity.uid)
    return Actor.from_profile(profile)
