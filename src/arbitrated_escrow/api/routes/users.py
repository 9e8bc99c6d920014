"""User directory REST API routes.

Routes:
    POST   /api/v1/users        — Register a user
    GET    /api/v1/users/me     — The caller's directory entry
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from arbitrated_escrow.api.deps import get_identity, get_user_service
from arbitrated_escrow.domain.exceptions import UserNotFoundError
from arbitrated_escrow.domain.models import Identity
from arbitrated_escrow.schemas.escrow import RegisterUserRequest, UserResponse
from arbitrated_escrow.services.user_service import UserService

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.post(
    "",
    response_model=UserResponse,
    status_code=201,
    summary="Register a user",
)
async def register_user(
    request: RegisterUserRequest,
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    """Add a directory entry. Configured arbitrator emails get the arbitrator role."""
    profile = await users.register(
        uid=request.uid,
        email=request.email,
        username=request.username,
        wallet_address=request.wallet_address,
    )
    return UserResponse.model_validate(profile)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get the caller's profile",
)
async def get_me(
    identity: Identity = Depends(get_identity),
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    profile = await users.get(identity.uid)
    if profile is None:
        raise UserNotFoundError(uid=identity.uid)
    return UserResponse.model_validate(profile)
