"""Profile store endpoints: registration, lookup and profile updates."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_hub, path_identity
from app.schemas import PublicUser, UserCreate, UserLookup, UserProfileUpdate, UserRead
from app.services.dispatcher import RelayHub
from app.services.profiles import DuplicateIdentity

router = APIRouter(prefix="/users", tags=["users"])


async def _require_user(hub: RelayHub, identity: str) -> UserRead:
    user = await hub.profiles.get_user(identity)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, hub: RelayHub = Depends(get_hub)) -> UserRead:
    """Register a new identity with its opaque key material."""

    try:
        return await hub.profiles.create_user(payload)
    except DuplicateIdentity:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Identity already registered"
        ) from None


@router.post("/lookup", response_model=list[PublicUser])
async def find_users(payload: UserLookup, hub: RelayHub = Depends(get_hub)) -> list[PublicUser]:
    """Resolve public profiles for several identities; unknown ones are omitted."""

    return await hub.profiles.find_users(payload.identities)


@router.get("/{identity}", response_model=UserRead)
async def get_user(
    identity: str = Depends(path_identity), hub: RelayHub = Depends(get_hub)
) -> UserRead:
    return await _require_user(hub, identity)


@router.patch("/{identity}", response_model=UserRead)
async def update_profile(
    payload: UserProfileUpdate,
    identity: str = Depends(path_identity),
    hub: RelayHub = Depends(get_hub),
) -> UserRead:
    """Update profile fields and notify the identity and its online friends."""

    await _require_user(hub, identity)
    if await hub.profiles.update_profile(identity, payload.changes()):
        await hub.notify_profile_changed(identity)
    return await _require_user(hub, identity)
