"""Pull endpoints used by clients to reconcile state missed while offline."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_hub, path_identity
from app.schemas import DirectMessageRead, FriendEntry, PublicUser, SyncSnapshot
from app.services.dispatcher import RelayHub
from app.services.identity import InvalidIdentity, normalize_identity

router = APIRouter(tags=["sync"])


@router.get("/sync/{identity}", response_model=SyncSnapshot)
async def read_sync_snapshot(
    identity: str = Depends(path_identity), hub: RelayHub = Depends(get_hub)
) -> SyncSnapshot:
    """Return friends (with live presence), pending requests and unread counts."""

    if await hub.profiles.get_user(identity) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    relations = await hub.graph.snapshot(identity)
    profiles = {
        profile.email: profile
        for profile in await hub.profiles.find_users(
            [*relations.friends, *relations.requests, *relations.sent_requests]
        )
    }
    online = await hub.presence.online_among(relations.friends)

    def public(identities: list[str]) -> list[PublicUser]:
        return [profiles.get(other) or PublicUser(email=other) for other in identities]

    return SyncSnapshot(
        identity=identity,
        friends=[
            FriendEntry(**profile.model_dump(), online=profile.email in online)
            for profile in public(relations.friends)
        ],
        requests=public(relations.requests),
        sent_requests=public(relations.sent_requests),
        unread=await hub.conversations.unread_counts(identity),
    )


@router.get(
    "/conversations/{identity}/{counterpart}/messages",
    response_model=list[DirectMessageRead],
)
async def read_history(
    counterpart: str,
    identity: str = Depends(path_identity),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    order: Literal["asc", "desc"] = Query(default="asc"),
    hub: RelayHub = Depends(get_hub),
) -> list[DirectMessageRead]:
    """Return one history page, counted back from the newest message."""

    try:
        other = normalize_identity(counterpart)
    except InvalidIdentity as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None
    return await hub.conversations.history(identity, other, limit=limit, offset=offset, order=order)
