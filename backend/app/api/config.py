"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from app.config import Settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/webrtc")
def read_webrtc_config(request: Request) -> dict[str, Any]:
    """Return the statically configured STUN/TURN servers for peer connections."""

    settings: Settings = request.app.state.settings
    return {"ice_servers": settings.webrtc_ice_servers_payload}
