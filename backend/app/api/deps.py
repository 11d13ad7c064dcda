"""FastAPI dependencies for the API layer."""

from fastapi import HTTPException, Request, status

from app.services.dispatcher import RelayHub
from app.services.identity import InvalidIdentity, normalize_identity


def get_hub(request: Request) -> RelayHub:
    """Return the relay hub created by the application factory."""

    return request.app.state.hub


def path_identity(identity: str) -> str:
    """Normalise an identity taken from the URL path or raise HTTP 422."""

    try:
        return normalize_identity(identity)
    except InvalidIdentity as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from None
