from fastapi import APIRouter

from app.api.config import router as config_router
from app.api.sync import router as sync_router
from app.api.users import router as users_router

router = APIRouter()

router.include_router(users_router)
router.include_router(sync_router)
router.include_router(config_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Hello, Rivift Connect Server!"}
