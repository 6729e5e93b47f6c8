from fastapi import APIRouter

from .endpoints import health, notify

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(notify.router)
