from fastapi import APIRouter

from app.api.endpoints.superadmin.apikeys import router as apikeys_router
from app.api.endpoints.superadmin.smtp import router as smtp_router

router = APIRouter()
router.include_router(smtp_router, prefix="/smtp")
router.include_router(apikeys_router, prefix="/apikeys")

__all__ = ["router"]
