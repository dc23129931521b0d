"""Health check endpoint."""

from fastapi import APIRouter, Depends

from blockserved.core.config import Settings, get_settings
from blockserved.core.database import check_db

router = APIRouter(prefix="/api", tags=["Health"])


@router.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    database_ok = await check_db()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": database_ok,
        "version": settings.app_version,
    }
