"""Health check endpoint."""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from pizza_promo.database import engine
from pizza_promo.config import get_settings
from pizza_promo.version import APP_VERSION
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "detail": "Database connection failed"},
        )

    settings = get_settings()
    return {
        "status": "ok",
        "database": "connected",
        "version": APP_VERSION,
        "couponService": "configured" if settings.coupon_service_configured else "disabled",
        "email": "configured" if settings.smtp_configured else "disabled",
    }
