"""FastAPI dependencies."""
import logging

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pizza_promo.config import get_settings
from pizza_promo.database import get_db
from pizza_promo.services.coupon_client import CouponIssuanceClient, get_coupon_client
from pizza_promo.services.game_service import GameService
from pizza_promo.services.notification_service import AdminNotifier, get_admin_notifier
from pizza_promo.services.timing_service import TimingService

logger = logging.getLogger(__name__)


def get_client_ip(
    request: Request,
    x_forwarded_for: str | None = Header(default=None, alias="X-Forwarded-For"),
    x_real_ip: str | None = Header(default=None, alias="X-Real-IP"),
) -> str | None:
    """Resolve the client IP behind a proxy for the audit history."""
    if x_forwarded_for:
        # X-Forwarded-For can be a comma-separated list, take the first (client) IP
        return x_forwarded_for.split(",")[0].strip() or None
    if x_real_ip:
        return x_real_ip.strip() or None
    return request.client.host if request.client else None


def get_game_service(
    db: AsyncSession = Depends(get_db),
    coupon_client: CouponIssuanceClient = Depends(get_coupon_client),
    notifier: AdminNotifier = Depends(get_admin_notifier),
) -> GameService:
    return GameService(db, coupon_client=coupon_client, notifier=notifier)


def get_timing_service(
    db: AsyncSession = Depends(get_db),
    coupon_client: CouponIssuanceClient = Depends(get_coupon_client),
    notifier: AdminNotifier = Depends(get_admin_notifier),
) -> TimingService:
    return TimingService(db, coupon_client=coupon_client, notifier=notifier)


async def require_dev_tools() -> None:
    """Dev-only endpoints do not exist in production."""
    if get_settings().is_production:
        logger.warning("Blocked dev endpoint call in production")
        raise HTTPException(status_code=404, detail="Not Found")
