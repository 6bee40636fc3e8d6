"""Service layer."""
from pizza_promo.services.lock_service import LockService
from pizza_promo.services.history_service import HistoryService
from pizza_promo.services.coupon_client import CouponIssuanceClient, get_coupon_client
from pizza_promo.services.notification_service import AdminNotifier, get_admin_notifier
from pizza_promo.services.game_service import GameService
from pizza_promo.services.timing_service import TimingService

__all__ = [
    "LockService",
    "HistoryService",
    "CouponIssuanceClient",
    "get_coupon_client",
    "AdminNotifier",
    "get_admin_notifier",
    "GameService",
    "TimingService",
]
