"""Base game service with the lock, history and coupon plumbing shared by both games."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional, Type

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from pizza_promo.config import get_settings
from pizza_promo.models.base import GameKey, HistoryKind, Outcome
from pizza_promo.services.coupon_client import (
    CouponIssuanceClient,
    CouponIssuanceRequest,
    CouponIssuanceResult,
    NOT_CONFIGURED_ERROR,
    get_coupon_client,
)
from pizza_promo.services.history_service import HistoryService
from pizza_promo.services.lock_service import LockService
from pizza_promo.services.notification_service import AdminNotifier, get_admin_notifier
from pizza_promo.tasks import spawn_detached
from pizza_promo.utils.datetime_helpers import isoformat_z
from pizza_promo.utils.phone import normalize_phone_es

logger = logging.getLogger(__name__)


class ClaimServiceBase(ABC):
    """Base service for a game whose wins are claimed for a coupon."""

    def __init__(
        self,
        db: AsyncSession,
        coupon_client: Optional[CouponIssuanceClient] = None,
        notifier: Optional[AdminNotifier] = None,
    ):
        """Initialize the game service.

        Args:
            db: Database session
            coupon_client: Sales service client (defaults to the shared singleton)
            notifier: Admin notifier (defaults to the shared singleton)
        """
        self.db = db
        self.settings = get_settings()
        self.locks = LockService(db, self.game)
        self.history = HistoryService(db, self.game)
        self.coupon_client = coupon_client or get_coupon_client()
        self.notifier = notifier or get_admin_notifier()

    @property
    @abstractmethod
    def game(self) -> GameKey:
        """Return the game key that scopes locks and history."""
        pass

    @property
    @abstractmethod
    def default_game_id(self) -> int:
        """Return the sales service game id used when the client sends none."""
        pass

    @staticmethod
    def normalize_contact(contact: Optional[str]) -> Optional[str]:
        """Prefer the normalized phone number, keep the raw value otherwise."""
        if contact is None:
            return None
        contact = contact.strip()
        return normalize_phone_es(contact) or contact or None

    async def _mark_claimed(
        self,
        model: Type[Any],
        record_id: int,
        contact: Optional[str],
        now: datetime,
        auto_commit: bool = True,
    ) -> bool:
        """Flip ``claimed`` only if still unclaimed; must be committed before any coupon call.

        With ``auto_commit=False`` the caller commits, so it can add rows to the same transaction.
        """
        result = await self.db.execute(
            update(model)
            .where(model.id == record_id, model.claimed.is_(False))
            .values(claimed=True, contact=contact, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        if auto_commit:
            await self.db.commit()
        return bool(result.rowcount)

    async def _issue_coupon(
        self,
        model: Type[Any],
        record_id: int,
        idempotency_key: str,
        contact: Optional[str],
        game_number: Optional[int],
        game_id: Optional[int],
        source_ip: Optional[str],
    ) -> CouponIssuanceResult:
        """Request a coupon, store the outcome on the record and log it."""
        if not self.coupon_client.configured:
            return CouponIssuanceResult(issued=False, error=NOT_CONFIGURED_ERROR)

        request = CouponIssuanceRequest(
            idempotency_key=idempotency_key,
            contact=contact,
            hours=self.settings.sales_coupon_hours,
            game_number=game_number,
            game_id=game_id or self.default_game_id,
            channel=self.settings.game_channel,
        )
        result = await self.coupon_client.issue(request)

        coupon = result.coupon if result.issued else None
        await self.db.execute(
            update(model)
            .where(model.id == record_id)
            .values(
                coupon_code=coupon.code if coupon else None,
                coupon_expires_at=coupon.expires_at if coupon else None,
                coupon_error=None if result.issued else (result.error or "")[:500],
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        await self.history.log(
            HistoryKind.COUPON_ISSUE,
            attempt_value=game_number,
            outcome=Outcome.OK if result.issued else Outcome.FAIL,
            source_ip=source_ip,
            extra={
                "recordId": record_id,
                "idempotencyKey": idempotency_key,
                "gameId": request.game_id,
                "status": result.status,
                "code": coupon.code if coupon else None,
                "expiresAt": isoformat_z(coupon.expires_at) if coupon else None,
                "error": result.error,
            },
        )
        return result

    def _notify_win(self, attempt_value: int, target_value: int, locked_until, forced_reason: Optional[str]) -> None:
        spawn_detached(
            self.notifier.notify_win(self.game, attempt_value, target_value, locked_until, forced_reason),
            name=f"{self.game.value}-notify-win",
        )

    def _notify_claim(self, reference: str, contact: Optional[str], coupon_result: CouponIssuanceResult) -> None:
        spawn_detached(
            self.notifier.notify_claim(self.game, reference, contact, coupon_result),
            name=f"{self.game.value}-notify-claim-{reference}",
        )
