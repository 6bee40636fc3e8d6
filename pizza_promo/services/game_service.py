"""Número Ganador round lifecycle: attempts, wins, claims and round advancement."""
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import random
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from pizza_promo.models.base import GameKey, HistoryKind, Outcome
from pizza_promo.models.round import Round
from pizza_promo.services.claim_service_base import ClaimServiceBase
from pizza_promo.services.coupon_client import CouponIssuanceResult
from pizza_promo.services.draw_service import (
    ForcedWinPolicy,
    draw_attempt,
    is_win,
    pick_target,
    resolve_forced_win,
)
from pizza_promo.utils.datetime_helpers import ensure_utc, utc_now
from pizza_promo.utils.exceptions import GameLockedError, NoActiveRoundError, NothingToClaimError

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    attempt_value: int
    target_value: int
    is_win: bool
    locked_until: Optional[datetime]
    forced: bool = False
    forced_reason: Optional[str] = None
    lock_applied: bool = False


@dataclass
class ClaimResult:
    round_id: int
    next_target_value: int
    coupon_result: CouponIssuanceResult


@dataclass
class GameStatus:
    target_value: Optional[int]
    locked_until: Optional[datetime]
    now: datetime


class GameService(ClaimServiceBase):
    """Orchestrates the Número Ganador attempt and claim flows."""

    def __init__(self, db, coupon_client=None, notifier=None, policy: Optional[ForcedWinPolicy] = None,
                 rng: Optional[random.Random] = None):
        super().__init__(db, coupon_client=coupon_client, notifier=notifier)
        self.policy = policy or ForcedWinPolicy.from_settings(self.settings)
        self.rng = rng

    @property
    def game(self) -> GameKey:
        return GameKey.NUMERO_GANADOR

    @property
    def default_game_id(self) -> int:
        return self.settings.numero_ganador_game_id

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------
    async def get_current_round(self) -> Optional[Round]:
        """The most recently generated unclaimed round holds the live target."""
        result = await self.db.execute(
            select(Round).where(Round.claimed.is_(False)).order_by(Round.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_claimable_round(self) -> Optional[Round]:
        """Latest round that has been won and not yet claimed."""
        result = await self.db.execute(
            select(Round)
            .where(Round.won_at.is_not(None), Round.claimed.is_(False))
            .order_by(Round.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _new_round(self) -> Round:
        round_obj = Round(target_value=pick_target(self.rng), claimed=False, delivered=False)
        self.db.add(round_obj)
        return round_obj

    async def create_round(self) -> Round:
        round_obj = self._new_round()
        await self.db.commit()
        logger.info(f"New round {round_obj.id} created")
        return round_obj

    async def ensure_round(self) -> Round:
        """Create the first round on a fresh database."""
        current = await self.get_current_round()
        if current is None:
            current = await self.create_round()
        return current

    async def get_status(self, now: Optional[datetime] = None) -> GameStatus:
        now = ensure_utc(now) or utc_now()
        current = await self.get_current_round()
        locked_until = await self.locks.active_lock(now)
        return GameStatus(
            target_value=current.target_value if current else None,
            locked_until=locked_until,
            now=now,
        )

    # ------------------------------------------------------------------
    # Attempt flow
    # ------------------------------------------------------------------
    async def attempt(self, source_ip: Optional[str] = None, now: Optional[datetime] = None) -> AttemptResult:
        """Play one attempt against the current round.

        Raises:
            GameLockedError: A cooldown lock is active
            NoActiveRoundError: No round has been generated yet
        """
        now = ensure_utc(now) or utc_now()

        locked_until = await self.locks.active_lock(now)
        if locked_until is not None:
            raise GameLockedError(locked_until)

        current = await self.get_current_round()
        if current is None:
            raise NoActiveRoundError("No hay número ganador generado aún")
        target = current.target_value

        counter = await self.locks.increment_counter() if self.policy.uses_counter else 0
        decision = resolve_forced_win(self.policy, counter, target)
        attempt_value = decision.value if decision.forced else draw_attempt(self.rng)
        won = is_win(attempt_value, target)

        extra = {"roundId": current.id, "forced": decision.forced}
        if decision.reason:
            extra["reason"] = decision.reason

        await self.history.log(
            HistoryKind.ATTEMPT,
            attempt_value=attempt_value,
            outcome=Outcome.WIN if won else Outcome.LOSE,
            target_value=target,
            source_ip=source_ip,
            extra=extra,
        )

        if not won:
            return AttemptResult(attempt_value=attempt_value, target_value=target, is_win=False, locked_until=None)

        applied = await self.locks.set_lock(self.settings.lock_minutes, now=now)
        lock_after = await self.locks.get_lock()
        await self._record_win(current.id, attempt_value, now)

        await self.history.log(
            HistoryKind.WIN,
            attempt_value=attempt_value,
            outcome=Outcome.WIN,
            target_value=target,
            source_ip=source_ip,
            extra={**extra, "applied": applied, "lockedUntil": lock_after},
        )

        if applied:
            logger.info(f"Round {current.id} won with {attempt_value} (forced={decision.forced})")
            self._notify_win(attempt_value, target, lock_after, decision.reason)
        else:
            logger.info(f"Duplicate win on round {current.id}, lock was already applied")

        return AttemptResult(
            attempt_value=attempt_value,
            target_value=target,
            is_win=True,
            locked_until=lock_after,
            forced=decision.forced,
            forced_reason=decision.reason,
            lock_applied=bool(applied),
        )

    async def _record_win(self, round_id: int, attempt_value: int, now: datetime) -> bool:
        """Stamp the round as won; later duplicate wins leave the first stamp in place."""
        result = await self.db.execute(
            update(Round)
            .where(Round.id == round_id, Round.won_at.is_(None))
            .values(won_at=now, winning_attempt=attempt_value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Claim flow
    # ------------------------------------------------------------------
    async def claim(
        self,
        contact: Optional[str],
        game_id: Optional[int] = None,
        source_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ClaimResult:
        """Claim the latest won round, start the next round and issue the coupon.

        The claim and the next round are committed together, before the coupon
        is requested, so a storage failure leaves the won round claimable.

        Raises:
            NothingToClaimError: No won, unclaimed round exists (or it was claimed concurrently)
        """
        now = ensure_utc(now) or utc_now()
        contact = self.normalize_contact(contact)

        round_obj = await self.get_claimable_round()
        if round_obj is None:
            raise NothingToClaimError("No hay número ganador activo para reclamar")

        # Claims made after the win's cooldown has run out are recorded separately
        won_at = ensure_utc(round_obj.won_at)
        within_cooldown = now < won_at + timedelta(minutes=self.settings.lock_minutes)

        try:
            claimed = await self._mark_claimed(Round, round_obj.id, contact, now, auto_commit=False)
            if claimed:
                next_round = self._new_round()
                await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(f"Claim of round {round_obj.id} rolled back")
            raise

        if not claimed:
            await self.db.rollback()
            raise NothingToClaimError("No hay número ganador activo para reclamar")

        await self.history.log(
            HistoryKind.CLAIM if within_cooldown else HistoryKind.DIRECT_CLAIM,
            outcome=Outcome.OK,
            target_value=round_obj.target_value,
            source_ip=source_ip,
            extra={
                "roundId": round_obj.id,
                "contact": contact,
                "gameId": game_id,
                "wonAt": won_at,
                "winningAttempt": round_obj.winning_attempt,
            },
        )

        coupon_result = await self._issue_coupon(
            Round,
            round_obj.id,
            idempotency_key=f"claim-{round_obj.id}",
            contact=contact,
            game_number=round_obj.target_value,
            game_id=game_id,
            source_ip=source_ip,
        )

        self._notify_claim(f"ronda {round_obj.id}", contact, coupon_result)
        logger.info(f"Round {round_obj.id} claimed, next round {next_round.id}")

        return ClaimResult(
            round_id=round_obj.id,
            next_target_value=next_round.target_value,
            coupon_result=coupon_result,
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------
    async def list_pending_deliveries(self) -> list[Round]:
        """Claimed rounds whose prize has not been delivered yet, newest first."""
        result = await self.db.execute(
            select(Round)
            .where(Round.claimed.is_(True), Round.delivered.is_(False))
            .order_by(Round.id.desc())
        )
        return list(result.scalars().all())

    async def verify_number(self, number: int) -> Optional[Round]:
        result = await self.db.execute(
            select(Round)
            .where(Round.target_value == number, Round.claimed.is_(True))
            .order_by(Round.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_delivered(self, number: int) -> int:
        """Mark every claimed round with ``number`` as delivered."""
        result = await self.db.execute(
            update(Round)
            .where(Round.target_value == number, Round.claimed.is_(True))
            .values(delivered=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(f"Marked {result.rowcount} round(s) with number {number} as delivered")
        return result.rowcount or 0
