"""Perfect-Timing game: reaction-time attempts with independent winner records."""
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Optional

from pizza_promo.models.base import GameKey, HistoryKind, Outcome
from pizza_promo.models.timing_winner import TimingWinner
from pizza_promo.services.claim_service_base import ClaimServiceBase
from pizza_promo.services.coupon_client import CouponIssuanceResult
from pizza_promo.services.draw_service import is_timing_win
from pizza_promo.utils.datetime_helpers import ensure_utc, utc_now
from pizza_promo.utils.exceptions import (
    AlreadyClaimedError,
    GameLockedError,
    InvalidTimingError,
    WinnerNotFoundError,
)

logger = logging.getLogger(__name__)

# A stopwatch run longer than this is not a real attempt
MAX_ELAPSED_MS = 10 * 60 * 1000


@dataclass
class TimingAttemptResult:
    elapsed_ms: int
    target_ms: int
    tolerance_ms: int
    delta_ms: int
    is_win: bool
    winner_id: Optional[int]
    locked_until: Optional[datetime]
    forced: bool = False
    lock_applied: bool = False


@dataclass
class TimingClaimResult:
    winner_id: int
    coupon_result: CouponIssuanceResult


class TimingService(ClaimServiceBase):
    """Orchestrates the Perfect-Timing attempt and claim flows."""

    @property
    def game(self) -> GameKey:
        return GameKey.PERFECT_TIMING

    @property
    def default_game_id(self) -> int:
        return self.settings.perfect_timing_game_id

    @property
    def target_ms(self) -> int:
        return self.settings.timing_target_ms

    @property
    def tolerance_ms(self) -> int:
        return self.settings.timing_tolerance_ms

    async def get_status(self, now: Optional[datetime] = None) -> tuple[Optional[datetime], datetime]:
        now = ensure_utc(now) or utc_now()
        return await self.locks.active_lock(now), now

    async def attempt(
        self,
        elapsed_ms: int,
        source_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TimingAttemptResult:
        """Judge one stopwatch measurement.

        Raises:
            InvalidTimingError: Measurement is negative or implausibly long
            GameLockedError: A cooldown lock is active for this game
        """
        if isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, int):
            raise InvalidTimingError("elapsed time must be an integer number of milliseconds")
        if elapsed_ms < 0 or elapsed_ms > MAX_ELAPSED_MS:
            raise InvalidTimingError(f"elapsed time must be between 0 and {MAX_ELAPSED_MS} ms")

        now = ensure_utc(now) or utc_now()

        locked_until = await self.locks.active_lock(now)
        if locked_until is not None:
            raise GameLockedError(locked_until)

        delta_ms = abs(elapsed_ms - self.target_ms)
        forced = self.settings.force_win
        won = forced or is_timing_win(elapsed_ms, self.target_ms, self.tolerance_ms)

        extra = {"deltaMs": delta_ms, "toleranceMs": self.tolerance_ms, "forced": forced}
        if forced:
            extra["reason"] = "FORCE_WIN"

        await self.history.log(
            HistoryKind.ATTEMPT,
            attempt_value=elapsed_ms,
            outcome=Outcome.WIN if won else Outcome.LOSE,
            target_value=self.target_ms,
            source_ip=source_ip,
            extra=extra,
        )

        if not won:
            return TimingAttemptResult(
                elapsed_ms=elapsed_ms,
                target_ms=self.target_ms,
                tolerance_ms=self.tolerance_ms,
                delta_ms=delta_ms,
                is_win=False,
                winner_id=None,
                locked_until=None,
            )

        winner = TimingWinner(
            measured_ms=elapsed_ms,
            delta_ms=delta_ms,
            target_ms=self.target_ms,
            tolerance_ms=self.tolerance_ms,
            forced=forced,
        )
        self.db.add(winner)
        await self.db.commit()

        applied = await self.locks.set_lock(self.settings.timing_lock_minutes, now=now)
        lock_after = await self.locks.get_lock()

        await self.history.log(
            HistoryKind.WIN,
            attempt_value=elapsed_ms,
            outcome=Outcome.WIN,
            target_value=self.target_ms,
            source_ip=source_ip,
            extra={**extra, "winnerId": winner.id, "applied": applied, "lockedUntil": lock_after},
        )

        if applied:
            self._notify_win(elapsed_ms, self.target_ms, lock_after, extra.get("reason"))
        logger.info(f"Perfect-Timing winner {winner.id}: {elapsed_ms} ms (delta {delta_ms} ms, applied={applied})")

        return TimingAttemptResult(
            elapsed_ms=elapsed_ms,
            target_ms=self.target_ms,
            tolerance_ms=self.tolerance_ms,
            delta_ms=delta_ms,
            is_win=True,
            winner_id=winner.id,
            locked_until=lock_after,
            forced=forced,
            lock_applied=bool(applied),
        )

    async def claim(
        self,
        winner_id: int,
        contact: Optional[str],
        game_id: Optional[int] = None,
        source_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TimingClaimResult:
        """Claim a winner record and issue its coupon.

        Raises:
            WinnerNotFoundError: No winner record with that id
            AlreadyClaimedError: The record was claimed before (or concurrently)
        """
        now = ensure_utc(now) or utc_now()
        contact = self.normalize_contact(contact)

        winner = await self.db.get(TimingWinner, winner_id)
        if winner is None:
            raise WinnerNotFoundError(f"Winner {winner_id} not found")
        if winner.claimed:
            raise AlreadyClaimedError(f"Winner {winner_id} already claimed")

        if not await self._mark_claimed(TimingWinner, winner_id, contact, now):
            raise AlreadyClaimedError(f"Winner {winner_id} already claimed")

        await self.history.log(
            HistoryKind.CLAIM,
            attempt_value=winner.measured_ms,
            outcome=Outcome.OK,
            target_value=winner.target_ms,
            source_ip=source_ip,
            extra={"winnerId": winner_id, "contact": contact, "gameId": game_id},
        )

        coupon_result = await self._issue_coupon(
            TimingWinner,
            winner_id,
            idempotency_key=f"timing-claim-{winner_id}",
            contact=contact,
            game_number=winner.measured_ms,
            game_id=game_id,
            source_ip=source_ip,
        )

        self._notify_claim(f"ganador {winner_id}", contact, coupon_result)
        logger.info(f"Perfect-Timing winner {winner_id} claimed (coupon issued={coupon_result.issued})")

        return TimingClaimResult(winner_id=winner_id, coupon_result=coupon_result)
