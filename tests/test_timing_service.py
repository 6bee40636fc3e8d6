"""Tests for the Perfect-Timing game service."""
from datetime import datetime, timedelta, UTC

import pytest

from pizza_promo.models import TimingWinner
from pizza_promo.models.base import HistoryKind
from pizza_promo.services.coupon_client import CouponIssuanceResult
from pizza_promo.services.timing_service import MAX_ELAPSED_MS, TimingService
from pizza_promo.tasks import drain_detached
from pizza_promo.utils.exceptions import (
    AlreadyClaimedError,
    GameLockedError,
    InvalidTimingError,
    WinnerNotFoundError,
)

NOW = datetime(2025, 6, 1, 20, 0, 0, tzinfo=UTC)


@pytest.fixture
def service(db_session, coupon_client, notifier):
    return TimingService(db_session, coupon_client=coupon_client, notifier=notifier)


class TestTimingAttempt:

    @pytest.mark.asyncio
    async def test_miss_outside_tolerance(self, service):
        result = await service.attempt(9900, now=NOW)

        assert result.is_win is False
        assert result.delta_ms == 90
        assert result.winner_id is None
        assert await service.locks.get_lock() is None

    @pytest.mark.asyncio
    async def test_win_creates_winner_and_locks(self, service, db_session, notifier):
        result = await service.attempt(10025, source_ip="5.6.7.8", now=NOW)

        assert result.is_win is True
        assert result.delta_ms == 35
        assert result.lock_applied is True
        assert result.locked_until == NOW + timedelta(minutes=service.settings.timing_lock_minutes)

        winner = await db_session.get(TimingWinner, result.winner_id)
        assert winner.measured_ms == 10025
        assert winner.target_ms == 9990
        assert winner.claimed is False
        assert winner.forced is False

        wins = await service.history.list_events(HistoryKind.WIN)
        assert wins[0].game == "perfect-timing"
        assert wins[0].extra["winnerId"] == result.winner_id

        await drain_detached()
        notifier.notify_win.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tolerance_edge_wins(self, service):
        assert (await service.attempt(9950, now=NOW)).is_win is True

    @pytest.mark.asyncio
    async def test_locked_rejects_attempts(self, service):
        await service.attempt(9990, now=NOW)

        with pytest.raises(GameLockedError):
            await service.attempt(9990, now=NOW + timedelta(seconds=30))

    @pytest.mark.asyncio
    async def test_lock_does_not_block_numero_ganador(self, service, db_session):
        from pizza_promo.services.lock_service import LockService

        await service.attempt(9990, now=NOW)

        assert await LockService(db_session).active_lock(NOW) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("elapsed", [-1, MAX_ELAPSED_MS + 1, 99.5, True])
    async def test_invalid_measurements(self, service, elapsed):
        with pytest.raises(InvalidTimingError):
            await service.attempt(elapsed, now=NOW)

    @pytest.mark.asyncio
    async def test_force_win(self, service):
        service.settings = service.settings.model_copy(update={"force_win": True})

        result = await service.attempt(1234, now=NOW)

        assert result.is_win is True
        assert result.forced is True


class TestTimingClaim:

    @pytest.mark.asyncio
    async def test_claim_issues_coupon(self, service, db_session, coupon_client):
        attempt = await service.attempt(9991, now=NOW)

        result = await service.claim(attempt.winner_id, "+34 612 345 678", game_id=None, now=NOW)

        assert result.winner_id == attempt.winner_id
        assert result.coupon_result.issued is True
        request = coupon_client.issue.await_args.args[0]
        assert request.idempotency_key == f"timing-claim-{attempt.winner_id}"
        assert request.game_id == service.settings.perfect_timing_game_id
        assert request.game_number == 9991

        winner = await db_session.get(TimingWinner, attempt.winner_id)
        await db_session.refresh(winner)
        assert winner.claimed is True
        assert winner.contact == "+34612345678"
        assert winner.coupon_code == "PIZZA-TEST"

    @pytest.mark.asyncio
    async def test_unknown_winner(self, service):
        with pytest.raises(WinnerNotFoundError):
            await service.claim(999, "612345678", now=NOW)

    @pytest.mark.asyncio
    async def test_double_claim_rejected(self, service):
        attempt = await service.attempt(9990, now=NOW)
        await service.claim(attempt.winner_id, "612345678", now=NOW)

        with pytest.raises(AlreadyClaimedError):
            await service.claim(attempt.winner_id, "612345678", now=NOW)

    @pytest.mark.asyncio
    async def test_coupon_failure_keeps_claim(self, service, db_session, coupon_client):
        coupon_client.issue.return_value = CouponIssuanceResult(issued=False, error="Coupon service timeout")
        attempt = await service.attempt(9990, now=NOW)

        result = await service.claim(attempt.winner_id, "612345678", now=NOW)

        assert result.coupon_result.issued is False
        winner = await db_session.get(TimingWinner, attempt.winner_id)
        await db_session.refresh(winner)
        assert winner.claimed is True
        assert winner.coupon_error == "Coupon service timeout"
