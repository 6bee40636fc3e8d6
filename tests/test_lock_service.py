"""Tests for the cooldown lock and forced-win counter."""
import asyncio
from datetime import datetime, timedelta, UTC

import pytest
from sqlalchemy import select

from pizza_promo.models import RoundState
from pizza_promo.models.base import GameKey
from pizza_promo.services.lock_service import LockService


NOW = datetime(2025, 6, 1, 20, 0, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_ensure_state_creates_single_row(db_session):
    locks = LockService(db_session)
    await locks.ensure_state()
    await LockService(db_session).ensure_state()

    rows = (await db_session.execute(select(RoundState))).scalars().all()
    assert len(rows) == 1
    assert rows[0].game == GameKey.NUMERO_GANADOR.value
    assert rows[0].forced_win_counter == 0
    assert rows[0].lock_until is None


@pytest.mark.asyncio
async def test_games_have_independent_state(db_session):
    await LockService(db_session, GameKey.NUMERO_GANADOR).set_lock(10, now=NOW)
    timing = LockService(db_session, GameKey.PERFECT_TIMING)
    await timing.ensure_state()

    assert await timing.get_lock() is None
    assert await LockService(db_session).get_lock() == NOW + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_set_lock_applies_once(db_session):
    locks = LockService(db_session)

    assert await locks.set_lock(10, now=NOW) == 1
    assert await locks.set_lock(10, now=NOW + timedelta(minutes=1)) == 0
    assert await locks.get_lock() == NOW + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_lock_boundary_is_strict(db_session):
    locks = LockService(db_session)
    await locks.set_lock(10, now=NOW)
    until = NOW + timedelta(minutes=10)

    assert await locks.active_lock(until - timedelta(seconds=1)) == until
    assert await locks.active_lock(until) is None


@pytest.mark.asyncio
async def test_expired_lock_can_be_reapplied(db_session):
    locks = LockService(db_session)
    await locks.set_lock(10, now=NOW)

    later = NOW + timedelta(minutes=10)
    assert await locks.set_lock(5, now=later) == 1
    assert await locks.get_lock() == later + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_clear_lock(db_session):
    locks = LockService(db_session)
    await locks.set_lock(10, now=NOW)
    await locks.clear_lock()

    assert await locks.get_lock() is None
    assert await locks.active_lock(NOW) is None


@pytest.mark.asyncio
async def test_concurrent_set_lock_applies_exactly_once(session_factory):
    async with session_factory() as setup:
        await LockService(setup).ensure_state()

    async def contender():
        async with session_factory() as session:
            return await LockService(session).set_lock(10, now=NOW)

    results = await asyncio.gather(*(contender() for _ in range(5)))

    assert sorted(results) == [0, 0, 0, 0, 1]


@pytest.mark.asyncio
async def test_counter_increments_and_resets(db_session):
    locks = LockService(db_session)

    assert [await locks.increment_counter() for _ in range(3)] == [1, 2, 3]
    assert await locks.get_counter() == 3

    await locks.reset_counter()
    assert await locks.get_counter() == 0


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(session_factory):
    async with session_factory() as setup:
        await LockService(setup).ensure_state()

    async def bump():
        async with session_factory() as session:
            return await LockService(session).increment_counter()

    values = await asyncio.gather(*(bump() for _ in range(6)))

    assert sorted(values) == [1, 2, 3, 4, 5, 6]
