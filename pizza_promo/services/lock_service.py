"""Cooldown lock and forced-win counter management.

Every mutation is a single conditional UPDATE against the game's
RoundState row followed by a commit, so concurrent requests are ordered
by the database rather than by in-process state.
"""
from datetime import datetime, timedelta
import logging
from typing import Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from pizza_promo.models.base import GameKey
from pizza_promo.models.round_state import RoundState
from pizza_promo.utils.datetime_helpers import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _insert_ignore_statement(dialect_name: str, game: str):
    """INSERT ... ON CONFLICT DO NOTHING for the state row of ``game``."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    return (
        insert(RoundState)
        .values(game=game, lock_until=None, forced_win_counter=0, updated_at=utc_now())
        .on_conflict_do_nothing(index_elements=["game"])
    )


class LockService:
    """Lock manager scoped to one game's RoundState row."""

    def __init__(self, db: AsyncSession, game: GameKey = GameKey.NUMERO_GANADOR):
        self.db = db
        self.game = game
        self._state_ready = False

    async def ensure_state(self) -> None:
        """Create the state row if missing; safe under concurrent callers."""
        if self._state_ready:
            return

        exists = await self.db.scalar(
            select(RoundState.game).where(RoundState.game == self.game.value)
        )
        if exists is None:
            dialect_name = self.db.get_bind().dialect.name
            await self.db.execute(_insert_ignore_statement(dialect_name, self.game.value))
            await self.db.commit()
            logger.info(f"Created round state row for {self.game.value}")

        self._state_ready = True

    async def get_lock(self) -> Optional[datetime]:
        """Return the stored lock expiry, expired or not."""
        lock_until = await self.db.scalar(
            select(RoundState.lock_until).where(RoundState.game == self.game.value)
        )
        return ensure_utc(lock_until)

    async def active_lock(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Return the lock expiry only while it is still in the future."""
        now = ensure_utc(now) or utc_now()
        lock_until = await self.get_lock()
        if lock_until is not None and now < lock_until:
            return lock_until
        return None

    async def set_lock(self, minutes: int, now: Optional[datetime] = None) -> int:
        """Lock for ``minutes`` unless a lock is already active.

        Returns:
            1 if this call applied the lock, 0 if a lock was already in effect
        """
        await self.ensure_state()
        now = ensure_utc(now) or utc_now()
        until = now + timedelta(minutes=minutes)

        result = await self.db.execute(
            update(RoundState)
            .where(
                RoundState.game == self.game.value,
                or_(RoundState.lock_until.is_(None), RoundState.lock_until <= now),
            )
            .values(lock_until=until, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        applied = result.rowcount or 0
        if applied:
            logger.info(f"[{self.game.value}] lock applied until {until.isoformat()}")
        else:
            logger.info(f"[{self.game.value}] lock already active, not re-applied")
        return applied

    async def clear_lock(self) -> None:
        """Administrative override: remove any lock."""
        await self.ensure_state()
        await self.db.execute(
            update(RoundState)
            .where(RoundState.game == self.game.value)
            .values(lock_until=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.warning(f"[{self.game.value}] lock cleared manually")

    async def increment_counter(self) -> int:
        """Atomically bump the forced-win counter and return the new value."""
        await self.ensure_state()
        await self.db.execute(
            update(RoundState)
            .where(RoundState.game == self.game.value)
            .values(forced_win_counter=RoundState.forced_win_counter + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        # Read inside the same transaction: the row stays write-locked until commit
        value = await self.db.scalar(
            select(RoundState.forced_win_counter).where(RoundState.game == self.game.value)
        )
        await self.db.commit()
        return int(value or 0)

    async def get_counter(self) -> int:
        value = await self.db.scalar(
            select(RoundState.forced_win_counter).where(RoundState.game == self.game.value)
        )
        return int(value or 0)

    async def reset_counter(self) -> None:
        await self.ensure_state()
        previous = await self.get_counter()
        await self.db.execute(
            update(RoundState)
            .where(RoundState.game == self.game.value)
            .values(forced_win_counter=0, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.warning(f"[{self.game.value}] forced-win counter reset (was {previous})")
