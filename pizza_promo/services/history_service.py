"""Best-effort audit history of attempts, wins, claims and coupon issuance."""
from datetime import datetime
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pizza_promo.models.base import GameKey, HistoryKind, Outcome
from pizza_promo.models.history_event import HistoryEvent

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    """Make an ``extra`` payload safe for the JSON column."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class HistoryService:
    """Append-only event logger.

    Events are written through a separate session on the same engine, so a
    failed insert never rolls back or poisons the caller's session, and
    failures are logged rather than raised.
    """

    def __init__(self, db: AsyncSession, game: GameKey = GameKey.NUMERO_GANADOR):
        self.db = db
        self.game = game

    async def log(
        self,
        kind: HistoryKind,
        *,
        attempt_value: Optional[int] = None,
        outcome: Optional[Outcome] = None,
        target_value: Optional[int] = None,
        source_ip: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> bool:
        """Record one event. Returns False when the insert failed."""
        try:
            event = HistoryEvent(
                game=self.game.value,
                kind=HistoryKind(kind).value,
                attempt_value=attempt_value,
                outcome=Outcome(outcome).value if outcome is not None else None,
                target_value_at_time=target_value,
                source_ip=source_ip,
                extra=_jsonable(extra) if extra else None,
            )
            async with AsyncSession(self.db.bind, expire_on_commit=False) as session:
                session.add(event)
                await session.commit()
            return True
        except Exception as e:
            logger.error(
                f"[{self.game.value}] failed to record history event kind={kind} outcome={outcome}: {e}"
            )
            return False

    async def list_events(
        self,
        kind: Optional[HistoryKind] = None,
        limit: int = 100,
    ) -> list[HistoryEvent]:
        """Most recent events for this game, newest first."""
        query = select(HistoryEvent).where(HistoryEvent.game == self.game.value)
        if kind is not None:
            query = query.where(HistoryEvent.kind == HistoryKind(kind).value)
        query = query.order_by(HistoryEvent.id.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())
