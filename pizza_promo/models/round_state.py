"""Per-game lock and forced-win counter state."""
from sqlalchemy import Column, String, Integer, DateTime
from datetime import datetime, UTC
from pizza_promo.database import Base


class RoundState(Base):
    """Singleton state row per game: cooldown lock expiry and forced-win counter.

    All lock reads and writes for a game go through its single row, keyed
    by the game key.
    """
    __tablename__ = "round_state"

    game = Column(String(32), primary_key=True)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    forced_win_counter = Column(Integer, default=0, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self):
        return f"<RoundState(game={self.game}, lock_until={self.lock_until})>"
