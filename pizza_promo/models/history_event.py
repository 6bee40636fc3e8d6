"""Append-only audit history."""
from sqlalchemy import Column, String, Integer, DateTime, JSON, Index
from datetime import datetime, UTC
from pizza_promo.database import Base


class HistoryEvent(Base):
    """Audit entry for attempts, wins, claims and coupon issuance. Never updated."""
    __tablename__ = "history_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game = Column(String(32), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # attempt, win, claim, coupon_issue, direct_claim
    attempt_value = Column(Integer, nullable=True)
    outcome = Column(String(10), nullable=True)  # win, lose, ok, fail
    target_value_at_time = Column(Integer, nullable=True)
    source_ip = Column(String(64), nullable=True)
    extra = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)

    __table_args__ = (
        Index('ix_history_game_kind_created', 'game', 'kind', 'created_at'),
    )

    def __repr__(self):
        return f"<HistoryEvent(id={self.id}, kind={self.kind}, outcome={self.outcome})>"
