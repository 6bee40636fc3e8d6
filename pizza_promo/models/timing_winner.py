"""Perfect-Timing winner records."""
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from datetime import datetime, UTC
from pizza_promo.database import Base


class TimingWinner(Base):
    """Independent win entry; several players can win within one window."""
    __tablename__ = "timing_winners"

    id = Column(Integer, primary_key=True, autoincrement=True)
    measured_ms = Column(Integer, nullable=False)
    delta_ms = Column(Integer, nullable=False)
    target_ms = Column(Integer, nullable=False)
    tolerance_ms = Column(Integer, nullable=False)
    forced = Column(Boolean, default=False, nullable=False)
    claimed = Column(Boolean, default=False, nullable=False, index=True)
    delivered = Column(Boolean, default=False, nullable=False)
    contact = Column(String(100), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    coupon_code = Column(String(100), nullable=True)
    coupon_expires_at = Column(DateTime(timezone=True), nullable=True)
    coupon_error = Column(String(500), nullable=True)

    def __repr__(self):
        return f"<TimingWinner(id={self.id}, measured_ms={self.measured_ms}, claimed={self.claimed})>"
