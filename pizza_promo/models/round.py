"""Número Ganador round model."""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Index
from datetime import datetime, UTC
from pizza_promo.database import Base


class Round(Base):
    """One promotional cycle, from target generation to claim and delivery."""
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_value = Column(Integer, nullable=False, index=True)  # 100-999
    claimed = Column(Boolean, default=False, nullable=False)
    delivered = Column(Boolean, default=False, nullable=False)
    # Set once by the first attempt that hits the target; only won rounds can be claimed
    won_at = Column(DateTime(timezone=True), nullable=True)
    winning_attempt = Column(Integer, nullable=True)
    contact = Column(String(100), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    # Coupon issued for this round's claim (null until claimed)
    coupon_code = Column(String(100), nullable=True)
    coupon_expires_at = Column(DateTime(timezone=True), nullable=True)
    coupon_error = Column(String(500), nullable=True)

    __table_args__ = (
        Index('ix_rounds_claimed_delivered', 'claimed', 'delivered'),
    )

    def __repr__(self):
        return f"<Round(id={self.id}, target={self.target_value}, claimed={self.claimed})>"
