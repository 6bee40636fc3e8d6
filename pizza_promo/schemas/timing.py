"""Perfect-Timing Pydantic schemas."""
from pydantic import BaseModel, Field
from datetime import datetime
from pizza_promo.schemas.base import BaseSchema, CouponInfo
from pizza_promo.services.timing_service import MAX_ELAPSED_MS


class TimingStatusResponse(BaseSchema):
    lockedUntil: datetime | None
    now: datetime
    targetMs: int
    toleranceMs: int


class TimingAttemptRequest(BaseModel):
    """Stopwatch reading; browsers report fractional milliseconds."""
    elapsedMs: float = Field(..., ge=0, le=MAX_ELAPSED_MS)

    @property
    def elapsed_ms(self) -> int:
        return int(round(self.elapsedMs))


class TimingAttemptResponse(BaseSchema):
    elapsedMs: int
    targetMs: int
    toleranceMs: int
    deltaMs: int
    esGanador: bool
    winnerId: int | None
    lockedUntil: datetime | None


class TimingClaimRequest(BaseModel):
    winnerId: int = Field(..., ge=1)
    contacto: str | None = Field(default=None, max_length=100)
    gameId: int | None = Field(default=None, ge=1)


class TimingClaimResponse(BaseSchema):
    message: str
    winnerId: int
    couponIssued: bool
    coupon: CouponInfo | None = None
    couponError: str | None = None
