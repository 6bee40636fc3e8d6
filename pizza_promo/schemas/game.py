"""Número Ganador Pydantic schemas.

Field names follow the JSON contract consumed by the existing frontend.
"""
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from pizza_promo.schemas.base import BaseSchema, CouponInfo


class GameStatusResponse(BaseSchema):
    """Current target and lock status."""
    numeroGanador: int | None
    lockedUntil: datetime | None
    now: datetime


class CurrentTargetResponse(BaseSchema):
    numeroGanador: int


class GenerateRoundResponse(BaseSchema):
    message: str
    numeroGanador: int


class AttemptResponse(BaseSchema):
    """Result of one attempt."""
    intento: int
    numeroGanador: int
    esGanador: bool
    lockedUntil: datetime | None


class ClaimRequest(BaseModel):
    """Claim request; ``gameId`` selects the sales-service game mapping."""
    contacto: str | None = Field(default=None, max_length=100)
    gameId: int | None = Field(default=None, ge=1)

    @field_validator("contacto")
    @classmethod
    def strip_contact(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ClaimResponse(BaseSchema):
    """Claim outcome; coupon fields are omitted when not applicable."""
    message: str
    nuevoNumeroGanador: int
    couponIssued: bool
    coupon: CouponInfo | None = None
    couponError: str | None = None


class DeliveryRequest(BaseModel):
    numero: int = Field(..., ge=100, le=999)


class PendingWinner(BaseSchema):
    id: int
    numero: int


class VerifyResponse(BaseSchema):
    numero: int
    reclamado: bool
    entregado: bool
    contacto: str | None
