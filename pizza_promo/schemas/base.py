"""Shared schema base: Spanish field names as sent by the frontend, UTC ``Z`` timestamps."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_serializer

from pizza_promo.utils.datetime_helpers import isoformat_z


def _with_z_timestamps(value):
    if isinstance(value, datetime):
        return isoformat_z(value)
    if isinstance(value, list):
        return [_with_z_timestamps(item) for item in value]
    if isinstance(value, dict):
        return {key: _with_z_timestamps(item) for key, item in value.items()}
    return value


class BaseSchema(BaseModel):
    """Response base; naive datetimes read back from SQLite are rendered as UTC."""

    model_config = ConfigDict(from_attributes=True)

    @model_serializer(mode="wrap")
    def render_timestamps(self, handler):
        return _with_z_timestamps(handler(self))


class MessageResponse(BaseSchema):
    """Plain confirmation message."""
    message: str


class CouponInfo(BaseSchema):
    """Coupon returned to the player after a successful issuance."""
    code: str
    expiresAt: datetime | None = None
    name: str | None = None

    @classmethod
    def from_coupon(cls, coupon) -> "CouponInfo":
        return cls(code=coupon.code, expiresAt=coupon.expires_at, name=coupon.name)


def coupon_fields(result) -> dict:
    """Claim response fields describing a coupon issuance outcome."""
    return {
        "couponIssued": result.issued,
        "coupon": CouponInfo.from_coupon(result.coupon) if result.issued and result.coupon else None,
        "couponError": None if result.issued else result.error,
    }
