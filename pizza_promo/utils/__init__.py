"""Utilities module."""
from pizza_promo.utils.datetime_helpers import ensure_utc, isoformat_z, utc_now
from pizza_promo.utils.phone import normalize_phone_es

__all__ = ["ensure_utc", "isoformat_z", "utc_now", "normalize_phone_es"]
