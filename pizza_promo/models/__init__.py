"""Database models."""
from pizza_promo.models.base import GameKey, HistoryKind, Outcome
from pizza_promo.models.round import Round
from pizza_promo.models.round_state import RoundState
from pizza_promo.models.history_event import HistoryEvent
from pizza_promo.models.timing_winner import TimingWinner

__all__ = [
    "GameKey",
    "HistoryKind",
    "Outcome",
    "Round",
    "RoundState",
    "HistoryEvent",
    "TimingWinner",
]
