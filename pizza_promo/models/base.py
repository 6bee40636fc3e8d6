"""Shared enumerations for SQLAlchemy models."""
from enum import Enum


class GameKey(str, Enum):
    """Game variant that scopes a lock row and history events."""
    NUMERO_GANADOR = "numero-ganador"
    PERFECT_TIMING = "perfect-timing"


class HistoryKind(str, Enum):
    """History event kind enumeration for type safety."""
    ATTEMPT = "attempt"
    WIN = "win"
    CLAIM = "claim"
    COUPON_ISSUE = "coupon_issue"
    DIRECT_CLAIM = "direct_claim"


class Outcome(str, Enum):
    """History event outcome enumeration for type safety."""
    WIN = "win"
    LOSE = "lose"
    OK = "ok"
    FAIL = "fail"
