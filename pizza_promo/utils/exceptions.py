"""Domain exceptions raised by the game services.

Each exception carries the HTTP status and machine-readable reason the API
answers with; the message is safe to show to players.
"""
from datetime import datetime

from pizza_promo.utils.datetime_helpers import isoformat_z


class GameError(RuntimeError):
    """Base class for game state errors surfaced to callers."""

    status_code = 400
    reason = "GAME_ERROR"

    def to_payload(self) -> dict:
        return {"message": str(self), "reason": self.reason}


class GameLockedError(GameError):
    """Attempts are rejected while a cooldown lock is active."""

    status_code = 423
    reason = "LOCKED"

    def __init__(self, locked_until: datetime):
        super().__init__("Juego en pausa, vuelve a intentarlo más tarde")
        self.locked_until = locked_until

    def to_payload(self) -> dict:
        return {**super().to_payload(), "lockedUntil": isoformat_z(self.locked_until)}


class NoActiveRoundError(GameError):
    """No round has been generated yet."""

    reason = "NO_ACTIVE_ROUND"


class NothingToClaimError(GameError):
    """There is no unclaimed round to claim."""

    reason = "NOTHING_TO_CLAIM"


class NumberNotFoundError(GameError):
    """No claimed round carries the requested number."""

    status_code = 404
    reason = "NOT_FOUND"


class WinnerNotFoundError(GameError):
    """Perfect-Timing winner record does not exist."""

    status_code = 404
    reason = "WINNER_NOT_FOUND"


class AlreadyClaimedError(GameError):
    """Perfect-Timing winner record was already claimed."""

    reason = "ALREADY_CLAIMED"


class InvalidTimingError(GameError):
    """Submitted elapsed time is not a usable measurement."""

    status_code = 422
    reason = "INVALID_TIME"
