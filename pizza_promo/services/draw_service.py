"""Draw engine: random attempts, round targets and forced-win policy.

Randomness comes from the ``random`` module on purpose; this is a
promotional game, not a lottery, and values are not security sensitive.
"""
from dataclasses import dataclass
from enum import Enum
import random
from typing import Optional

from pizza_promo.config import Settings

MIN_VALUE = 100
MAX_VALUE = 999


class ForcedWinMode(str, Enum):
    """Which forcing policy is active."""
    DISABLED = "disabled"
    ALWAYS = "always"
    EVERY_N = "every_n"


@dataclass(frozen=True)
class ForcedWinPolicy:
    """Active forcing policy; ``every`` is only meaningful for EVERY_N."""
    mode: ForcedWinMode = ForcedWinMode.DISABLED
    every: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ForcedWinPolicy":
        """FORCE_WIN takes precedence over FTW_EVERY."""
        if settings.force_win:
            return cls(ForcedWinMode.ALWAYS)
        if settings.ftw_every > 0:
            return cls(ForcedWinMode.EVERY_N, settings.ftw_every)
        return cls()

    @property
    def uses_counter(self) -> bool:
        return self.mode == ForcedWinMode.EVERY_N


@dataclass(frozen=True)
class ForcedWinDecision:
    forced: bool
    value: Optional[int] = None
    reason: Optional[str] = None


NOT_FORCED = ForcedWinDecision(forced=False)


def draw_attempt(rng: Optional[random.Random] = None) -> int:
    """Uniformly sample a candidate value in [100, 999]."""
    return (rng or random).randint(MIN_VALUE, MAX_VALUE)


def pick_target(rng: Optional[random.Random] = None) -> int:
    """Pick the target value for a new round."""
    return (rng or random).randint(MIN_VALUE, MAX_VALUE)


def resolve_forced_win(policy: ForcedWinPolicy, counter: int, target: int) -> ForcedWinDecision:
    """Decide whether this attempt is forced to hit ``target``.

    Args:
        policy: Active forcing policy
        counter: Persistent attempt counter after counting this attempt
            (ignored unless the policy is EVERY_N)
        target: Current round target

    Returns:
        ForcedWinDecision with the forced value and a reason tag
    """
    if policy.mode == ForcedWinMode.ALWAYS:
        return ForcedWinDecision(forced=True, value=target, reason="FORCE_WIN")

    if policy.mode == ForcedWinMode.EVERY_N and policy.every > 0:
        if counter > 0 and counter % policy.every == 0:
            return ForcedWinDecision(forced=True, value=target, reason=f"FTW_EVERY_{policy.every}")

    return NOT_FORCED


def is_win(attempt_value: int, target_value: int) -> bool:
    """Número Ganador win predicate: exact equality."""
    return attempt_value == target_value


def is_timing_win(measured_ms: int, target_ms: int, tolerance_ms: int) -> bool:
    """Perfect-Timing win predicate: within tolerance of the target duration."""
    return abs(measured_ms - target_ms) <= tolerance_ms
