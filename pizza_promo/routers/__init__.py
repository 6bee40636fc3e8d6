"""API routers."""
from pizza_promo.routers import dev, game, health, timing

__all__ = [
    "dev",
    "game",
    "health",
    "timing",
]
