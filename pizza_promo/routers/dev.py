"""Development-only helpers for resetting game state by hand.

Every route answers 404 in production.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from pizza_promo.database import get_db
from pizza_promo.dependencies import require_dev_tools
from pizza_promo.models.base import GameKey
from pizza_promo.services.lock_service import LockService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/__dev__", tags=["dev"], dependencies=[Depends(require_dev_tools)])


@router.post("/unlock")
async def unlock(db: AsyncSession = Depends(get_db)):
    """Clear the cooldown lock of both games."""
    for game in GameKey:
        await LockService(db, game).clear_lock()
    return {"ok": True}


@router.post("/ftw/reset")
async def reset_forced_win_counter(db: AsyncSession = Depends(get_db)):
    """Restart the FTW_EVERY attempt count."""
    await LockService(db, GameKey.NUMERO_GANADOR).reset_counter()
    return {"ok": True}
