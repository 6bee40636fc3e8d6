"""Perfect-Timing API router."""
from fastapi import APIRouter, Depends
import logging

from pizza_promo.dependencies import get_client_ip, get_timing_service
from pizza_promo.schemas.base import coupon_fields
from pizza_promo.schemas.timing import (
    TimingAttemptRequest,
    TimingAttemptResponse,
    TimingClaimRequest,
    TimingClaimResponse,
    TimingStatusResponse,
)
from pizza_promo.services.timing_service import TimingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/perfect-timing", tags=["perfect-timing"])


@router.get("/estado", response_model=TimingStatusResponse)
async def get_status(service: TimingService = Depends(get_timing_service)):
    locked_until, now = await service.get_status()
    return TimingStatusResponse(
        lockedUntil=locked_until,
        now=now,
        targetMs=service.target_ms,
        toleranceMs=service.tolerance_ms,
    )


@router.post("/intentar", response_model=TimingAttemptResponse)
async def attempt(
    request: TimingAttemptRequest,
    service: TimingService = Depends(get_timing_service),
    client_ip: str | None = Depends(get_client_ip),
):
    """Judge one stopwatch stop against the target time."""
    result = await service.attempt(request.elapsed_ms, source_ip=client_ip)
    return TimingAttemptResponse(
        elapsedMs=result.elapsed_ms,
        targetMs=result.target_ms,
        toleranceMs=result.tolerance_ms,
        deltaMs=result.delta_ms,
        esGanador=result.is_win,
        winnerId=result.winner_id,
        lockedUntil=result.locked_until,
    )


@router.post("/reclamar", response_model=TimingClaimResponse, response_model_exclude_none=True)
async def claim(
    request: TimingClaimRequest,
    service: TimingService = Depends(get_timing_service),
    client_ip: str | None = Depends(get_client_ip),
):
    result = await service.claim(
        request.winnerId,
        request.contacto,
        game_id=request.gameId,
        source_ip=client_ip,
    )
    return TimingClaimResponse(
        message="Premio reclamado",
        winnerId=result.winner_id,
        **coupon_fields(result.coupon_result),
    )
