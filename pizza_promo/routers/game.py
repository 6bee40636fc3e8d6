"""Número Ganador API router.

Routes keep the Spanish paths and field names the existing frontend and
the shop staff tooling call. Domain errors propagate to the application's
``GameError`` handler.
"""
from fastapi import APIRouter, Depends, Path
import logging

from pizza_promo.dependencies import get_client_ip, get_game_service
from pizza_promo.schemas.base import MessageResponse, coupon_fields
from pizza_promo.schemas.game import (
    AttemptResponse,
    ClaimRequest,
    ClaimResponse,
    CurrentTargetResponse,
    DeliveryRequest,
    GameStatusResponse,
    GenerateRoundResponse,
    PendingWinner,
    VerifyResponse,
)
from pizza_promo.services.game_service import GameService
from pizza_promo.utils.exceptions import NoActiveRoundError, NumberNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["numero-ganador"])


@router.get("/estado", response_model=GameStatusResponse)
async def get_status(service: GameService = Depends(get_game_service)):
    """Current target number and cooldown lock."""
    status = await service.get_status()
    return GameStatusResponse(
        numeroGanador=status.target_value,
        lockedUntil=status.locked_until,
        now=status.now,
    )


@router.get("/ganador", response_model=CurrentTargetResponse)
async def get_current_target(service: GameService = Depends(get_game_service)):
    current = await service.get_current_round()
    if current is None:
        raise NoActiveRoundError("No hay número ganador generado aún")
    return CurrentTargetResponse(numeroGanador=current.target_value)


@router.post("/generar-ganador", response_model=GenerateRoundResponse)
async def generate_round(service: GameService = Depends(get_game_service)):
    """Start a new round with a fresh target (admin)."""
    round_obj = await service.create_round()
    return GenerateRoundResponse(message="Número ganador generado", numeroGanador=round_obj.target_value)


@router.post("/intentar", response_model=AttemptResponse)
async def attempt(
    service: GameService = Depends(get_game_service),
    client_ip: str | None = Depends(get_client_ip),
):
    """Draw one attempt against the current target."""
    result = await service.attempt(source_ip=client_ip)
    return AttemptResponse(
        intento=result.attempt_value,
        numeroGanador=result.target_value,
        esGanador=result.is_win,
        lockedUntil=result.locked_until,
    )


@router.post("/reclamar", response_model=ClaimResponse, response_model_exclude_none=True)
async def claim(
    request: ClaimRequest,
    service: GameService = Depends(get_game_service),
    client_ip: str | None = Depends(get_client_ip),
):
    """Claim the prize for the current winning number."""
    result = await service.claim(request.contacto, game_id=request.gameId, source_ip=client_ip)
    return ClaimResponse(
        message="Premio reclamado y nuevo número generado",
        nuevoNumeroGanador=result.next_target_value,
        **coupon_fields(result.coupon_result),
    )


@router.post("/actualizar-entrega", response_model=MessageResponse)
async def mark_delivered(request: DeliveryRequest, service: GameService = Depends(get_game_service)):
    """Mark the prize for a claimed number as delivered (admin)."""
    updated = await service.mark_delivered(request.numero)
    if not updated:
        logger.warning(f"Delivery update for {request.numero} matched no claimed round")
    return MessageResponse(message="Premio marcado como entregado")


@router.get("/lista-ganadores", response_model=list[PendingWinner])
async def list_pending_winners(service: GameService = Depends(get_game_service)):
    """Claimed prizes still waiting for delivery (admin)."""
    rounds = await service.list_pending_deliveries()
    return [PendingWinner(id=r.id, numero=r.target_value) for r in rounds]


@router.get("/verificar/{numero}", response_model=VerifyResponse)
async def verify_number(
    numero: int = Path(...),
    service: GameService = Depends(get_game_service),
):
    """Look up a claimed number (admin)."""
    round_obj = await service.verify_number(numero)
    if round_obj is None:
        raise NumberNotFoundError("Número no encontrado o sin reclamar")
    return VerifyResponse(
        numero=round_obj.target_value,
        reclamado=round_obj.claimed,
        entregado=round_obj.delivered,
        contacto=round_obj.contact,
    )
