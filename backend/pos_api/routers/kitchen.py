"""
Kitchen router - /api/kots/*
Ticket progress by station.
Thin router delegating to OrderService.
"""

from fastapi import APIRouter, Depends

from pos_shared.config.constants import Roles
from pos_shared.security.auth import Actor, current_actor, require_roles
from pos_shared.utils.schemas import KotOutput
from pos_api.core.dependencies import get_order_service
from pos_api.services.domain import OrderService

router = APIRouter(prefix="/api/kots", tags=["kitchen"])

KITCHEN_ROLES = [Roles.KITCHEN, Roles.MANAGER, Roles.ADMIN]
SERVICE_ROLES = [Roles.KITCHEN, Roles.CAPTAIN, Roles.CASHIER, Roles.MANAGER, Roles.ADMIN]


@router.get("", response_model=list[KotOutput])
def list_tickets(
    station: str | None = None,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[KotOutput]:
    """Open tickets, optionally for one station."""
    return [KotOutput.model_validate(t) for t in service.list_station_tickets(actor, station)]


@router.patch("/{kot_id}/accept", response_model=KotOutput)
def accept_ticket(
    kot_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> KotOutput:
    require_roles(actor, KITCHEN_ROLES)
    return KotOutput.model_validate(service.accept_ticket(kot_id, actor))


@router.patch("/{kot_id}/preparing", response_model=KotOutput)
def start_preparing(
    kot_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> KotOutput:
    require_roles(actor, KITCHEN_ROLES)
    return KotOutput.model_validate(service.start_preparing(kot_id, actor))


@router.patch("/{kot_id}/ready", response_model=KotOutput)
def mark_ready(
    kot_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> KotOutput:
    require_roles(actor, KITCHEN_ROLES)
    return KotOutput.model_validate(service.mark_ticket_ready(kot_id, actor))


@router.patch("/{kot_id}/served", response_model=KotOutput)
def mark_served(
    kot_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> KotOutput:
    require_roles(actor, SERVICE_ROLES)
    return KotOutput.model_validate(service.mark_ticket_served(kot_id, actor))
