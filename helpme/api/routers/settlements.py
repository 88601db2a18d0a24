"""
Административные эндпоинты расчётов, удержаний и инцидентов
"""

from fastapi import APIRouter, Body, Depends

from helpme.api.deps import build_command, get_actor, get_settlement_service
from helpme.schemas.order import Actor
from helpme.schemas.read import OrderAggregate, SettlementRead
from helpme.schemas.settlement import (
    AddDeductionCommand,
    HoldSettlementCommand,
    PaySettlementCommand,
    RejectSettlementCommand,
    ResolveIncidentCommand,
    SettlementCommand,
)
from helpme.services.settlement_service import SettlementService


router = APIRouter(tags=["settlements"])


@router.get("/settlements/{settlement_id}", response_model=SettlementRead)
async def get_settlement(
    settlement_id: int,
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.get_settlement(settlement_id, actor)


@router.get("/orders/{order_id}/settlements", response_model=list[SettlementRead])
async def list_revisions(
    order_id: int,
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.list_revisions(order_id, actor)


@router.post("/settlements/{settlement_id}/confirm", response_model=OrderAggregate)
async def confirm_settlement(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(SettlementCommand, payload, settlement_id=settlement_id)
    return await service.confirm(cmd, actor)


@router.post("/settlements/{settlement_id}/payable", response_model=OrderAggregate)
async def mark_payable(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(SettlementCommand, payload, settlement_id=settlement_id)
    return await service.mark_payable(cmd, actor)


@router.post("/settlements/{settlement_id}/hold", response_model=OrderAggregate)
async def hold_settlement(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(HoldSettlementCommand, payload, settlement_id=settlement_id)
    return await service.hold(cmd, actor)


@router.post("/settlements/{settlement_id}/release", response_model=OrderAggregate)
async def release_settlement(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(SettlementCommand, payload, settlement_id=settlement_id)
    return await service.release(cmd, actor)


@router.post("/settlements/{settlement_id}/pay", response_model=OrderAggregate)
async def pay_settlement(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(PaySettlementCommand, payload, settlement_id=settlement_id)
    return await service.pay(cmd, actor)


@router.post("/settlements/{settlement_id}/reject", response_model=OrderAggregate)
async def reject_settlement(
    settlement_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(RejectSettlementCommand, payload, settlement_id=settlement_id)
    return await service.reject(cmd, actor)


@router.post("/orders/{order_id}/deductions", response_model=OrderAggregate, status_code=201)
async def add_deduction(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(AddDeductionCommand, payload, order_id=order_id)
    return await service.add_deduction(cmd, actor)


@router.post("/incidents/{incident_id}/resolve", response_model=OrderAggregate)
async def resolve_incident(
    incident_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    cmd = build_command(ResolveIncidentCommand, payload, incident_id=incident_id)
    return await service.resolve_incident(cmd, actor)
