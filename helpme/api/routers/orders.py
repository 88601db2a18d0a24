"""
Эндпоинты жизненного цикла заявки
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Body, Depends, Query

from helpme.api.deps import build_command, get_actor, get_order_service, rate_limit
from helpme.schemas.closing import ApproveClosingCommand, RejectClosingCommand, SubmitClosingCommand
from helpme.schemas.order import (
    Actor,
    ApplyCommand,
    CancelOrderCommand,
    CheckInCommand,
    CloseOrderCommand,
    OrderCreateSchema,
    PaymentRequestCommand,
    SelectHelperCommand,
)
from helpme.schemas.read import OrderAggregate, OrderHistory
from helpme.schemas.settlement import ReportIncidentCommand
from helpme.services.order_lifecycle import OrderLifecycleService
from helpme.services.rate_limiter import UPLOAD


router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderAggregate, status_code=201)
async def create_order(
    data: OrderCreateSchema,
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    return await service.create_order(data, actor)


@router.get("/{order_id}", response_model=OrderAggregate)
async def get_order(
    order_id: int,
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    return await service.get_aggregate(order_id, actor)


@router.get("/{order_id}/history", response_model=OrderHistory)
async def get_history(
    order_id: int,
    as_of: datetime | None = Query(None, description="Состояние на момент времени (UTC)"),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    if as_of is not None and as_of.tzinfo is not None:
        as_of = as_of.astimezone(UTC).replace(tzinfo=None)
    return await service.get_history(order_id, actor, as_of=as_of)


@router.post("/{order_id}/payments", response_model=OrderAggregate, status_code=201)
async def request_payment(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(PaymentRequestCommand, payload, order_id=order_id)
    return await service.request_payment(cmd, actor)


@router.post("/{order_id}/applications", response_model=OrderAggregate, status_code=201)
async def apply_to_order(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(ApplyCommand, payload, order_id=order_id)
    return await service.apply_to_order(cmd, actor)


@router.post("/{order_id}/select", response_model=OrderAggregate)
async def select_helper(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(SelectHelperCommand, payload, order_id=order_id)
    return await service.select_helper(cmd, actor)


@router.post("/{order_id}/check-in", response_model=OrderAggregate)
async def check_in(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(CheckInCommand, payload, order_id=order_id)
    return await service.check_in(cmd, actor)


@router.post(
    "/{order_id}/closing",
    response_model=OrderAggregate,
    status_code=201,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def submit_closing(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(SubmitClosingCommand, payload, order_id=order_id)
    return await service.submit_closing(cmd, actor)


@router.post("/{order_id}/closing/approve", response_model=OrderAggregate)
async def approve_closing(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(ApproveClosingCommand, payload, order_id=order_id)
    return await service.approve_closing(cmd, actor)


@router.post("/{order_id}/closing/reject", response_model=OrderAggregate)
async def reject_closing(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(RejectClosingCommand, payload, order_id=order_id)
    return await service.reject_closing(cmd, actor)


@router.post("/{order_id}/cancel", response_model=OrderAggregate)
async def cancel_order(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(CancelOrderCommand, payload, order_id=order_id)
    return await service.cancel_order(cmd, actor)


@router.post("/{order_id}/close", response_model=OrderAggregate)
async def close_order(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(CloseOrderCommand, payload, order_id=order_id)
    return await service.close_order(cmd, actor)


@router.post(
    "/{order_id}/incidents",
    response_model=OrderAggregate,
    status_code=201,
    dependencies=[Depends(rate_limit(UPLOAD))],
)
async def report_incident(
    order_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(ReportIncidentCommand, payload, order_id=order_id)
    return await service.report_incident(cmd, actor)
