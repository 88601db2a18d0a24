"""
Результаты платежей от платёжного шлюза
"""

from fastapi import APIRouter, Body, Depends

from helpme.api.deps import build_command, get_actor, get_order_service
from helpme.schemas.order import Actor, PaymentResultCommand
from helpme.schemas.read import OrderAggregate
from helpme.services.order_lifecycle import OrderLifecycleService


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/{payment_id}/confirm", response_model=OrderAggregate)
async def confirm_payment(
    payment_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(PaymentResultCommand, payload, payment_id=payment_id)
    return await service.confirm_payment(cmd, actor)


@router.post("/{payment_id}/fail", response_model=OrderAggregate)
async def fail_payment(
    payment_id: int,
    payload: dict | None = Body(None),
    actor: Actor = Depends(get_actor),
    service: OrderLifecycleService = Depends(get_order_service),
):
    cmd = build_command(PaymentResultCommand, payload, payment_id=payment_id)
    return await service.fail_payment(cmd, actor)
