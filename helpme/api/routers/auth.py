"""
Коды подтверждения телефона и сброса пароля

Доставка кода (SMS) выполняется внешним сервисом; вне production
код возвращается в ответе для отладки.
"""

from fastapi import APIRouter, Depends

from helpme.api.deps import get_verification_store, rate_limit
from helpme.core.config import Config
from helpme.domain.exceptions import ValidationFailedError
from helpme.schemas.verification import PhoneSchema, VerifyCodeSchema
from helpme.services.rate_limiter import LOGIN, PASSWORD_RESET, SIGNUP, STRICT
from helpme.services.verification_store import VerificationStore


router = APIRouter(prefix="/auth", tags=["auth"])

PHONE_PURPOSE = "phone"
PASSWORD_RESET_PURPOSE = "password_reset"


def _issued(store: VerificationStore, code: str) -> dict:
    response = {"sent": True, "expires_in": store.ttl}
    if Config.ENVIRONMENT != "production":
        response["code"] = code
    return response


def _check(store: VerificationStore, data: VerifyCodeSchema, purpose: str) -> dict:
    if not store.verify(data.phone, data.code, purpose):
        raise ValidationFailedError("Неверный или просроченный код", field="code")
    return {"verified": True}


@router.post("/phone/code", dependencies=[Depends(rate_limit(SIGNUP))])
async def request_phone_code(
    data: PhoneSchema, store: VerificationStore = Depends(get_verification_store)
):
    return _issued(store, store.issue(data.phone, PHONE_PURPOSE))


@router.post("/phone/verify", dependencies=[Depends(rate_limit(LOGIN))])
async def verify_phone_code(
    data: VerifyCodeSchema, store: VerificationStore = Depends(get_verification_store)
):
    return _check(store, data, PHONE_PURPOSE)


@router.post("/password-reset/code", dependencies=[Depends(rate_limit(PASSWORD_RESET))])
async def request_password_reset_code(
    data: PhoneSchema, store: VerificationStore = Depends(get_verification_store)
):
    return _issued(store, store.issue(data.phone, PASSWORD_RESET_PURPOSE))


@router.post("/password-reset/verify", dependencies=[Depends(rate_limit(STRICT))])
async def verify_password_reset_code(
    data: VerifyCodeSchema, store: VerificationStore = Depends(get_verification_store)
):
    return _check(store, data, PASSWORD_RESET_PURPOSE)
