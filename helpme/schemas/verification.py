"""Pydantic схемы кодов подтверждения"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PhoneSchema(BaseModel):
    """Запрос кода на номер телефона"""

    model_config = ConfigDict(str_strip_whitespace=True)

    phone: str = Field(..., min_length=10, max_length=20, description="Мобильный телефон")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Корейский мобильный номер, приводится к виду 010XXXXXXXX"""
        cleaned = re.sub(r"[^\d+]", "", v)

        if cleaned.startswith("+82"):
            cleaned = "0" + cleaned[3:]

        if not re.match(r"^01[016789]\d{7,8}$", cleaned):
            raise ValueError("Неверный формат телефона")

        return cleaned


class VerifyCodeSchema(PhoneSchema):
    """Проверка кода"""

    code: str = Field(..., min_length=4, max_length=10)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("Код должен состоять из цифр")
        return v
