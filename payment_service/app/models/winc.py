"""크레딧 금액(winc) 타입.

winc 는 음수가 될 수 없는 임의 정밀도 정수다. 곱셈(할인)은 내림, 나눗셈은 올림으로
결정적으로 반올림한다. 정수가 아닌 입력은 생성 시점에 거부한다.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, localcontext
from typing import Any

from pydantic import GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic.json_schema import JsonSchemaValue
from pydantic_core import core_schema

from ..exceptions import InvalidCreditAmountError


# float 배율을 Decimal 로 옮겨 계산할 때 쓰는 정밀도. winc 잔액 자리수보다 충분히 크다.
_DECIMAL_PRECISION = 80


def _to_decimal(value: int | float | Decimal | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # float 는 repr 기준으로 옮겨 0.234 -> Decimal("0.234") 가 되게 한다.
    return Decimal(str(value))


class Winc(int):
    def __new__(cls, value: Any = 0) -> "Winc":
        if isinstance(value, bool):
            raise InvalidCreditAmountError(value)
        if isinstance(value, int):
            parsed = int(value)
        elif isinstance(value, str):
            text = value.strip()
            if not text.isdigit():
                raise InvalidCreditAmountError(value)
            parsed = int(text)
        elif isinstance(value, Decimal):
            if not value.is_finite() or value != value.to_integral_value():
                raise InvalidCreditAmountError(value)
            parsed = int(value)
        else:
            raise InvalidCreditAmountError(value)

        if parsed < 0:
            raise InvalidCreditAmountError(value)
        return super().__new__(cls, parsed)

    def plus(self, other: int) -> "Winc":
        return Winc(int(self) + int(Winc(other)))

    def minus(self, other: int) -> "Winc":
        """차감 결과가 음수면 InvalidCreditAmountError."""
        return Winc(int(self) - int(Winc(other)))

    def times(self, multiplier: int | float | Decimal | str) -> "Winc":
        """배율을 곱하고 내림한다."""
        with localcontext() as ctx:
            ctx.prec = _DECIMAL_PRECISION
            product = Decimal(int(self)) * _to_decimal(multiplier)
            return Winc(product.to_integral_value(rounding=ROUND_FLOOR))

    def divided_by(self, divisor: int | float | Decimal | str) -> "Winc":
        """나누고 올림한다."""
        divisor_decimal = _to_decimal(divisor)
        if divisor_decimal == 0:
            raise ZeroDivisionError("cannot divide credit amount by zero")
        with localcontext() as ctx:
            ctx.prec = _DECIMAL_PRECISION
            quotient = Decimal(int(self)) / divisor_decimal
            return Winc(quotient.to_integral_value(rounding=ROUND_CEILING))

    def is_zero(self) -> bool:
        return int(self) == 0

    def __repr__(self) -> str:
        return f"Winc({int(self)})"

    # pydantic 모델 필드로 쓸 때: str/int 입력을 받고, JSON 에는 정밀도 손실이 없도록 문자열로 내보낸다.
    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: str(int(value)), when_used="json"
            ),
        )

    @classmethod
    def __get_pydantic_json_schema__(
        cls, schema: core_schema.CoreSchema, handler: GetJsonSchemaHandler
    ) -> JsonSchemaValue:
        return {"type": "string", "pattern": "^[0-9]+$", "examples": ["1000000"]}

    @classmethod
    def _validate(cls, value: Any) -> "Winc":
        if isinstance(value, Winc):
            return value
        try:
            return cls(value)
        except InvalidCreditAmountError as exc:
            # pydantic 이 ValidationError 로 감싸도록 ValueError 로 다시 던진다.
            raise ValueError(exc.message) from exc


ZERO_WINC = Winc(0)
