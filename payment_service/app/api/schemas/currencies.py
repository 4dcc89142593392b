from __future__ import annotations

from pydantic import Field

from ...models.quote import CurrencyLimitation
from .common import AdjustmentResponse, CamelModel


class CurrencyLimitationResponse(CamelModel):
    minimum_payment_amount: int
    maximum_payment_amount: int
    suggested_payment_amounts: list[int]
    zero_decimal_currency: bool

    @classmethod
    def from_domain(cls, limitation: CurrencyLimitation) -> "CurrencyLimitationResponse":
        return cls(
            minimum_payment_amount=limitation.minimum_payment_amount,
            maximum_payment_amount=limitation.maximum_payment_amount,
            suggested_payment_amounts=list(limitation.suggested_payment_amounts),
            zero_decimal_currency=limitation.zero_decimal_currency,
        )


class CurrenciesResponse(CamelModel):
    supported_currencies: list[str]
    limits: dict[str, CurrencyLimitationResponse]


class RatesResponse(CamelModel):
    """1 GiB 업로드 가격."""

    winc: str
    fiat: dict[str, float]
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)


class FiatRateResponse(CamelModel):
    currency: str
    # 1 크레딧의 해당 통화 가격
    rate: float
