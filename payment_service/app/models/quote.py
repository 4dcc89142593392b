"""가격 견적 결과 모델."""

from __future__ import annotations

from pydantic import BaseModel, Field

from .adjustment import AppliedAdjustment
from .winc import Winc


class BytesPriceQuote(BaseModel):
    byte_count: int
    final_price: Winc
    network_price: Winc
    adjustments: list[AppliedAdjustment] = Field(default_factory=list)


class PaymentPriceQuote(BaseModel):
    currency: str
    final_price: Winc
    quoted_payment_amount: int
    actual_payment_amount: int
    # 프로모션 코드(배타적) 조정. 결제 통화 단위.
    adjustments: list[AppliedAdjustment] = Field(default_factory=list)
    # 상시 수수료(포함) 조정. winc 단위.
    inclusive_adjustments: list[AppliedAdjustment] = Field(default_factory=list)


class CryptoPriceQuote(BaseModel):
    token: str
    amount: int
    final_price: Winc
    inclusive_adjustments: list[AppliedAdjustment] = Field(default_factory=list)


class TopUpQuote(BaseModel):
    """결제 대행사에 청구할 금액과 적립될 winc."""

    destination_address: str
    currency: str
    quoted_payment_amount: int
    payment_amount: int
    winc_amount: Winc
    # 결제 대행사 최소 금액 때문에 더 청구된 금액만큼 추가로 적립되는 winc
    excess_winc: Winc = Winc(0)
    adjustments: list[AppliedAdjustment] = Field(default_factory=list)
    inclusive_adjustments: list[AppliedAdjustment] = Field(default_factory=list)


class CurrencyLimitation(BaseModel):
    minimum_payment_amount: int
    maximum_payment_amount: int
    suggested_payment_amounts: tuple[int, int, int]
    zero_decimal_currency: bool = False
