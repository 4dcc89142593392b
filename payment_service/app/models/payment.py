"""법정화폐 결제 금액 모델."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, localcontext

from ..constants import SUPPORTED_FIAT_CURRENCIES, ZERO_DECIMAL_CURRENCIES
from ..exceptions import InvalidPaymentAmountError, UnsupportedCurrencyTypeError
from .winc import Winc


@dataclass(frozen=True, slots=True)
class Payment:
    """결제 통화 최소 단위 금액 (usd 면 cent, jpy 면 엔)."""

    amount: int
    currency: str

    def __post_init__(self) -> None:
        currency = self.currency.lower()
        if currency not in SUPPORTED_FIAT_CURRENCIES:
            raise UnsupportedCurrencyTypeError(self.currency)
        if (
            isinstance(self.amount, bool)
            or not isinstance(self.amount, int)
            or self.amount < 0
        ):
            raise InvalidPaymentAmountError(self.amount)
        object.__setattr__(self, "currency", currency)

    @property
    def is_zero_decimal(self) -> bool:
        return self.currency in ZERO_DECIMAL_CURRENCIES

    @property
    def major_amount(self) -> Decimal:
        """주 단위 금액 (usd 면 달러)."""
        if self.is_zero_decimal:
            return Decimal(self.amount)
        return Decimal(self.amount) / 100

    def with_amount(self, amount: int) -> "Payment":
        return Payment(amount=amount, currency=self.currency)

    def winc_for_credit_price(
        self, fiat_price_per_credit: float, winc_per_credit: int
    ) -> Winc:
        """1 크레딧의 법정화폐 가격으로 결제 금액을 winc 로 환산한다. (내림)"""

        if fiat_price_per_credit <= 0:
            raise ValueError("fiat price per credit must be positive")
        with localcontext() as ctx:
            ctx.prec = 80
            winc = (
                self.major_amount
                * Decimal(winc_per_credit)
                / Decimal(str(fiat_price_per_credit))
            )
            return Winc(winc.to_integral_value(rounding=ROUND_FLOOR))
