from __future__ import annotations

from pydantic import Field

from ...models.quote import (
    BytesPriceQuote,
    CryptoPriceQuote,
    PaymentPriceQuote,
    TopUpQuote,
)
from .common import AdjustmentResponse, CamelModel, adjustments_to_response


class BytesPriceResponse(CamelModel):
    winc: str
    network_winc: str
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, quote: BytesPriceQuote) -> "BytesPriceResponse":
        return cls(
            winc=str(quote.final_price),
            network_winc=str(quote.network_price),
            adjustments=adjustments_to_response(quote.adjustments),
        )


class PaymentPriceResponse(CamelModel):
    winc: str
    final_price: str
    quoted_payment_amount: int
    actual_payment_amount: int
    currency: str
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)
    fees: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, quote: PaymentPriceQuote) -> "PaymentPriceResponse":
        return cls(
            winc=str(quote.final_price),
            final_price=str(quote.final_price),
            quoted_payment_amount=quote.quoted_payment_amount,
            actual_payment_amount=quote.actual_payment_amount,
            currency=quote.currency,
            adjustments=adjustments_to_response(quote.adjustments),
            fees=adjustments_to_response(quote.inclusive_adjustments),
        )


class CryptoPriceResponse(CamelModel):
    winc: str
    token: str
    amount: str
    fees: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, quote: CryptoPriceQuote) -> "CryptoPriceResponse":
        return cls(
            winc=str(quote.final_price),
            token=quote.token,
            amount=str(quote.amount),
            fees=adjustments_to_response(quote.inclusive_adjustments),
        )


class TopUpQuoteResponse(CamelModel):
    destination_address: str
    currency: str
    quoted_payment_amount: int
    payment_amount: int
    winc: str
    excess_winc: str
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)
    fees: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, quote: TopUpQuote) -> "TopUpQuoteResponse":
        return cls(
            destination_address=quote.destination_address,
            currency=quote.currency,
            quoted_payment_amount=quote.quoted_payment_amount,
            payment_amount=quote.payment_amount,
            winc=str(quote.winc_amount),
            excess_winc=str(quote.excess_winc),
            adjustments=adjustments_to_response(quote.adjustments),
            fees=adjustments_to_response(quote.inclusive_adjustments),
        )
