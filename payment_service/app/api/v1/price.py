"""가격 견적 API 라우터."""

from __future__ import annotations

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Path, Query

from ...models.payment import Payment
from ...services.pricing_service import PricingService
from ..dependencies import get_pricing_service
from ..schemas.price import (
    BytesPriceResponse,
    CryptoPriceResponse,
    PaymentPriceResponse,
    TopUpQuoteResponse,
)


router = APIRouter(tags=["price"])


@router.get(
    "/price/bytes/{byte_count}",
    response_model=BytesPriceResponse,
    summary="바이트 업로드 가격 조회",
)
async def price_for_bytes(
    byte_count: Annotated[int, Path(ge=0)],
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
    address: Annotated[str | None, Query(description="업로드 대상 지불자 주소")] = None,
) -> BytesPriceResponse:
    quote = await pricing.get_price_for_bytes(byte_count, address)
    return BytesPriceResponse.from_domain(quote)


@router.get(
    "/price/crypto/{token}/{amount}",
    response_model=CryptoPriceResponse,
    summary="토큰 수량의 크레딧 환산",
)
async def price_for_crypto(
    token: str,
    amount: Annotated[int, Path(ge=0, description="토큰 최소 단위 수량")],
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
    fee_mode: Annotated[
        Literal["none", "invert", "standard"], Query(alias="feeMode")
    ] = "standard",
) -> CryptoPriceResponse:
    quote = await pricing.get_credits_for_crypto_payment(amount, token, fee_mode)
    return CryptoPriceResponse.from_domain(quote)


@router.get(
    "/price/{currency}/{amount}",
    response_model=PaymentPriceResponse,
    summary="결제 금액의 크레딧 환산",
    description="amount 는 통화 최소 단위 (usd 면 cent) 이다.",
)
async def price_for_payment(
    currency: str,
    amount: int,
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
    promo_codes: Annotated[list[str], Query(alias="promoCode")] = [],  # noqa: B006
    address: Annotated[str | None, Query(alias="destinationAddress")] = None,
) -> PaymentPriceResponse:
    payment = Payment(amount=amount, currency=currency)
    quote = await pricing.get_credits_for_payment(payment, promo_codes, address)
    return PaymentPriceResponse.from_domain(quote)


@router.get(
    "/top-up/{address}/{currency}/{amount}",
    response_model=TopUpQuoteResponse,
    summary="충전 견적",
)
async def top_up_quote(
    address: str,
    currency: str,
    amount: int,
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
    promo_codes: Annotated[list[str], Query(alias="promoCode")] = [],  # noqa: B006
) -> TopUpQuoteResponse:
    payment = Payment(amount=amount, currency=currency)
    quote = await pricing.get_top_up_quote(payment, address, promo_codes)
    return TopUpQuoteResponse.from_domain(quote)
