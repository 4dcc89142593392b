from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ...constants import SUPPORTED_FIAT_CURRENCIES
from ...services.pricing_service import PricingService
from ..dependencies import get_pricing_service
from ..schemas.common import adjustments_to_response
from ..schemas.currencies import (
    CurrenciesResponse,
    CurrencyLimitationResponse,
    FiatRateResponse,
    RatesResponse,
)


router = APIRouter(tags=["currencies"])


@router.get("/currencies", response_model=CurrenciesResponse, summary="지원 통화와 결제 한도")
async def list_currencies(
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
) -> CurrenciesResponse:
    limitations = await pricing.get_currency_limitations()
    return CurrenciesResponse(
        supported_currencies=list(SUPPORTED_FIAT_CURRENCIES),
        limits={
            currency: CurrencyLimitationResponse.from_domain(limitation)
            for currency, limitation in limitations.items()
        },
    )


@router.get("/rates", response_model=RatesResponse, summary="1 GiB 업로드 가격")
async def get_rates(
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
) -> RatesResponse:
    quote, fiat = await pricing.get_rates()
    return RatesResponse(
        winc=str(quote.final_price),
        fiat=fiat,
        adjustments=adjustments_to_response(quote.adjustments),
    )


@router.get("/rates/{currency}", response_model=FiatRateResponse, summary="1 크레딧의 통화 가격")
async def get_fiat_rate(
    currency: str,
    pricing: Annotated[PricingService, Depends(get_pricing_service)],
) -> FiatRateResponse:
    rate = await pricing.get_fiat_price_for_one_credit(currency)
    return FiatRateResponse(currency=currency.lower(), rate=rate)
