"""FastAPI DI 용 서비스 팩토리. 서비스 인스턴스는 lifespan 에서 app.state 에 올려 둔다."""

from __future__ import annotations

from fastapi import Request

from ..services.crypto_payment_service import CryptoPaymentService
from ..services.ledger_service import LedgerService
from ..services.pricing_service import PricingService


def get_pricing_service(request: Request) -> PricingService:
    return request.app.state.pricing_service


def get_ledger_service(request: Request) -> LedgerService:
    return request.app.state.ledger_service


def get_crypto_payment_service(request: Request) -> CryptoPaymentService:
    return request.app.state.crypto_payment_service
