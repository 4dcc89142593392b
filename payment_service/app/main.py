from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.eventbus.config import is_event_bus_enabled
from common.eventbus.kafka import KafkaEventBus, NotificationPublisher
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client, get_database

from .api.errors import register_exception_handlers
from .api.health import router as health_router
from .api.v1 import api_router
from .config import load_config
from .gateways.arweave_gateway import ArweaveTransactionGateway
from .gateways.interfaces import GatewayMap
from .jobs.credit_pending_transactions import credit_pending_transactions
from .jobs.scheduler import PeriodicJobScheduler
from .metrics import MetricsContext
from .oracles.bytes_to_credit_oracle import (
    GatewayBytesToCreditOracle,
    ReadThroughBytesToCreditOracle,
)
from .oracles.fiat_to_credit_oracle import (
    CoingeckoFiatToCreditOracle,
    ReadThroughFiatToCreditOracle,
)
from .oracles.http import build_oracle_client
from .oracles.token_to_fiat_oracle import (
    CoingeckoTokenToFiatOracle,
    ReadThroughTokenToFiatOracle,
)
from .repositories.adjustment_catalog_repository import AdjustmentCatalogRepository
from .repositories.ledger_repository import LedgerRepository
from .repositories.payment_transaction_repository import PaymentTransactionRepository
from .services.crypto_payment_service import CryptoPaymentNotifier, CryptoPaymentService
from .services.ledger_service import LedgerService
from .services.pricing_service import PricingService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """애플리케이션 생명주기 동안 공유 자원을 관리한다.

    - MongoDB 클라이언트, 오라클 HTTP 클라이언트, Kafka 발행기
    - 위 자원으로 만든 서비스 인스턴스 (app.state)
    - pending 입금 트랜잭션 정산 스케줄러
    """

    config = load_config()
    metrics = MetricsContext()
    db = await get_database()
    http_client = build_oracle_client(config.oracle)
    bus = KafkaEventBus.from_env() if is_event_bus_enabled() else None
    publisher = NotificationPublisher(bus)

    token_oracle = ReadThroughTokenToFiatOracle(
        CoingeckoTokenToFiatOracle(http_client, config.oracle, metrics=metrics),
        config.cache,
        metrics=metrics,
    )
    pricing = PricingService(
        bytes_oracle=ReadThroughBytesToCreditOracle(
            GatewayBytesToCreditOracle(http_client, config.oracle, metrics=metrics),
            config.cache,
            metrics=metrics,
        ),
        fiat_oracle=ReadThroughFiatToCreditOracle(
            CoingeckoFiatToCreditOracle(http_client, config.oracle, metrics=metrics),
            config.cache,
            metrics=metrics,
        ),
        token_oracle=token_oracle,
        catalog=AdjustmentCatalogRepository(db),
        pricing_config=config.pricing,
        currency_limits=config.currency_limits,
    )

    app.state.metrics = metrics
    app.state.pricing_service = pricing
    ledger_repo = LedgerRepository(db)
    tx_repo = PaymentTransactionRepository(db)
    gateways: GatewayMap = {
        "arweave": ArweaveTransactionGateway(
            http_client,
            config.oracle.arweave_gateway_url,
            min_confirmations=config.crypto.arweave_min_confirmations,
        )
    }
    notifier = CryptoPaymentNotifier(publisher, token_oracle=token_oracle)

    app.state.ledger_service = LedgerService(
        ledger_repo, pricing, publisher, metrics=metrics
    )
    app.state.crypto_payment_service = CryptoPaymentService(
        tx_repo,
        pricing,
        gateways=gateways,
        crypto_config=config.crypto,
        notifier=notifier,
        metrics=metrics,
    )

    scheduler: PeriodicJobScheduler | None = None
    if config.crypto.pending_tx_check_interval_seconds > 0:
        scheduler = PeriodicJobScheduler(
            "credit-pending-transactions",
            lambda: credit_pending_transactions(
                tx_repo,
                ledger_repo,
                gateways,
                notifier,
                pending_tx_expiry_seconds=config.crypto.pending_tx_expiry_seconds,
            ),
            interval_seconds=config.crypto.pending_tx_check_interval_seconds,
        )
        scheduler.start()

    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        await http_client.aclose()
        if bus is not None:
            bus.close()
        await close_client()


def create_app() -> FastAPI:
    setup_logger()
    app = FastAPI(
        title="Storage Credit Payment Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    port = int(os.getenv("PAYMENT_SERVICE_PORT", "8003"))
    uvicorn.run(
        "payment_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
