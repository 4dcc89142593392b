"""pending 입금 트랜잭션 정산 잡.

서비스 안의 스케줄러 또는 크론으로 주기 실행한다. 확정된 트랜잭션은 제출 시점에 고정된 금액으로 적립하고,
만료 기간이 지나도록 체인에서 찾을 수 없는 트랜잭션은 실패 처리한다.
만료된 위임 승인의 잔여 금액도 이때 지불자에게 돌려준다.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from common.eventbus.config import is_event_bus_enabled
from common.eventbus.kafka import KafkaEventBus, NotificationPublisher
from common.logger import setup_logger
from common.mongo.client import close_client, get_database

from ..config import load_config
from ..gateways.arweave_gateway import ArweaveTransactionGateway
from ..gateways.interfaces import GatewayMap
from ..models.transaction import PaymentTransaction
from ..oracles.http import build_oracle_client
from ..oracles.token_to_fiat_oracle import (
    CoingeckoTokenToFiatOracle,
    ReadThroughTokenToFiatOracle,
)
from ..repositories.interfaces import (
    LedgerRepositoryInterface,
    PaymentTransactionRepositoryInterface,
)
from ..repositories.ledger_repository import LedgerRepository
from ..repositories.payment_transaction_repository import PaymentTransactionRepository
from ..services.crypto_payment_service import CryptoPaymentNotifier


logger = logging.getLogger(__name__)


PENDING_BATCH_SIZE = 500
NOT_FOUND_REASON = "not_found"


@dataclass(slots=True)
class CreditPendingResult:
    credited: int = 0
    failed: int = 0
    still_pending: int = 0
    errors: int = 0
    expired_approvals: int = 0


async def credit_pending_transactions(
    tx_repo: PaymentTransactionRepositoryInterface,
    ledger_repo: LedgerRepositoryInterface,
    gateways: GatewayMap,
    notifier: CryptoPaymentNotifier,
    *,
    pending_tx_expiry_seconds: int,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> CreditPendingResult:
    """pending 트랜잭션을 한 번 훑는다. 한 건의 오류가 나머지 처리를 막지 않는다."""

    result = CreditPendingResult()
    pending = await tx_repo.list_pending(PENDING_BATCH_SIZE)
    if not pending:
        logger.debug("no pending transactions to process")

    for tx in pending:
        try:
            await _process_pending(
                tx,
                tx_repo,
                gateways,
                notifier,
                result,
                expiry=timedelta(seconds=pending_tx_expiry_seconds),
                now=clock(),
            )
        except Exception:  # noqa: BLE001
            result.errors += 1
            logger.exception(
                "error processing pending transaction",
                extra={"tx_id": tx.transaction_id, "token": tx.token},
            )

    expired = await ledger_repo.expire_approvals(clock())
    result.expired_approvals = len(expired)

    logger.info(
        "credit pending transactions finished: credited=%d failed=%d pending=%d errors=%d",
        result.credited,
        result.failed,
        result.still_pending,
        result.errors,
    )
    return result


async def _process_pending(
    tx: PaymentTransaction,
    tx_repo: PaymentTransactionRepositoryInterface,
    gateways: GatewayMap,
    notifier: CryptoPaymentNotifier,
    result: CreditPendingResult,
    *,
    expiry: timedelta,
    now: datetime,
) -> None:
    gateway = gateways.get(tx.token)
    if gateway is None:
        logger.warning(
            "no gateway configured for token",
            extra={"tx_id": tx.transaction_id, "token": tx.token},
        )
        result.still_pending += 1
        return

    status = await gateway.get_transaction_status(tx.transaction_id)
    if status.status == "confirmed":
        credited = await tx_repo.mark_credited(tx.transaction_id, status.block_height, now)
        if credited is None:
            # 다른 실행이 먼저 처리했다.
            return
        result.credited += 1
        logger.info(
            "pending transaction confirmed and credited",
            extra={
                "tx_id": tx.transaction_id,
                "address": credited.destination_address,
                "winc": str(credited.winc_amount),
            },
        )
        credited = credited.model_copy(
            update={"usd_equivalent": await notifier.usd_equivalent(credited)}
        )
        notifier.publish(credited)
        return

    if status.status == "not_found" and tx.created_at < now - expiry:
        failed = await tx_repo.mark_failed(tx.transaction_id, NOT_FOUND_REASON, now)
        if failed is None:
            return
        result.failed += 1
        logger.warning(
            "pending transaction not found and expired, failing transaction",
            extra={"tx_id": tx.transaction_id},
        )
        notifier.publish(failed)
        return

    result.still_pending += 1
    logger.debug("transaction is still pending", extra={"tx_id": tx.transaction_id})


async def _run_once() -> CreditPendingResult:
    config = load_config()
    db = await get_database()
    http_client = build_oracle_client(config.oracle)
    bus = KafkaEventBus.from_env() if is_event_bus_enabled() else None

    tx_repo = PaymentTransactionRepository(db)
    ledger_repo = LedgerRepository(db)
    gateways: GatewayMap = {
        "arweave": ArweaveTransactionGateway(
            http_client,
            config.oracle.arweave_gateway_url,
            min_confirmations=config.crypto.arweave_min_confirmations,
        )
    }
    notifier = CryptoPaymentNotifier(
        NotificationPublisher(bus),
        token_oracle=ReadThroughTokenToFiatOracle(
            CoingeckoTokenToFiatOracle(http_client, config.oracle), config.cache
        ),
    )
    try:
        return await credit_pending_transactions(
            tx_repo,
            ledger_repo,
            gateways,
            notifier,
            pending_tx_expiry_seconds=config.crypto.pending_tx_expiry_seconds,
        )
    finally:
        await http_client.aclose()
        if bus is not None:
            bus.close()
        await close_client()


def main() -> None:
    setup_logger(name="credit-pending-transactions")
    asyncio.run(_run_once())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
