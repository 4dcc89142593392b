"""온체인 입금 적립 서비스.

트랜잭션 id 하나당 한 번만 적립한다. 제출 시점에 적립 금액을 고정하고, 확정되지 않은 입금은
pending 으로 저장해 credit_pending_transactions 잡이 나중에 적립/실패 처리한다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable

from common.eventbus.core import new_json_event
from common.eventbus.kafka import NotificationPublisher
from common.eventbus.topics import TOPIC_PAYMENT
from common.events.payment import CryptoPaymentEvent, PaymentEventType

from ..config import CryptoConfig
from ..exceptions import (
    InvalidCryptoPaymentError,
    OracleUnavailableError,
    PaymentTransactionHasWrongTargetError,
    PaymentTransactionNotFoundError,
    UnsupportedTokenError,
)
from ..gateways.interfaces import GatewayMap
from ..metrics import MetricsContext
from ..models.adjustment import AppliedAdjustment
from ..models.transaction import PaymentTransaction
from ..oracles.token_to_fiat_oracle import ReadThroughTokenToFiatOracle
from ..repositories.interfaces import PaymentTransactionRepositoryInterface
from .pricing_service import PricingService


logger = logging.getLogger(__name__)

EVENT_SOURCE = "payment-service"


@dataclass(slots=True)
class CryptoPaymentSubmission:
    transaction: PaymentTransaction
    # 이번 요청 이전에 이미 기록된 트랜잭션이면 True (상태는 그대로 반환)
    already_recorded: bool
    inclusive_adjustments: list[AppliedAdjustment] = field(default_factory=list)


class CryptoPaymentNotifier:
    """입금 적립/실패 알림 발행. 정산 잡과 제출 API 가 함께 쓴다."""

    def __init__(
        self,
        publisher: NotificationPublisher,
        *,
        token_oracle: ReadThroughTokenToFiatOracle | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._publisher = publisher
        self._token_oracle = token_oracle
        self._clock = clock

    async def usd_equivalent(self, tx: PaymentTransaction) -> float | None:
        """알림용 USD 환산 금액. 시세를 가져오지 못해도 적립은 진행한다."""

        if self._token_oracle is None:
            return None
        try:
            return await self._token_oracle.get_usd_price_for_crypto_amount(
                tx.transaction_quantity, tx.token
            )
        except OracleUnavailableError:
            logger.warning(
                "could not compute usd equivalent", extra={"tx_id": tx.transaction_id}
            )
            return None

    def publish(self, tx: PaymentTransaction) -> None:
        event_id = str(uuid.uuid4())
        event = CryptoPaymentEvent(
            id=event_id,
            type=(
                PaymentEventType.CRYPTO_PAYMENT_CREDITED
                if tx.status == "credited"
                else PaymentEventType.CRYPTO_PAYMENT_FAILED
            ),
            timestamp=self._clock().isoformat(),
            source=EVENT_SOURCE,
            version="1.0",
            transaction_id=tx.transaction_id,
            token=tx.token,
            transaction_quantity=str(tx.transaction_quantity),
            destination_address=tx.destination_address,
            winc=str(tx.winc_amount),
            usd_equivalent=tx.usd_equivalent,
            failed_reason=tx.failed_reason,
        )
        self._publisher.publish(
            TOPIC_PAYMENT, new_json_event(payload=asdict(event), event_id=event_id)
        )


class CryptoPaymentService:
    def __init__(
        self,
        tx_repo: PaymentTransactionRepositoryInterface,
        pricing: PricingService,
        gateways: GatewayMap,
        crypto_config: CryptoConfig,
        notifier: CryptoPaymentNotifier,
        *,
        metrics: MetricsContext | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._tx_repo = tx_repo
        self._pricing = pricing
        self._gateways = gateways
        self._config = crypto_config
        self._notifier = notifier
        self._metrics = metrics
        self._clock = clock

    async def submit_transaction(
        self, token: str, transaction_id: str
    ) -> CryptoPaymentSubmission:
        """입금 트랜잭션을 제출받아 적립하거나 pending 으로 기록한다.

        이미 기록된 트랜잭션이면 재계산 없이 기존 상태를 그대로 돌려준다.
        """

        transaction_id = transaction_id.strip()
        if not transaction_id:
            raise InvalidCryptoPaymentError("Missing transaction id")
        gateway = self._gateways.get(token)
        wallet_address = self._config.wallet_addresses.get(token)
        if gateway is None or wallet_address is None:
            raise UnsupportedTokenError(token)

        existing = await self._tx_repo.get(transaction_id)
        if existing is not None:
            logger.debug(
                "payment transaction already recorded",
                extra={"tx_id": transaction_id, "status": existing.status},
            )
            return CryptoPaymentSubmission(transaction=existing, already_recorded=True)

        info = await gateway.get_transaction(transaction_id)
        if info is None:
            raise PaymentTransactionNotFoundError(transaction_id)
        if info.quantity <= 0:
            raise InvalidCryptoPaymentError(
                "Transaction quantity must be greater than 0",
                details={"tx_id": transaction_id, "quantity": str(info.quantity)},
            )
        if info.recipient_address != wallet_address:
            raise PaymentTransactionHasWrongTargetError(
                transaction_id, info.recipient_address
            )

        quote = await self._pricing.get_credits_for_crypto_payment(
            info.quantity, token, "standard"
        )
        status = await gateway.get_transaction_status(transaction_id)

        now = self._clock()
        tx = PaymentTransaction(
            transaction_id=transaction_id,
            token=token,
            transaction_quantity=info.quantity,
            sender_address=info.sender_address,
            # 입금한 지갑 주소로 적립한다.
            destination_address=info.sender_address,
            winc_amount=quote.final_price,
            status="credited" if status.status == "confirmed" else "pending",
            block_height=status.block_height,
            created_at=now,
            updated_at=now,
        )

        if status.status == "confirmed":
            tx = tx.model_copy(
                update={"usd_equivalent": await self._notifier.usd_equivalent(tx)}
            )
            stored, created = await self._tx_repo.create_credited(tx)
        else:
            stored, created = await self._tx_repo.create_pending(tx)

        if self._metrics is not None:
            self._metrics.crypto_payments.inc(stored.status)
        logger.info(
            "recorded crypto payment",
            extra={
                "tx_id": transaction_id,
                "token": token,
                "address": stored.destination_address,
                "winc": str(stored.winc_amount),
                "status": stored.status,
            },
        )
        if created and stored.status == "credited":
            self._notifier.publish(stored)

        return CryptoPaymentSubmission(
            transaction=stored,
            already_recorded=not created,
            inclusive_adjustments=quote.inclusive_adjustments,
        )
