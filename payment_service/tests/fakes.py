"""테스트용 가짜 구현 모음.

인메모리 원장은 실제 저장소와 같은 계획 함수(reservation_planner)를 asyncio.Lock 안에서 호출한다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from common.eventbus.core import Event, Topic
from common.eventbus.kafka import NotificationPublisher

from payment_service.app.config import (
    CacheConfig,
    CryptoConfig,
    CurrencyLimitConfig,
    PricingConfig,
)
from payment_service.app.exceptions import (
    BadRequestError,
    InsufficientBalanceError,
    NoApprovalsFoundError,
    ReservationNotFoundError,
    UserNotFoundWarning,
)
from payment_service.app.gateways.interfaces import TransactionInfo, TransactionStatus
from payment_service.app.models.adjustment import (
    AppliedAdjustment,
    InclusiveAdjustment,
    PromoCodeAdjustment,
)
from payment_service.app.models.ledger import (
    DelegatedApproval,
    PaymentReceipt,
    Reservation,
    User,
)
from payment_service.app.models.transaction import PaymentTransaction
from payment_service.app.models.winc import Winc
from payment_service.app.oracles.bytes_to_credit_oracle import (
    ReadThroughBytesToCreditOracle,
)
from payment_service.app.oracles.fiat_to_credit_oracle import (
    ReadThroughFiatToCreditOracle,
)
from payment_service.app.oracles.token_to_fiat_oracle import (
    ReadThroughTokenToFiatOracle,
)
from payment_service.app.services.pricing_service import PricingService
from payment_service.app.services.reservation_planner import (
    RefundPlan,
    plan_refund,
    plan_reservation,
    plan_revocation,
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
LONG_AGO = datetime(2020, 1, 1, tzinfo=timezone.utc)

# 1 크레딧 = 10 USD
FIAT_RATES: dict[str, float] = {
    "usd": 10.0,
    "eur": 9.2,
    "gbp": 7.9,
    "jpy": 1500.0,
    "cad": 13.6,
    "aud": 15.2,
    "brl": 50.0,
    "hkd": 78.0,
    "sgd": 13.4,
    "inr": 830.0,
}

TOKEN_RATES: dict[str, dict[str, float]] = {
    "arweave": {"usd": 10.0},
    "ethereum": {"usd": 2000.0},
    "solana": {"usd": 150.0},
}


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# -------- oracles --------


class FakeBytesOracle:
    """1 바이트 = 1 winc."""

    def __init__(self) -> None:
        self.calls: list[int] = []

    async def get_credits_for_bytes(self, chunk_size: int) -> Winc:
        self.calls.append(chunk_size)
        return Winc(chunk_size)


class FakeFiatOracle:
    def __init__(self, rates: dict[str, float] | None = None) -> None:
        self.rates = dict(rates or FIAT_RATES)
        self.calls = 0

    async def get_rates_for_one_credit_unit(self) -> dict[str, float]:
        self.calls += 1
        return dict(self.rates)


class FakeTokenOracle:
    def __init__(self, rates: dict[str, dict[str, float]] | None = None) -> None:
        self.rates = {token: dict(prices) for token, prices in (rates or TOKEN_RATES).items()}
        self.error: Exception | None = None

    async def get_rates_for_all_tokens(self) -> dict[str, dict[str, float]]:
        if self.error is not None:
            raise self.error
        return self.rates


# -------- catalog --------


def inclusive(
    catalog_id: str,
    *,
    operator: str = "multiply",
    magnitude: float,
    priority: int = 0,
    **kwargs,
) -> InclusiveAdjustment:
    return InclusiveAdjustment(
        catalog_id=catalog_id,
        name=catalog_id,
        operator=operator,
        magnitude=magnitude,
        priority=priority,
        start_date=LONG_AGO,
        **kwargs,
    )


def promo(
    code: str,
    *,
    operator: str = "multiply",
    magnitude: float = 0.2,
    priority: int = 0,
    **kwargs,
) -> PromoCodeAdjustment:
    kwargs.setdefault("start_date", LONG_AGO)
    return PromoCodeAdjustment(
        catalog_id=f"promo-{code}",
        name=f"{code} promo",
        operator=operator,
        magnitude=magnitude,
        priority=priority,
        code=code,
        **kwargs,
    )


class FakeAdjustmentCatalog:
    def __init__(self) -> None:
        self.upload_adjustments: list[InclusiveAdjustment | PromoCodeAdjustment] = []
        self.payment_adjustments: list[InclusiveAdjustment] = []
        self.promo_codes: dict[str, PromoCodeAdjustment] = {}
        # 결제 이력이 있는 주소 (new_users 그룹에서 제외)
        self.paying_users: set[str] = set()

    async def get_active_upload_adjustments(
        self, now: datetime, payer_address: str | None = None
    ) -> list[InclusiveAdjustment | PromoCodeAdjustment]:
        active = []
        for adjustment in self.upload_adjustments:
            if not adjustment.is_active(now):
                continue
            if adjustment.target_user_group is not None and (
                payer_address is None
                or not await self.is_user_in_group(
                    payer_address, adjustment.target_user_group
                )
            ):
                continue
            active.append(adjustment)
        return active

    async def get_active_payment_adjustments(
        self, now: datetime
    ) -> list[InclusiveAdjustment]:
        return [a for a in self.payment_adjustments if a.is_active(now)]

    async def get_promo_code(self, code: str) -> PromoCodeAdjustment | None:
        return self.promo_codes.get(code)

    async def is_user_in_group(self, address: str, user_group: str) -> bool:
        if user_group == "all":
            return True
        if user_group == "new_users":
            return address not in self.paying_users
        return False


# -------- ledger --------


class InMemoryLedgerRepository:
    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.approvals: dict[str, DelegatedApproval] = {}
        self.reservations: dict[str, Reservation] = {}
        self.receipts: dict[str, PaymentReceipt] = {}
        self.promo_code_uses: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def seed_user(self, address: str, winc: int) -> User:
        user = User(address=address, winc=Winc(winc), created_at=NOW, updated_at=NOW)
        self.users[address] = user
        return user

    def balance_of(self, address: str) -> Winc:
        user = self.users.get(address)
        return user.winc if user else Winc(0)

    def _credit(self, address: str, winc: Winc, now: datetime) -> User:
        user = self.users.get(address)
        if user is None:
            user = User(address=address, winc=Winc(0), created_at=now, updated_at=now)
        user = user.model_copy(update={"winc": user.winc.plus(winc), "updated_at": now})
        self.users[address] = user
        return user

    def _debit(self, address: str, winc: Winc, now: datetime) -> None:
        if winc.is_zero():
            return
        user = self.users[address]
        self.users[address] = user.model_copy(
            update={"winc": user.winc.minus(winc), "updated_at": now}
        )

    def _apply_balance_credits(self, plan: RefundPlan, now: datetime) -> None:
        for address, winc in plan.balance_credits.items():
            self._credit(address, winc, now)

    def _active(self, **criteria: str) -> list[DelegatedApproval]:
        return [
            approval
            for approval in self.approvals.values()
            if approval.status == "active"
            and all(getattr(approval, key) == value for key, value in criteria.items())
        ]

    async def get_user(self, address: str) -> User | None:
        return self.users.get(address)

    async def credit_balance(self, address: str, winc: Winc) -> User:
        return self._credit(address, winc, NOW)

    async def get_approvals_for_signer(self, signer_address: str) -> list[DelegatedApproval]:
        return self._active(approved_address=signer_address)

    async def get_given_approvals(self, paying_address: str) -> list[DelegatedApproval]:
        return self._active(paying_address=paying_address)

    async def get_approvals(
        self, paying_address: str, approved_address: str
    ) -> list[DelegatedApproval]:
        return self._active(
            paying_address=paying_address, approved_address=approved_address
        )

    async def get_open_reservations_total(self, signer_address: str) -> Winc:
        total = Winc(0)
        for reservation in self.reservations.values():
            if (
                reservation.signer_address == signer_address
                and reservation.status == "reserved"
            ):
                total = total.plus(reservation.reserved_winc_amount)
        return total

    async def reserve_balance_atomic(
        self,
        *,
        signer_address: str,
        data_item_id: str,
        payers: list[str],
        reserved_winc_amount: Winc,
        network_winc_amount: Winc,
        adjustments: list[AppliedAdjustment],
        now: datetime,
    ) -> Reservation:
        async with self._lock:
            if data_item_id in self.reservations:
                raise BadRequestError(
                    "A balance reservation already exists",
                    details={"data_item_id": data_item_id},
                )
            plan = plan_reservation(
                signer_address=signer_address,
                data_item_id=data_item_id,
                required=reserved_winc_amount,
                payers=payers,
                signer_balance=self.balance_of(signer_address),
                approvals=self._active(approved_address=signer_address),
                now=now,
            )
            self._debit(signer_address, plan.balance_winc, now)
            for usage in plan.approval_usages:
                approval = self.approvals[usage.approval_id]
                self.approvals[usage.approval_id] = approval.model_copy(
                    update={"used_winc_amount": approval.used_winc_amount.plus(usage.winc)}
                )
            reservation = Reservation(
                data_item_id=data_item_id,
                signer_address=signer_address,
                reserved_winc_amount=reserved_winc_amount,
                network_winc_amount=network_winc_amount,
                balance_winc_amount=plan.balance_winc,
                approval_usages=plan.approval_usages,
                adjustments=adjustments,
                created_at=now,
                updated_at=now,
            )
            self.reservations[data_item_id] = reservation
            return reservation

    async def refund_balance(self, data_item_id: str, now: datetime) -> Reservation:
        async with self._lock:
            reservation = self.reservations.get(data_item_id)
            if reservation is None:
                raise ReservationNotFoundError(data_item_id)
            if reservation.status == "refunded":
                return reservation
            if reservation.status == "finalized":
                raise BadRequestError("already finalized")
            plan = plan_refund(reservation, dict(self.approvals))
            self._apply_balance_credits(plan, now)
            for approval_id, winc in plan.approval_restores.items():
                approval = self.approvals[approval_id]
                self.approvals[approval_id] = approval.model_copy(
                    update={"used_winc_amount": approval.used_winc_amount.minus(winc)}
                )
            refunded = reservation.model_copy(
                update={"status": "refunded", "updated_at": now}
            )
            self.reservations[data_item_id] = refunded
            return refunded

    async def finalize_reservation(self, data_item_id: str, now: datetime) -> Reservation:
        reservation = self.reservations.get(data_item_id)
        if reservation is None:
            raise ReservationNotFoundError(data_item_id)
        if reservation.status == "refunded":
            raise BadRequestError("already refunded")
        finalized = reservation.model_copy(
            update={"status": "finalized", "updated_at": now}
        )
        self.reservations[data_item_id] = finalized
        return finalized

    async def get_reservation(self, data_item_id: str) -> Reservation | None:
        return self.reservations.get(data_item_id)

    async def create_approval(
        self,
        *,
        approval_id: str,
        paying_address: str,
        approved_address: str,
        approved_winc_amount: Winc,
        expiration_date: datetime | None,
        scope_data_item_id: str | None,
        now: datetime,
    ) -> DelegatedApproval:
        async with self._lock:
            if paying_address not in self.users:
                raise UserNotFoundWarning(paying_address)
            if approval_id in self.approvals:
                raise BadRequestError("duplicate approval id")
            if self.balance_of(paying_address) < approved_winc_amount:
                raise InsufficientBalanceError(paying_address, approved_winc_amount)
            self._debit(paying_address, approved_winc_amount, now)
            approval = DelegatedApproval(
                approval_id=approval_id,
                paying_address=paying_address,
                approved_address=approved_address,
                approved_winc_amount=approved_winc_amount,
                expiration_date=expiration_date,
                scope_data_item_id=scope_data_item_id,
                created_at=now,
                updated_at=now,
            )
            self.approvals[approval_id] = approval
            return approval

    async def revoke_approvals(
        self,
        *,
        paying_address: str,
        approved_address: str,
        approval_id: str | None,
        now: datetime,
    ) -> list[DelegatedApproval]:
        async with self._lock:
            approvals = self._active(
                paying_address=paying_address, approved_address=approved_address
            )
            if approval_id is not None:
                approvals = [a for a in approvals if a.approval_id == approval_id]
            if not approvals:
                raise NoApprovalsFoundError(paying_address, approved_address)
            plan = plan_revocation(approvals, approval_id=approval_id)
            return self._close(approvals, plan, "revoked", now)

    async def expire_approvals(
        self, now: datetime, paying_address: str | None = None
    ) -> list[DelegatedApproval]:
        async with self._lock:
            approvals = [
                approval
                for approval in self._active()
                if approval.is_expired(now)
                and (paying_address is None or approval.paying_address == paying_address)
            ]
            if not approvals:
                return []
            plan = plan_revocation(approvals, approval_id=None)
            return self._close(approvals, plan, "expired", now)

    def _close(
        self,
        approvals: list[DelegatedApproval],
        plan: RefundPlan,
        status: str,
        now: datetime,
    ) -> list[DelegatedApproval]:
        closed = []
        for approval in approvals:
            updated = approval.model_copy(update={"status": status, "updated_at": now})
            self.approvals[approval.approval_id] = updated
            closed.append(updated)
        self._apply_balance_credits(plan, now)
        return closed

    async def credit_payment_receipt(
        self, receipt: PaymentReceipt, promo_codes: list[str]
    ) -> tuple[PaymentReceipt, bool]:
        async with self._lock:
            existing = self.receipts.get(receipt.payment_receipt_id)
            if existing is not None:
                return existing, False
            self.receipts[receipt.payment_receipt_id] = receipt
            self._credit(
                receipt.address,
                receipt.winc_amount.plus(receipt.excess_winc),
                receipt.created_at,
            )
            for code in promo_codes:
                self.promo_code_uses[code] = self.promo_code_uses.get(code, 0) + 1
            return receipt, True


# -------- crypto --------


class FakeTransactionGateway:
    def __init__(self) -> None:
        self.transactions: dict[str, TransactionInfo] = {}
        self.statuses: dict[str, TransactionStatus] = {}

    async def get_transaction_status(self, transaction_id: str) -> TransactionStatus:
        return self.statuses.get(transaction_id, TransactionStatus(status="not_found"))

    async def get_transaction(self, transaction_id: str) -> TransactionInfo | None:
        return self.transactions.get(transaction_id)


class InMemoryPaymentTransactionRepository:
    def __init__(self, ledger: InMemoryLedgerRepository) -> None:
        self.ledger = ledger
        self.transactions: dict[str, PaymentTransaction] = {}

    async def get(self, transaction_id: str) -> PaymentTransaction | None:
        return self.transactions.get(transaction_id)

    async def create_pending(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:
        existing = self.transactions.get(tx.transaction_id)
        if existing is not None:
            return existing, False
        self.transactions[tx.transaction_id] = tx
        return tx, True

    async def create_credited(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:
        existing = self.transactions.get(tx.transaction_id)
        if existing is not None:
            return existing, False
        self.transactions[tx.transaction_id] = tx
        self.ledger._credit(tx.destination_address, tx.winc_amount, tx.updated_at)
        return tx, True

    async def list_pending(self, limit: int) -> list[PaymentTransaction]:
        pending = [tx for tx in self.transactions.values() if tx.status == "pending"]
        return pending[:limit]

    async def mark_credited(
        self, transaction_id: str, block_height: int | None, now: datetime
    ) -> PaymentTransaction | None:
        tx = self.transactions.get(transaction_id)
        if tx is None or tx.status != "pending":
            return None
        credited = tx.model_copy(
            update={"status": "credited", "block_height": block_height, "updated_at": now}
        )
        self.transactions[transaction_id] = credited
        self.ledger._credit(credited.destination_address, credited.winc_amount, now)
        return credited

    async def mark_failed(
        self, transaction_id: str, reason: str, now: datetime
    ) -> PaymentTransaction | None:
        tx = self.transactions.get(transaction_id)
        if tx is None or tx.status != "pending":
            return None
        failed = tx.model_copy(
            update={"status": "failed", "failed_reason": reason, "updated_at": now}
        )
        self.transactions[transaction_id] = failed
        return failed


# -------- events --------


class FakeEventBus:
    def __init__(self) -> None:
        self.published: list[tuple[Topic, Event]] = []
        self.raise_error: Exception | None = None

    def publish(self, topic: Topic, event: Event) -> None:
        if self.raise_error is not None:
            raise self.raise_error
        self.published.append((topic, event))

    def payloads(self, topic: Topic) -> list[dict]:
        return [event.payload for t, event in self.published if t == topic]


# -------- wiring --------


@dataclass
class PricingFixture:
    service: PricingService
    catalog: FakeAdjustmentCatalog
    bytes_oracle: FakeBytesOracle
    fiat_oracle: FakeFiatOracle
    token_oracle: FakeTokenOracle
    clock: FakeClock
    config: PricingConfig = field(default_factory=PricingConfig)


def build_pricing(
    *,
    catalog: FakeAdjustmentCatalog | None = None,
    clock: FakeClock | None = None,
    pricing_config: PricingConfig | None = None,
) -> PricingFixture:
    catalog = catalog or FakeAdjustmentCatalog()
    clock = clock or FakeClock()
    pricing_config = pricing_config or PricingConfig()
    bytes_oracle = FakeBytesOracle()
    fiat_oracle = FakeFiatOracle()
    token_oracle = FakeTokenOracle()
    cache_config = CacheConfig()
    service = PricingService(
        bytes_oracle=ReadThroughBytesToCreditOracle(bytes_oracle, cache_config),
        fiat_oracle=ReadThroughFiatToCreditOracle(fiat_oracle, cache_config),
        token_oracle=ReadThroughTokenToFiatOracle(token_oracle, cache_config),
        catalog=catalog,
        pricing_config=pricing_config,
        currency_limits=CurrencyLimitConfig(),
        clock=clock,
    )
    return PricingFixture(
        service=service,
        catalog=catalog,
        bytes_oracle=bytes_oracle,
        fiat_oracle=fiat_oracle,
        token_oracle=token_oracle,
        clock=clock,
        config=pricing_config,
    )


def build_publisher() -> tuple[NotificationPublisher, FakeEventBus]:
    bus = FakeEventBus()
    return NotificationPublisher(bus), bus


WALLET_ADDRESS = "payment-wallet-0000000000000000000000000000"


def crypto_config() -> CryptoConfig:
    return CryptoConfig(wallet_addresses={"arweave": WALLET_ADDRESS})
