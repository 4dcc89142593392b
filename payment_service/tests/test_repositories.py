"""원장/결제 트랜잭션 레포지토리 계약 테스트.

같은 시나리오를 인메모리 구현과 MongoDB 구현에 모두 돌린다. MongoDB 쪽은
TEST_MONGO_URI (트랜잭션을 위해 replica set) 가 설정된 경우에만 실행되며,
테스트마다 임시 데이터베이스를 만들고 지운다.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import timedelta

import pytest
import pytest_asyncio
from pymongo import AsyncMongoClient

from common.mongo.client import ensure_indexes

from payment_service.app.exceptions import (
    BadRequestError,
    InsufficientBalanceError,
    NoApprovalsFoundError,
    ReservationNotFoundError,
    UserNotFoundWarning,
)
from payment_service.app.models.ledger import PaymentReceipt
from payment_service.app.models.transaction import PaymentTransaction
from payment_service.app.models.winc import Winc
from payment_service.app.repositories.interfaces import (
    LedgerRepositoryInterface,
    PaymentTransactionRepositoryInterface,
)
from payment_service.app.repositories.ledger_repository import LedgerRepository
from payment_service.app.repositories.payment_transaction_repository import (
    PaymentTransactionRepository,
)
from payment_service.tests.fakes import (
    NOW,
    InMemoryLedgerRepository,
    InMemoryPaymentTransactionRepository,
)


TEST_MONGO_URI_ENV = "TEST_MONGO_URI"

SIGNER = "signer-address"
PAYER = "payer-address"


@dataclass
class Repositories:
    ledger: LedgerRepositoryInterface
    transactions: PaymentTransactionRepositoryInterface

    async def seed_user(self, address: str, winc: int) -> None:
        await self.ledger.credit_balance(address, Winc(winc))

    async def balance_of(self, address: str) -> int:
        user = await self.ledger.get_user(address)
        return int(user.winc) if user else 0


@pytest_asyncio.fixture(params=["memory", "mongo"])
async def repos(request):
    if request.param == "memory":
        ledger = InMemoryLedgerRepository()
        yield Repositories(ledger, InMemoryPaymentTransactionRepository(ledger))
        return

    uri = os.getenv(TEST_MONGO_URI_ENV)
    if not uri:
        pytest.skip(f"{TEST_MONGO_URI_ENV} is not set")
    client: AsyncMongoClient = AsyncMongoClient(
        uri, tz_aware=True, serverSelectionTimeoutMS=2_000
    )
    db = client[f"payment_service_test_{uuid.uuid4().hex[:12]}"]
    try:
        await ensure_indexes(db)
        yield Repositories(LedgerRepository(db), PaymentTransactionRepository(db))
    finally:
        await client.drop_database(db.name)
        await client.close()


async def _reserve(
    repos: Repositories,
    data_item_id: str,
    winc: int,
    payers: list[str] | None = None,
):
    return await repos.ledger.reserve_balance_atomic(
        signer_address=SIGNER,
        data_item_id=data_item_id,
        payers=payers or [SIGNER],
        reserved_winc_amount=Winc(winc),
        network_winc_amount=Winc(winc),
        adjustments=[],
        now=NOW,
    )


async def _approve(
    repos: Repositories,
    approval_id: str,
    winc: int,
    *,
    scope_data_item_id: str | None = None,
    expiration_date=None,
):
    return await repos.ledger.create_approval(
        approval_id=approval_id,
        paying_address=PAYER,
        approved_address=SIGNER,
        approved_winc_amount=Winc(winc),
        expiration_date=expiration_date,
        scope_data_item_id=scope_data_item_id,
        now=NOW,
    )


# -------- reservations --------


async def test_reserve_debits_signer_balance(repos: Repositories) -> None:
    await repos.seed_user(SIGNER, 1000)

    reservation = await _reserve(repos, "item-1", 400)

    assert reservation.balance_winc_amount == 400
    assert reservation.status == "reserved"
    assert await repos.balance_of(SIGNER) == 600
    assert await repos.ledger.get_open_reservations_total(SIGNER) == 400


async def test_insufficient_reservation_changes_nothing(repos: Repositories) -> None:
    await repos.seed_user(SIGNER, 100)

    with pytest.raises(InsufficientBalanceError):
        await _reserve(repos, "item-1", 400)

    assert await repos.balance_of(SIGNER) == 100
    assert await repos.ledger.get_reservation("item-1") is None


async def test_duplicate_reservation_is_bad_request_before_approval_conflict(
    repos: Repositories,
) -> None:
    await repos.seed_user(PAYER, 1000)
    await repos.seed_user(SIGNER, 1000)
    await _approve(repos, "scoped", 300, scope_data_item_id="item-1")
    await _reserve(repos, "item-1", 300, payers=[PAYER, SIGNER])

    with pytest.raises(BadRequestError):
        await _reserve(repos, "item-1", 300, payers=[PAYER, SIGNER])

    assert await repos.balance_of(SIGNER) == 1000


async def test_refund_restores_balances_only_once(repos: Repositories) -> None:
    await repos.seed_user(PAYER, 1000)
    await repos.seed_user(SIGNER, 1000)
    await _approve(repos, "approval-1", 300)
    await _reserve(repos, "item-1", 500, payers=[PAYER, SIGNER])

    first = await repos.ledger.refund_balance("item-1", NOW)
    second = await repos.ledger.refund_balance("item-1", NOW)

    assert first.status == second.status == "refunded"
    assert await repos.balance_of(SIGNER) == 1000
    (approval,) = await repos.ledger.get_approvals(PAYER, SIGNER)
    assert approval.used_winc_amount == 0


async def test_refund_of_unknown_reservation(repos: Repositories) -> None:
    with pytest.raises(ReservationNotFoundError):
        await repos.ledger.refund_balance("missing", NOW)


async def test_finalized_reservation_cannot_be_refunded(repos: Repositories) -> None:
    await repos.seed_user(SIGNER, 1000)
    await _reserve(repos, "item-1", 400)

    finalized = await repos.ledger.finalize_reservation("item-1", NOW)

    assert finalized.status == "finalized"
    with pytest.raises(BadRequestError):
        await repos.ledger.refund_balance("item-1", NOW)
    assert await repos.balance_of(SIGNER) == 600


# -------- approvals --------


async def test_create_approval_debits_payer(repos: Repositories) -> None:
    await repos.seed_user(PAYER, 1000)

    approval = await _approve(repos, "approval-1", 400)

    assert approval.remaining_winc_amount == 400
    assert await repos.balance_of(PAYER) == 600
    assert [a.approval_id for a in await repos.ledger.get_given_approvals(PAYER)] == [
        "approval-1"
    ]


async def test_create_approval_errors(repos: Repositories) -> None:
    with pytest.raises(UserNotFoundWarning):
        await _approve(repos, "approval-1", 400)

    await repos.seed_user(PAYER, 500)
    await _approve(repos, "approval-1", 400)

    with pytest.raises(BadRequestError):
        await _approve(repos, "approval-1", 50)
    with pytest.raises(InsufficientBalanceError):
        await _approve(repos, "approval-2", 400)
    assert await repos.balance_of(PAYER) == 100


async def test_revoke_returns_unused_amount(repos: Repositories) -> None:
    await repos.seed_user(PAYER, 1000)
    await _approve(repos, "approval-1", 400)
    await _reserve(repos, "item-1", 100, payers=[PAYER, SIGNER])

    revoked = await repos.ledger.revoke_approvals(
        paying_address=PAYER, approved_address=SIGNER, approval_id=None, now=NOW
    )

    assert [a.status for a in revoked] == ["revoked"]
    assert await repos.balance_of(PAYER) == 900
    with pytest.raises(NoApprovalsFoundError):
        await repos.ledger.revoke_approvals(
            paying_address=PAYER, approved_address=SIGNER, approval_id=None, now=NOW
        )


async def test_expire_approvals_returns_remaining_to_payer(repos: Repositories) -> None:
    await repos.seed_user(PAYER, 1000)
    await _approve(repos, "short", 300, expiration_date=NOW + timedelta(minutes=5))
    await _approve(repos, "forever", 200)

    expired = await repos.ledger.expire_approvals(
        NOW + timedelta(minutes=10), paying_address=PAYER
    )

    assert [a.approval_id for a in expired] == ["short"]
    assert await repos.balance_of(PAYER) == 800


# -------- receipts --------


async def test_payment_receipt_is_credited_once(repos: Repositories) -> None:
    receipt = PaymentReceipt(
        payment_receipt_id="receipt-1",
        address=SIGNER,
        currency="usd",
        payment_amount=1000,
        quoted_payment_amount=1000,
        winc_amount=Winc(5000),
        excess_winc=Winc(10),
        promo_codes=[],
        created_at=NOW,
    )

    _, created = await repos.ledger.credit_payment_receipt(receipt, [])
    _, created_again = await repos.ledger.credit_payment_receipt(receipt, [])

    assert (created, created_again) == (True, False)
    assert await repos.balance_of(SIGNER) == 5010


# -------- payment transactions --------


def _transaction(tx_id: str, status: str = "pending") -> PaymentTransaction:
    return PaymentTransaction(
        transaction_id=tx_id,
        token="arweave",
        transaction_quantity=10**12,
        sender_address=SIGNER,
        destination_address=SIGNER,
        winc_amount=Winc(7000),
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


async def test_credited_transaction_is_credited_once(repos: Repositories) -> None:
    _, created = await repos.transactions.create_credited(_transaction("tx-1", "credited"))
    _, created_again = await repos.transactions.create_credited(
        _transaction("tx-1", "credited")
    )

    assert (created, created_again) == (True, False)
    assert await repos.balance_of(SIGNER) == 7000


async def test_pending_transaction_lifecycle(repos: Repositories) -> None:
    _, created = await repos.transactions.create_pending(_transaction("tx-1"))
    existing, created_again = await repos.transactions.create_pending(_transaction("tx-1"))

    assert (created, created_again) == (True, False)
    assert existing.status == "pending"
    assert [tx.transaction_id for tx in await repos.transactions.list_pending(10)] == [
        "tx-1"
    ]

    credited = await repos.transactions.mark_credited("tx-1", 100, NOW)
    again = await repos.transactions.mark_credited("tx-1", 100, NOW)

    assert credited is not None and credited.block_height == 100
    assert again is None
    assert await repos.balance_of(SIGNER) == 7000
    assert await repos.transactions.list_pending(10) == []
    assert await repos.transactions.mark_failed("tx-1", "late", NOW) is None
