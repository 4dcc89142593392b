from __future__ import annotations

from dataclasses import dataclass

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from payment_service.app.config import CacheConfig
from payment_service.app.gateways.interfaces import TransactionInfo, TransactionStatus
from payment_service.app.main import create_app
from payment_service.app.oracles.token_to_fiat_oracle import ReadThroughTokenToFiatOracle
from payment_service.app.services.crypto_payment_service import (
    CryptoPaymentNotifier,
    CryptoPaymentService,
)
from payment_service.app.services.ledger_service import LedgerService
from payment_service.tests.fakes import (
    WALLET_ADDRESS,
    FakeClock,
    FakeTokenOracle,
    FakeTransactionGateway,
    InMemoryLedgerRepository,
    InMemoryPaymentTransactionRepository,
    PricingFixture,
    build_pricing,
    build_publisher,
    crypto_config,
)


UPLOAD_PRICE = 262_144
SIGNER = "signer-address"
PAYER = "payer-address"


@dataclass
class ApiFixture:
    app: FastAPI
    client: httpx.AsyncClient
    ledger: InMemoryLedgerRepository
    pricing: PricingFixture
    gateway: FakeTransactionGateway


def _build_app() -> tuple[FastAPI, InMemoryLedgerRepository, PricingFixture, FakeTransactionGateway]:
    # lifespan 대신 fake 기반 서비스를 app.state 에 직접 올린다.
    clock = FakeClock()
    pricing = build_pricing(clock=clock)
    ledger = InMemoryLedgerRepository()
    gateway = FakeTransactionGateway()
    publisher, _ = build_publisher()

    app = create_app()
    app.state.pricing_service = pricing.service
    app.state.ledger_service = LedgerService(ledger, pricing.service, publisher, clock=clock)
    app.state.crypto_payment_service = CryptoPaymentService(
        InMemoryPaymentTransactionRepository(ledger),
        pricing.service,
        {"arweave": gateway},
        crypto_config(),
        CryptoPaymentNotifier(
            publisher,
            token_oracle=ReadThroughTokenToFiatOracle(FakeTokenOracle(), CacheConfig()),
            clock=clock,
        ),
        clock=clock,
    )
    return app, ledger, pricing, gateway


@pytest_asyncio.fixture
async def api():
    app, ledger, pricing, gateway = _build_app()
    # ASGITransport 는 lifespan 이벤트를 보내지 않으므로 Mongo/Kafka 연결 없이 동작한다.
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield ApiFixture(
            app=app, client=client, ledger=ledger, pricing=pricing, gateway=gateway
        )


async def test_health(api: ApiFixture) -> None:
    response = await api.client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# -------- price --------


async def test_price_for_bytes_serializes_camel_case(api: ApiFixture) -> None:
    response = await api.client.get("/v1/price/bytes/1")

    assert response.status_code == 200
    body = response.json()
    assert body["winc"] == str(UPLOAD_PRICE)
    assert body["networkWinc"] == str(UPLOAD_PRICE)
    assert body["adjustments"] == []


async def test_price_for_payment(api: ApiFixture) -> None:
    response = await api.client.get("/v1/price/usd/10000")

    assert response.status_code == 200
    body = response.json()
    assert body["winc"] == "7660000000000"
    assert body["actualPaymentAmount"] == 10_000
    assert body["quotedPaymentAmount"] == 10_000


@pytest.mark.parametrize(
    ("path", "error"),
    [
        ("/v1/price/doge/10000", "UnsupportedCurrencyType"),
        ("/v1/price/usd/999", "PaymentAmountTooSmall"),
        ("/v1/price/usd/10000?promoCode=NOPE", "PromoCodeNotFound"),
        ("/v1/price/crypto/dogecoin/100", "UnsupportedToken"),
    ],
)
async def test_pricing_errors_map_to_bad_request(
    api: ApiFixture, path: str, error: str
) -> None:
    response = await api.client.get(path)

    assert response.status_code == 400
    assert response.json()["error"] == error


async def test_currencies_and_rates(api: ApiFixture) -> None:
    currencies = await api.client.get("/v1/currencies")
    rates = await api.client.get("/v1/rates")
    usd = await api.client.get("/v1/rates/usd")

    assert "usd" in currencies.json()["supportedCurrencies"]
    assert currencies.json()["limits"]["usd"]["minimumPaymentAmount"] == 1000
    assert rates.json()["winc"] == str(2**30)
    assert usd.json() == {"currency": "usd", "rate": 10.0}


# -------- balance --------


async def test_check_balance_status_codes(api: ApiFixture) -> None:
    api.ledger.seed_user(SIGNER, UPLOAD_PRICE)
    api.ledger.seed_user("poor-signer", 1)

    enough = await api.client.get(f"/v1/check-balance/{SIGNER}", params={"byteCount": 1})
    short = await api.client.get("/v1/check-balance/poor-signer", params={"byteCount": 1})
    missing = await api.client.get("/v1/check-balance/nobody", params={"byteCount": 1})

    assert enough.status_code == 200
    assert enough.json()["userHasSufficientBalance"] is True
    assert enough.json()["bytesCostInWinc"] == str(UPLOAD_PRICE)
    assert short.status_code == 402
    assert short.json()["userHasSufficientBalance"] is False
    assert missing.status_code == 404


async def test_reserve_then_refund_restores_balance(api: ApiFixture) -> None:
    api.ledger.seed_user(SIGNER, 1_000_000)

    reserved = await api.client.get(
        f"/v1/reserve-balance/{SIGNER}", params={"byteCount": 100, "dataItemId": "item-1"}
    )
    balance = await api.client.get("/v1/account/balance", params={"address": SIGNER})
    refunded = await api.client.get(
        f"/v1/refund-balance/{SIGNER}", params={"dataItemId": "item-1"}
    )

    assert reserved.status_code == 200
    assert reserved.json()["dataItemId"] == "item-1"
    assert reserved.json()["winc"] == str(UPLOAD_PRICE)
    assert reserved.json()["payers"] == [SIGNER]
    assert balance.json()["winc"] == str(1_000_000 - UPLOAD_PRICE)
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "refunded"
    assert api.ledger.balance_of(SIGNER) == 1_000_000


async def test_reserve_with_insufficient_balance_is_payment_required(api: ApiFixture) -> None:
    api.ledger.seed_user(SIGNER, 10)

    response = await api.client.get(
        f"/v1/reserve-balance/{SIGNER}", params={"byteCount": 100, "dataItemId": "item-1"}
    )

    assert response.status_code == 402
    assert response.json()["error"] == "InsufficientBalance"
    assert api.ledger.balance_of(SIGNER) == 10


async def test_refund_of_unknown_reservation_is_not_found(api: ApiFixture) -> None:
    response = await api.client.get(
        f"/v1/refund-balance/{SIGNER}", params={"dataItemId": "missing"}
    )

    assert response.status_code == 404
    assert response.json()["error"] == "ReservationNotFound"


async def test_reserve_requires_data_item_id(api: ApiFixture) -> None:
    response = await api.client.get(f"/v1/reserve-balance/{SIGNER}", params={"byteCount": 1})

    assert response.status_code == 422


# -------- approvals --------


async def test_create_and_revoke_approval(api: ApiFixture) -> None:
    api.ledger.seed_user(PAYER, 1000)

    created = await api.client.post(
        "/v1/account/approvals/create",
        json={
            "payingAddress": PAYER,
            "approvedAddress": SIGNER,
            "winc": "400",
            "approvalDataItemId": "approval-1",
        },
    )
    listed = await api.client.get(
        "/v1/account/approvals",
        params={"payingAddress": PAYER, "approvedAddress": SIGNER},
    )
    revoked = await api.client.post(
        "/v1/account/approvals/revoke",
        json={"payingAddress": PAYER, "approvedAddress": SIGNER},
    )

    assert created.status_code == 200
    assert created.json()["approvalDataItemId"] == "approval-1"
    assert created.json()["approvedWincAmount"] == "400"
    assert listed.status_code == 200
    assert listed.json()["amount"] == "400"
    assert [a["status"] for a in revoked.json()] == ["revoked"]
    assert api.ledger.balance_of(PAYER) == 1000


async def test_revoke_without_approvals_is_not_found(api: ApiFixture) -> None:
    response = await api.client.post(
        "/v1/account/approvals/revoke",
        json={"payingAddress": PAYER, "approvedAddress": SIGNER},
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NoApprovalsFound"


# -------- crypto --------


def _register_tx(api: ApiFixture, tx_id: str, status: TransactionStatus) -> None:
    api.gateway.transactions[tx_id] = TransactionInfo(
        sender_address="sender-address", recipient_address=WALLET_ADDRESS, quantity=10**12
    )
    api.gateway.statuses[tx_id] = status


async def test_submit_confirmed_transaction_is_credited(api: ApiFixture) -> None:
    _register_tx(api, "tx-1", TransactionStatus(status="confirmed", block_height=10))

    response = await api.client.post("/v1/account/balance/arweave", json={"tx_id": "tx-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Transaction credited"
    assert body["transaction"]["transactionId"] == "tx-1"
    assert body["transaction"]["winstonCreditAmount"] == "766000000000"
    assert api.ledger.balance_of("sender-address") == 766_000_000_000


async def test_submit_unconfirmed_transaction_is_accepted(api: ApiFixture) -> None:
    _register_tx(api, "tx-1", TransactionStatus(status="pending"))

    response = await api.client.post("/v1/account/balance/arweave", json={"tx_id": "tx-1"})

    assert response.status_code == 202
    assert response.json()["transaction"]["status"] == "pending"
    assert api.ledger.balance_of("sender-address") == 0


async def test_submit_unknown_transaction_is_not_found(api: ApiFixture) -> None:
    response = await api.client.post("/v1/account/balance/arweave", json={"tx_id": "nope"})

    assert response.status_code == 404
    assert response.json()["error"] == "PaymentTransactionNotFound"
