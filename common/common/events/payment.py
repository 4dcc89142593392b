"""결제/승인 알림 이벤트 정의.

외부 알림 서비스(이메일, Slack 등)가 구독한다. 금액(winc)은 정밀도 손실을 피하려고 문자열로 싣는다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class PaymentEventType:
    """결제 이벤트 타입 상수."""

    CRYPTO_PAYMENT_CREDITED = "payment.crypto.credited"
    CRYPTO_PAYMENT_FAILED = "payment.crypto.failed"
    FIAT_PAYMENT_CREDITED = "payment.fiat.credited"
    APPROVAL_CREATED = "approval.created"
    APPROVALS_REVOKED = "approval.revoked"


@dataclass(slots=True)
class CryptoPaymentEvent:
    """온체인 입금이 적립되거나 실패했을 때 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    transaction_id: str
    token: str
    transaction_quantity: str
    destination_address: str
    winc: str
    usd_equivalent: float | None = None
    failed_reason: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        usd_equivalent = data.get("usd_equivalent")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            transaction_id=str(data["transaction_id"]),
            token=str(data["token"]),
            transaction_quantity=str(data["transaction_quantity"]),
            destination_address=str(data["destination_address"]),
            winc=str(data["winc"]),
            usd_equivalent=float(usd_equivalent) if usd_equivalent is not None else None,
            failed_reason=data.get("failed_reason"),
        )


@dataclass(slots=True)
class FiatPaymentCreditedEvent:
    """카드 결제 영수증이 적립되면 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    payment_receipt_id: str
    address: str
    currency: str
    payment_amount: int
    winc: str
    promo_codes: list[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            payment_receipt_id=str(data["payment_receipt_id"]),
            address=str(data["address"]),
            currency=str(data["currency"]),
            payment_amount=int(data["payment_amount"]),
            winc=str(data["winc"]),
            promo_codes=[str(code) for code in data.get("promo_codes") or []],
        )


@dataclass(slots=True)
class ApprovalEvent:
    """위임 승인이 생성되거나 회수되면 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    paying_address: str
    approved_address: str
    approval_ids: list[str]
    winc: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            paying_address=str(data["paying_address"]),
            approved_address=str(data["approved_address"]),
            approval_ids=[str(i) for i in data.get("approval_ids") or []],
            winc=str(data["winc"]),
        )
