from __future__ import annotations

from typing import ClassVar

from common.mongo.types import BaseDocument, MongoWinc

from ...models.transaction import PaymentTransaction, PaymentTransactionStatus
from ...models.winc import Winc


class PaymentTransactionDocument(BaseDocument):
    """MongoDB payment_transactions 컬렉션 도큐먼트 모델.

    pending/credited/failed 를 status 로 구분해 한 컬렉션에 저장한다.
    토큰 수량은 wei 단위라 int64 를 넘을 수 있어 문자열로 저장한다.
    """

    transaction_id: str
    token: str
    transaction_quantity: str
    sender_address: str
    destination_address: str
    winc_amount: MongoWinc
    status: PaymentTransactionStatus
    block_height: int | None = None
    failed_reason: str | None = None
    usd_equivalent: float | None = None

    WINC_FIELDS: ClassVar[tuple[str, ...]] = ("winc_amount",)

    @classmethod
    def from_domain(cls, tx: PaymentTransaction) -> "PaymentTransactionDocument":
        return cls(
            transaction_id=tx.transaction_id,
            token=tx.token,
            transaction_quantity=str(tx.transaction_quantity),
            sender_address=tx.sender_address,
            destination_address=tx.destination_address,
            winc_amount=int(tx.winc_amount),
            status=tx.status,
            block_height=tx.block_height,
            failed_reason=tx.failed_reason,
            usd_equivalent=tx.usd_equivalent,
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )

    def to_domain(self) -> PaymentTransaction:
        return PaymentTransaction(
            transaction_id=self.transaction_id,
            token=self.token,
            transaction_quantity=int(self.transaction_quantity),
            sender_address=self.sender_address,
            destination_address=self.destination_address,
            winc_amount=Winc(self.winc_amount),
            status=self.status,
            block_height=self.block_height,
            failed_reason=self.failed_reason,
            usd_equivalent=self.usd_equivalent,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
