"""원장 MongoDB 도큐먼트.

잔액처럼 $inc 로 갱신하는 winc 필드는 Decimal128 로, 갱신하지 않는 중첩 금액은 문자열로 저장한다.
"""

from __future__ import annotations

from typing import Any, ClassVar

from common.mongo.types import BaseDocument, MongoWinc, OptionalMongoDateTime

from ...models.adjustment import AppliedAdjustment
from ...models.ledger import (
    ApprovalStatus,
    ApprovalUsage,
    DelegatedApproval,
    PaymentReceipt,
    Reservation,
    ReservationStatus,
    User,
)
from ...models.winc import Winc


class UserDocument(BaseDocument):
    """MongoDB users 컬렉션 도큐먼트 모델."""

    address: str
    winc: MongoWinc

    WINC_FIELDS: ClassVar[tuple[str, ...]] = ("winc",)

    def to_domain(self) -> User:
        return User(
            address=self.address,
            winc=Winc(self.winc),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ApprovalDocument(BaseDocument):
    """MongoDB delegated_payment_approvals 컬렉션 도큐먼트 모델."""

    approval_id: str
    paying_address: str
    approved_address: str
    approved_winc_amount: MongoWinc
    used_winc_amount: MongoWinc
    expiration_date: OptionalMongoDateTime = None
    scope_data_item_id: str | None = None
    status: ApprovalStatus = "active"

    WINC_FIELDS: ClassVar[tuple[str, ...]] = ("approved_winc_amount", "used_winc_amount")

    @classmethod
    def from_domain(cls, approval: DelegatedApproval) -> "ApprovalDocument":
        return cls(
            approval_id=approval.approval_id,
            paying_address=approval.paying_address,
            approved_address=approval.approved_address,
            approved_winc_amount=int(approval.approved_winc_amount),
            used_winc_amount=int(approval.used_winc_amount),
            expiration_date=approval.expiration_date,
            scope_data_item_id=approval.scope_data_item_id,
            status=approval.status,
            created_at=approval.created_at,
            updated_at=approval.updated_at,
        )

    def to_domain(self) -> DelegatedApproval:
        return DelegatedApproval(
            approval_id=self.approval_id,
            paying_address=self.paying_address,
            approved_address=self.approved_address,
            approved_winc_amount=Winc(self.approved_winc_amount),
            used_winc_amount=Winc(self.used_winc_amount),
            expiration_date=self.expiration_date,
            scope_data_item_id=self.scope_data_item_id,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ReservationDocument(BaseDocument):
    """MongoDB balance_reservations 컬렉션 도큐먼트 모델."""

    data_item_id: str
    signer_address: str
    reserved_winc_amount: MongoWinc
    network_winc_amount: MongoWinc
    balance_winc_amount: MongoWinc
    approval_usages: list[dict[str, Any]] = []
    adjustments: list[dict[str, Any]] = []
    status: ReservationStatus = "reserved"

    WINC_FIELDS: ClassVar[tuple[str, ...]] = (
        "reserved_winc_amount",
        "network_winc_amount",
        "balance_winc_amount",
    )

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationDocument":
        return cls(
            data_item_id=reservation.data_item_id,
            signer_address=reservation.signer_address,
            reserved_winc_amount=int(reservation.reserved_winc_amount),
            network_winc_amount=int(reservation.network_winc_amount),
            balance_winc_amount=int(reservation.balance_winc_amount),
            approval_usages=[
                usage.model_dump(mode="json") for usage in reservation.approval_usages
            ],
            adjustments=[
                adjustment.model_dump(mode="json")
                for adjustment in reservation.adjustments
            ],
            status=reservation.status,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )

    def to_domain(self) -> Reservation:
        return Reservation(
            data_item_id=self.data_item_id,
            signer_address=self.signer_address,
            reserved_winc_amount=Winc(self.reserved_winc_amount),
            network_winc_amount=Winc(self.network_winc_amount),
            balance_winc_amount=Winc(self.balance_winc_amount),
            approval_usages=[
                ApprovalUsage.model_validate(raw) for raw in self.approval_usages
            ],
            adjustments=[
                AppliedAdjustment.model_validate(raw) for raw in self.adjustments
            ],
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class PaymentReceiptDocument(BaseDocument):
    """MongoDB payment_receipts 컬렉션 도큐먼트 모델."""

    payment_receipt_id: str
    address: str
    currency: str
    payment_amount: int
    quoted_payment_amount: int
    winc_amount: MongoWinc
    excess_winc: MongoWinc = 0
    promo_codes: list[str] = []

    WINC_FIELDS: ClassVar[tuple[str, ...]] = ("winc_amount", "excess_winc")

    @classmethod
    def from_domain(cls, receipt: PaymentReceipt) -> "PaymentReceiptDocument":
        return cls(
            payment_receipt_id=receipt.payment_receipt_id,
            address=receipt.address,
            currency=receipt.currency,
            payment_amount=receipt.payment_amount,
            quoted_payment_amount=receipt.quoted_payment_amount,
            winc_amount=int(receipt.winc_amount),
            excess_winc=int(receipt.excess_winc),
            promo_codes=list(receipt.promo_codes),
            created_at=receipt.created_at,
            updated_at=receipt.created_at,
        )

    def to_domain(self) -> PaymentReceipt:
        return PaymentReceipt(
            payment_receipt_id=self.payment_receipt_id,
            address=self.address,
            currency=self.currency,
            payment_amount=self.payment_amount,
            quoted_payment_amount=self.quoted_payment_amount,
            winc_amount=Winc(self.winc_amount),
            excess_winc=Winc(self.excess_winc),
            promo_codes=self.promo_codes,
            created_at=self.created_at,
        )
