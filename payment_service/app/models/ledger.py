"""크레딧 원장 도메인 모델.

- User.winc 는 바로 쓸 수 있는 잔액이다. 위임 승인을 만들면 승인 금액만큼 지불자 잔액에서 빠져나간다.
- 승인 회수/만료 시 쓰지 않은 금액은 지불자 잔액으로 돌아간다.
- 예약(Reservation)은 업로드 요청마다 잔액/승인에서 원자적으로 차감한 기록이며, 환불하거나 확정한다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .adjustment import AppliedAdjustment
from .winc import Winc


ApprovalStatus = Literal["active", "revoked", "expired"]
ReservationStatus = Literal["reserved", "finalized", "refunded"]


class User(BaseModel):
    address: str
    winc: Winc
    created_at: datetime
    updated_at: datetime


class DelegatedApproval(BaseModel):
    approval_id: str
    paying_address: str
    approved_address: str
    approved_winc_amount: Winc
    used_winc_amount: Winc = Winc(0)
    expiration_date: datetime | None = None
    # 설정되어 있으면 해당 데이터 아이템 예약 한 건에만 쓸 수 있는 일회성 승인이다.
    scope_data_item_id: str | None = None
    status: ApprovalStatus = "active"
    created_at: datetime
    updated_at: datetime

    @property
    def remaining_winc_amount(self) -> Winc:
        return self.approved_winc_amount.minus(self.used_winc_amount)

    def is_expired(self, now: datetime) -> bool:
        return self.expiration_date is not None and now >= self.expiration_date

    def is_usable(self, now: datetime) -> bool:
        """회수/만료되지 않았고 남은 금액이 있는 승인인지 여부."""
        return (
            self.status == "active"
            and not self.is_expired(now)
            and not self.remaining_winc_amount.is_zero()
        )


class ApprovalUsage(BaseModel):
    approval_id: str
    paying_address: str
    winc: Winc


class Reservation(BaseModel):
    data_item_id: str
    signer_address: str
    reserved_winc_amount: Winc
    network_winc_amount: Winc
    # 서명자 본인 잔액에서 차감된 금액
    balance_winc_amount: Winc
    approval_usages: list[ApprovalUsage] = Field(default_factory=list)
    adjustments: list[AppliedAdjustment] = Field(default_factory=list)
    status: ReservationStatus = "reserved"
    created_at: datetime
    updated_at: datetime

    @property
    def payers(self) -> list[str]:
        """실제로 비용을 낸 주소 목록 (위임 지불자 순서 유지, 본인 잔액 사용 시 서명자 포함)."""
        payers: list[str] = []
        for usage in self.approval_usages:
            if usage.paying_address not in payers:
                payers.append(usage.paying_address)
        if not self.balance_winc_amount.is_zero() and self.signer_address not in payers:
            payers.append(self.signer_address)
        return payers


class Balance(BaseModel):
    address: str
    winc: Winc
    # 아직 확정/환불되지 않은 예약 합계
    reserved_winc: Winc
    # winc + 받은 승인 중 사용 가능한 잔여 금액 합계
    effective_balance: Winc
    given_approvals: list[DelegatedApproval] = Field(default_factory=list)
    received_approvals: list[DelegatedApproval] = Field(default_factory=list)


class PaymentReceipt(BaseModel):
    """카드 결제 완료 후 적립 기록. payment_receipt_id 당 한 번만 적립된다."""

    payment_receipt_id: str
    address: str
    currency: str
    payment_amount: int
    quoted_payment_amount: int
    winc_amount: Winc
    excess_winc: Winc = Winc(0)
    promo_codes: list[str] = Field(default_factory=list)
    created_at: datetime


class BalanceCheck(BaseModel):
    """예약 없이 잔액이 충분한지만 확인한 결과."""

    address: str
    byte_count: int
    user_has_sufficient_balance: bool
    price: Winc
    adjustments: list[AppliedAdjustment] = Field(default_factory=list)
    # 부족할 때 사유 (insufficient_balance, user_not_found)
    reason: str | None = None
