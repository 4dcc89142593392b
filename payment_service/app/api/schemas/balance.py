from __future__ import annotations

from datetime import datetime

from pydantic import Field

from ...models.ledger import Balance, BalanceCheck, DelegatedApproval, Reservation
from .common import AdjustmentResponse, CamelModel, adjustments_to_response


class ApprovalResponse(CamelModel):
    approval_data_item_id: str
    paying_address: str
    approved_address: str
    approved_winc_amount: str
    used_winc_amount: str
    expiration_date: datetime | None = None
    scope_data_item_id: str | None = None
    status: str
    creation_date: datetime

    @classmethod
    def from_domain(cls, approval: DelegatedApproval) -> "ApprovalResponse":
        return cls(
            approval_data_item_id=approval.approval_id,
            paying_address=approval.paying_address,
            approved_address=approval.approved_address,
            approved_winc_amount=str(approval.approved_winc_amount),
            used_winc_amount=str(approval.used_winc_amount),
            expiration_date=approval.expiration_date,
            scope_data_item_id=approval.scope_data_item_id,
            status=approval.status,
            creation_date=approval.created_at,
        )


class BalanceResponse(CamelModel):
    winc: str
    # 하위 호환용 필드 (winc 와 같은 값)
    balance: str
    controlled_winc: str
    effective_balance: str
    reserved_winc: str
    given_approvals: list[ApprovalResponse] = Field(default_factory=list)
    received_approvals: list[ApprovalResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, balance: Balance) -> "BalanceResponse":
        # 준 승인 중 아직 쓰이지 않은 금액도 지불자가 통제하는 금액이다.
        controlled = balance.winc
        for approval in balance.given_approvals:
            controlled = controlled.plus(approval.remaining_winc_amount)
        return cls(
            winc=str(balance.winc),
            balance=str(balance.winc),
            controlled_winc=str(controlled),
            effective_balance=str(balance.effective_balance),
            reserved_winc=str(balance.reserved_winc),
            given_approvals=[ApprovalResponse.from_domain(a) for a in balance.given_approvals],
            received_approvals=[
                ApprovalResponse.from_domain(a) for a in balance.received_approvals
            ],
        )


class CheckBalanceResponse(CamelModel):
    user_has_sufficient_balance: bool
    bytes_cost_in_winc: str
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, check: BalanceCheck) -> "CheckBalanceResponse":
        return cls(
            user_has_sufficient_balance=check.user_has_sufficient_balance,
            bytes_cost_in_winc=str(check.price),
            adjustments=adjustments_to_response(check.adjustments),
        )


class ReservationResponse(CamelModel):
    data_item_id: str
    winc: str
    status: str
    payers: list[str]
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationResponse":
        return cls(
            data_item_id=reservation.data_item_id,
            winc=str(reservation.reserved_winc_amount),
            status=reservation.status,
            payers=reservation.payers,
            adjustments=adjustments_to_response(reservation.adjustments),
        )
