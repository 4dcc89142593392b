"""예약/환불 차감 계획을 세우는 순수 함수.

저장소 구현은 트랜잭션(또는 잠금) 안에서 최신 잔액/승인을 읽고 이 함수로 계획을 세운 뒤,
계획 전체를 한 단위로 반영한다. 계획 단계에서 실패하면 아무것도 반영되지 않는다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..exceptions import ConflictingApprovalFoundError, InsufficientBalanceError
from ..models.ledger import ApprovalUsage, DelegatedApproval, Reservation
from ..models.winc import Winc


@dataclass(slots=True)
class ReservationPlan:
    # 서명자 본인 잔액에서 차감할 금액
    balance_winc: Winc
    approval_usages: list[ApprovalUsage] = field(default_factory=list)

    @property
    def total_winc(self) -> Winc:
        total = self.balance_winc
        for usage in self.approval_usages:
            total = total.plus(usage.winc)
        return total


@dataclass(slots=True)
class RefundPlan:
    # 주소별로 잔액에 되돌려 줄 금액
    balance_credits: dict[str, Winc] = field(default_factory=dict)
    # 승인별로 used_winc_amount 에서 되돌릴 금액
    approval_restores: dict[str, Winc] = field(default_factory=dict)

    def add_balance_credit(self, address: str, winc: Winc) -> None:
        if winc.is_zero():
            return
        self.balance_credits[address] = self.balance_credits.get(address, Winc(0)).plus(
            winc
        )


def _dedupe(addresses: list[str]) -> list[str]:
    seen: list[str] = []
    for address in addresses:
        if address not in seen:
            seen.append(address)
    return seen


def _approval_sort_key(approval: DelegatedApproval) -> tuple[int, float, float]:
    # 만료가 임박한 승인부터 소진한다. 만료가 없는 승인은 마지막.
    if approval.expiration_date is None:
        return (1, 0.0, approval.created_at.timestamp())
    return (0, approval.expiration_date.timestamp(), approval.created_at.timestamp())


def usable_approvals_from_payer(
    approvals: list[DelegatedApproval],
    *,
    paying_address: str,
    signer_address: str,
    data_item_id: str,
    now: datetime,
) -> list[DelegatedApproval]:
    """payer 가 signer 에게 준 승인 중 이번 데이터 아이템에 쓸 수 있는 것들을 소진 순서대로 반환한다.

    다른 데이터 아이템으로 범위가 지정된 승인은 건너뛴다. 이번 데이터 아이템 전용 승인이 이미
    사용되었다면 재시도가 아니라 충돌이므로 ConflictingApprovalFoundError 를 던진다.
    """

    usable: list[DelegatedApproval] = []
    for approval in approvals:
        if (
            approval.paying_address != paying_address
            or approval.approved_address != signer_address
        ):
            continue
        if approval.scope_data_item_id is not None:
            if approval.scope_data_item_id != data_item_id:
                continue
            if not approval.used_winc_amount.is_zero():
                raise ConflictingApprovalFoundError(approval.approval_id, data_item_id)
        if approval.is_usable(now):
            usable.append(approval)
    return sorted(usable, key=_approval_sort_key)


def plan_reservation(
    *,
    signer_address: str,
    data_item_id: str,
    required: Winc,
    payers: list[str],
    signer_balance: Winc,
    approvals: list[DelegatedApproval],
    now: datetime,
) -> ReservationPlan:
    """필요 금액을 위임 지불자 순서대로 승인에서 차감하고, 남은 금액은 서명자 잔액에서 차감한다.

    모든 출처를 소진해도 금액이 남으면 InsufficientBalanceError. 부분 예약은 없다.
    """

    remaining = required
    usages: list[ApprovalUsage] = []

    for payer in _dedupe(payers):
        if remaining.is_zero():
            break
        if payer == signer_address:
            continue
        for approval in usable_approvals_from_payer(
            approvals,
            paying_address=payer,
            signer_address=signer_address,
            data_item_id=data_item_id,
            now=now,
        ):
            if remaining.is_zero():
                break
            take = Winc(min(remaining, approval.remaining_winc_amount))
            usages.append(
                ApprovalUsage(
                    approval_id=approval.approval_id,
                    paying_address=payer,
                    winc=take,
                )
            )
            remaining = remaining.minus(take)

    balance_take = Winc(min(remaining, signer_balance))
    remaining = remaining.minus(balance_take)

    if not remaining.is_zero():
        raise InsufficientBalanceError(signer_address, required)

    return ReservationPlan(balance_winc=balance_take, approval_usages=usages)


def plan_refund(
    reservation: Reservation,
    approvals_by_id: dict[str, DelegatedApproval],
) -> RefundPlan:
    """예약을 되돌리는 계획.

    사용한 승인이 아직 active 면 사용량을 되돌리고, 그사이 회수/만료되었다면
    (남은 금액은 이미 지불자에게 돌아갔으므로) 해당 금액을 지불자 잔액으로 적립한다.
    """

    plan = RefundPlan()
    plan.add_balance_credit(reservation.signer_address, reservation.balance_winc_amount)

    for usage in reservation.approval_usages:
        approval = approvals_by_id.get(usage.approval_id)
        if approval is not None and approval.status == "active":
            plan.approval_restores[usage.approval_id] = plan.approval_restores.get(
                usage.approval_id, Winc(0)
            ).plus(usage.winc)
        else:
            plan.add_balance_credit(usage.paying_address, usage.winc)
    return plan


def plan_revocation(
    approvals: list[DelegatedApproval], *, approval_id: str | None
) -> RefundPlan:
    """승인 회수/만료 시 지불자에게 돌려줄 잔여 금액 계획.

    특정 승인만 회수하는데 그 승인이 일회성이고 이미 예약에 사용되었다면
    조용히 성공시키지 않고 ConflictingApprovalFoundError 를 던진다.
    """

    plan = RefundPlan()
    for approval in approvals:
        if (
            approval_id is not None
            and approval.scope_data_item_id is not None
            and not approval.used_winc_amount.is_zero()
        ):
            raise ConflictingApprovalFoundError(
                approval.approval_id, approval.scope_data_item_id
            )
        plan.add_balance_credit(approval.paying_address, approval.remaining_winc_amount)
    return plan


def effective_balance(
    winc: Winc, received_approvals: list[DelegatedApproval], now: datetime
) -> Winc:
    """본인 잔액 + 받은 승인 중 사용 가능한 잔여 금액 합계."""

    total = winc
    for approval in received_approvals:
        if approval.is_usable(now):
            total = total.plus(approval.remaining_winc_amount)
    return total
