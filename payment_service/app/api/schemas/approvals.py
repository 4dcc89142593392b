from __future__ import annotations

from pydantic import Field

from ...models.ledger import DelegatedApproval
from .balance import ApprovalResponse
from .common import CamelModel


class CreateApprovalRequest(CamelModel):
    paying_address: str
    approved_address: str
    winc: str
    approval_data_item_id: str | None = None
    expires_in_seconds: int | None = Field(default=None, gt=0)
    scope_data_item_id: str | None = None


class RevokeApprovalsRequest(CamelModel):
    paying_address: str
    approved_address: str
    # 특정 승인만 회수할 때 지정한다.
    revoke_data_item_id: str | None = None


class GetApprovalsResponse(CamelModel):
    approvals: list[ApprovalResponse]
    # 하위 호환: 남은 승인 금액 합계와 가장 이른 만료 시각 (epoch ms)
    amount: str
    expires_by: int | None = None

    @classmethod
    def from_domain(cls, approvals: list[DelegatedApproval]) -> "GetApprovalsResponse":
        total = 0
        for approval in approvals:
            total += approval.remaining_winc_amount
        expirations = [a.expiration_date for a in approvals if a.expiration_date]
        return cls(
            approvals=[ApprovalResponse.from_domain(a) for a in approvals],
            amount=str(total),
            expires_by=(
                int(min(expirations).timestamp() * 1000) if expirations else None
            ),
        )


class AllApprovalsResponse(CamelModel):
    given_approvals: list[ApprovalResponse]
    received_approvals: list[ApprovalResponse]
