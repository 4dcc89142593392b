"""위임 승인 API 라우터."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...models.winc import Winc
from ...services.ledger_service import LedgerService
from ..dependencies import get_ledger_service
from ..schemas.approvals import (
    AllApprovalsResponse,
    CreateApprovalRequest,
    GetApprovalsResponse,
    RevokeApprovalsRequest,
)
from ..schemas.balance import ApprovalResponse


router = APIRouter(prefix="/account/approvals", tags=["approvals"])


@router.get("", response_model=GetApprovalsResponse, summary="지불자 -> 승인 대상 승인 조회")
async def get_approvals(
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    paying_address: Annotated[str, Query(alias="payingAddress", min_length=1)],
    approved_address: Annotated[str, Query(alias="approvedAddress", min_length=1)],
) -> GetApprovalsResponse:
    approvals = await ledger.get_approvals(paying_address, approved_address)
    return GetApprovalsResponse.from_domain(approvals)


@router.get("/get", response_model=AllApprovalsResponse, summary="주소의 준/받은 승인 전체 조회")
async def get_all_approvals(
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    user_address: Annotated[str, Query(alias="userAddress", min_length=1)],
) -> AllApprovalsResponse:
    given, received = await ledger.get_all_approvals(user_address)
    return AllApprovalsResponse(
        given_approvals=[ApprovalResponse.from_domain(a) for a in given],
        received_approvals=[ApprovalResponse.from_domain(a) for a in received],
    )


@router.post("/create", response_model=ApprovalResponse, summary="위임 승인 생성")
async def create_approval(
    req: CreateApprovalRequest,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> ApprovalResponse:
    approval = await ledger.create_approval(
        req.paying_address,
        req.approved_address,
        Winc(req.winc),
        approval_id=req.approval_data_item_id,
        expires_in_seconds=req.expires_in_seconds,
        scope_data_item_id=req.scope_data_item_id,
    )
    return ApprovalResponse.from_domain(approval)


@router.post("/revoke", response_model=list[ApprovalResponse], summary="위임 승인 회수")
async def revoke_approvals(
    req: RevokeApprovalsRequest,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> list[ApprovalResponse]:
    revoked = await ledger.revoke_approvals(
        req.paying_address, req.approved_address, req.revoke_data_item_id
    )
    return [ApprovalResponse.from_domain(a) for a in revoked]
