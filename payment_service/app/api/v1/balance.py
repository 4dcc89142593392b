"""잔액 조회/예약/환불 API 라우터.

업로드 서비스가 호출하는 내부 API 다.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ...services.ledger_service import LedgerService
from ..dependencies import get_ledger_service
from ..schemas.balance import BalanceResponse, CheckBalanceResponse, ReservationResponse


router = APIRouter(tags=["balance"])


@router.get("/account/balance", response_model=BalanceResponse, summary="잔액 조회")
async def get_balance(
    address: Annotated[str, Query(min_length=1)],
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
) -> BalanceResponse:
    balance = await ledger.get_balance(address)
    return BalanceResponse.from_domain(balance)


@router.get(
    "/check-balance/{signer_address}",
    response_model=CheckBalanceResponse,
    summary="예약 없이 잔액 충분 여부 확인",
    responses={402: {"model": CheckBalanceResponse}, 404: {"model": CheckBalanceResponse}},
)
async def check_balance(
    signer_address: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    byte_count: Annotated[int, Query(alias="byteCount", ge=0)],
    paid_by: Annotated[list[str], Query(alias="paidBy")] = [],  # noqa: B006
) -> JSONResponse:
    check = await ledger.check_balance(signer_address, byte_count, paid_by)
    status_code = 200
    if check.reason == "user_not_found":
        status_code = 404
    elif not check.user_has_sufficient_balance:
        status_code = 402
    return JSONResponse(
        status_code=status_code,
        content=CheckBalanceResponse.from_domain(check).model_dump(
            mode="json", by_alias=True
        ),
    )


@router.get(
    "/reserve-balance/{signer_address}",
    response_model=ReservationResponse,
    summary="업로드 비용 예약",
)
async def reserve_balance(
    signer_address: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    byte_count: Annotated[int, Query(alias="byteCount", ge=0)],
    data_item_id: Annotated[str, Query(alias="dataItemId", min_length=1)],
    paid_by: Annotated[list[str], Query(alias="paidBy")] = [],  # noqa: B006
) -> ReservationResponse:
    reservation = await ledger.reserve_balance(
        signer_address, byte_count, data_item_id, paid_by
    )
    return ReservationResponse.from_domain(reservation)


@router.get(
    "/refund-balance/{signer_address}",
    response_model=ReservationResponse,
    summary="예약 환불",
)
async def refund_balance(
    signer_address: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    data_item_id: Annotated[str, Query(alias="dataItemId", min_length=1)],
) -> ReservationResponse:
    reservation = await ledger.refund_balance(data_item_id, signer_address)
    return ReservationResponse.from_domain(reservation)


@router.get(
    "/finalize-balance/{signer_address}",
    response_model=ReservationResponse,
    summary="예약 확정",
)
async def finalize_balance(
    signer_address: str,
    ledger: Annotated[LedgerService, Depends(get_ledger_service)],
    data_item_id: Annotated[str, Query(alias="dataItemId", min_length=1)],
) -> ReservationResponse:
    reservation = await ledger.finalize_reservation(data_item_id, signer_address)
    return ReservationResponse.from_domain(reservation)
