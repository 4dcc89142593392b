"""온체인 입금 제출 API 라우터."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...services.crypto_payment_service import CryptoPaymentService
from ..dependencies import get_crypto_payment_service
from ..schemas.crypto import SubmitTransactionRequest, SubmitTransactionResponse


router = APIRouter(tags=["crypto"])

# 기록된 트랜잭션 상태 -> 응답 코드
STATUS_CODE_BY_TX_STATUS = {"credited": 200, "pending": 202, "failed": 400}


@router.post(
    "/account/balance/{token}",
    response_model=SubmitTransactionResponse,
    summary="입금 트랜잭션 제출",
    description="이미 제출된 트랜잭션이면 기존 상태를 그대로 반환한다. (적립 200, 대기 202, 실패 400)",
)
async def submit_payment_transaction(
    token: str,
    req: SubmitTransactionRequest,
    crypto: Annotated[CryptoPaymentService, Depends(get_crypto_payment_service)],
) -> JSONResponse:
    submission = await crypto.submit_transaction(token, req.tx_id)
    return JSONResponse(
        status_code=STATUS_CODE_BY_TX_STATUS[submission.transaction.status],
        content=SubmitTransactionResponse.from_domain(submission).model_dump(
            mode="json", by_alias=True
        ),
    )
