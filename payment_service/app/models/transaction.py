"""온체인 결제 트랜잭션 도메인 모델.

상태 전이는 pending -> credited 또는 pending -> failed 뿐이며, credited/failed 는 종료 상태다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from .winc import Winc


PaymentTransactionStatus = Literal["pending", "credited", "failed"]


class PaymentTransaction(BaseModel):
    transaction_id: str
    token: str
    # 토큰 최소 단위 수량 (wei, lamports 등)
    transaction_quantity: int
    sender_address: str
    destination_address: str
    # 제출 시점에 고정된 적립 금액
    winc_amount: Winc
    status: PaymentTransactionStatus
    block_height: int | None = None
    failed_reason: str | None = None
    usd_equivalent: float | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in ("credited", "failed")
