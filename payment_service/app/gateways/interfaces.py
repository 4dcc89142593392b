from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Protocol


TransactionStatusKind = Literal["pending", "confirmed", "not_found"]


@dataclass(frozen=True, slots=True)
class TransactionStatus:
    status: TransactionStatusKind
    block_height: int | None = None


@dataclass(frozen=True, slots=True)
class TransactionInfo:
    sender_address: str
    recipient_address: str
    # 토큰 최소 단위 수량
    quantity: int


class TransactionGatewayInterface(Protocol):
    """체인별 트랜잭션 조회 계약. 토큰마다 하나씩 등록한다."""

    async def get_transaction_status(
        self, transaction_id: str
    ) -> TransactionStatus:  # pragma: no cover - Protocol
        ...

    async def get_transaction(
        self, transaction_id: str
    ) -> TransactionInfo | None:  # pragma: no cover - Protocol
        """트랜잭션이 아직 조회되지 않으면 None."""
        ...


GatewayMap = Mapping[str, TransactionGatewayInterface]
