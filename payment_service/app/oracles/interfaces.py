from __future__ import annotations

from typing import Protocol

from ..models.winc import Winc


class BytesToCreditOracleInterface(Protocol):
    """청크 크기(바이트)에 대한 기준 크레딧(winc) 비용을 조회한다."""

    async def get_credits_for_bytes(
        self, chunk_size: int
    ) -> Winc:  # pragma: no cover - Protocol
        ...


class FiatToCreditOracleInterface(Protocol):
    """지원하는 모든 통화에 대해 1 크레딧의 법정화폐 가격을 한 번에 조회한다."""

    async def get_rates_for_one_credit_unit(
        self,
    ) -> dict[str, float]:  # pragma: no cover - Protocol
        ...


class TokenToFiatOracleInterface(Protocol):
    """모든 결제 토큰의 통화별 가격을 한 번에 조회한다. {token: {currency: price}}"""

    async def get_rates_for_all_tokens(
        self,
    ) -> dict[str, dict[str, float]]:  # pragma: no cover - Protocol
        ...
