"""가격 3단계 값 객체.

NetworkPrice(오라클 원가) -> SubtotalPrice(조정 반영, 부호 있음) -> FinalPrice(0 이상으로 고정).
각 단계는 불변이며 전이는 새 객체를 반환하는 순수 함수다.
"""

from __future__ import annotations

from dataclasses import dataclass

from .winc import Winc


@dataclass(frozen=True, slots=True)
class NetworkPrice:
    winc: Winc

    def to_subtotal(self) -> "SubtotalPrice":
        return SubtotalPrice(int(self.winc))


@dataclass(frozen=True, slots=True)
class SubtotalPrice:
    # 할인 누적 중에는 음수가 될 수 있다.
    winc: int

    def add(self, amount: int) -> "SubtotalPrice":
        return SubtotalPrice(self.winc + amount)

    def to_final(self) -> "FinalPrice":
        return FinalPrice(Winc(max(self.winc, 0)))


@dataclass(frozen=True, slots=True)
class FinalPrice:
    winc: Winc
