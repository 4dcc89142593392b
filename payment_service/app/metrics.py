"""프로세스 내 카운터 모음.

전역 레지스트리 대신 앱 생성 시 MetricsContext 를 하나 만들어 필요한 컴포넌트에 주입한다.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field


@dataclass(slots=True)
class LabeledCounter:
    name: str
    values: Counter[str] = field(default_factory=Counter)

    def inc(self, label: str = "", amount: int = 1) -> None:
        self.values[label] += amount

    def get(self, label: str = "") -> int:
        return self.values[label]

    def total(self) -> int:
        return sum(self.values.values())


@dataclass(slots=True)
class MetricsContext:
    cache_hits: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("cache_hits")
    )
    cache_misses: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("cache_misses")
    )
    cache_fetch_errors: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("cache_fetch_errors")
    )
    oracle_request_failures: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("oracle_request_failures")
    )
    reservations: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("reservations")
    )
    crypto_payments: LabeledCounter = field(
        default_factory=lambda: LabeledCounter("crypto_payments")
    )

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {
            counter.name: dict(counter.values)
            for counter in (
                self.cache_hits,
                self.cache_misses,
                self.cache_fetch_errors,
                self.oracle_request_failures,
                self.reservations,
                self.crypto_payments,
            )
        }
