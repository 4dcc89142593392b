"""가격 조정 적용 엔진 (순수 함수).

조정은 priority 오름차순으로 엄격히 순서대로 적용한다. 각 할인은 원가가 아니라
직전 단계까지 할인된 누적 금액에 복리로 적용되므로 순서가 결과를 바꾼다.

operator 의미:
- add: magnitude 를 고정 금액으로 더한다. (음수면 할인)
- multiply: 누적 금액 * magnitude 를 뺀다. magnitude 는 최종 배율이 아니라 할인 비율이다. (음수면 할증)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence, TypeVar

from ..models.adjustment import (
    AppliedAdjustment,
    InclusiveAdjustment,
    PromoCodeAdjustment,
)
from ..models.price import FinalPrice, NetworkPrice
from ..models.winc import Winc


AdjustmentT = TypeVar("AdjustmentT", InclusiveAdjustment, PromoCodeAdjustment)


def sort_by_priority(adjustments: Sequence[AdjustmentT]) -> list[AdjustmentT]:
    """priority 오름차순. 같은 priority 는 입력 순서를 유지한다."""

    return sorted(adjustments, key=lambda adjustment: adjustment.priority)


def adjustment_amount(
    adjustment: InclusiveAdjustment | PromoCodeAdjustment, running_total: int
) -> int:
    """누적 금액에 대한 조정 금액(부호 있음). 곱셈 결과는 내림한다."""

    if adjustment.operator == "add":
        return int(adjustment.magnitude)

    base = Winc(max(running_total, 0))
    if adjustment.magnitude >= 0:
        return -int(base.times(adjustment.magnitude))
    return int(base.times(-adjustment.magnitude))


def apply_upload_adjustments(
    network_price: NetworkPrice,
    adjustments: Sequence[InclusiveAdjustment | PromoCodeAdjustment],
    *,
    byte_count: int,
) -> tuple[FinalPrice, list[AppliedAdjustment]]:
    """업로드 원가에 조정을 순서대로 접어 최종 가격과 감사 기록을 만든다.

    - threshold 가 있으면 요청 바이트 수 또는 현재 누적 winc 와 비교해 충족하지 않으면 건너뛴다.
    - 배타적(exclusive) 조정은 조건을 만족한 첫 번째 하나만 적용한다.
    - 최종 가격은 0 미만이 되지 않는다.
    """

    subtotal = network_price.to_subtotal()
    applied: list[AppliedAdjustment] = []
    exclusive_applied = False

    for adjustment in sort_by_priority(list(adjustments)):
        if adjustment.threshold is not None and not adjustment.threshold.is_met(
            byte_count=byte_count, running_winc=subtotal.winc
        ):
            continue
        if isinstance(adjustment, PromoCodeAdjustment):
            if exclusive_applied:
                continue
            exclusive_applied = True

        amount = adjustment_amount(adjustment, subtotal.winc)
        subtotal = subtotal.add(amount)
        applied.append(AppliedAdjustment.from_catalog(adjustment, amount))

    return subtotal.to_final(), applied


def apply_promo_code_to_payment(
    amount: int, currency: str, promo: PromoCodeAdjustment
) -> tuple[int, AppliedAdjustment]:
    """프로모션 코드를 법정화폐 결제 금액에 적용한다.

    multiply 할인은 max_discount_amount 를 넘지 않고, 결과 금액은 0 미만이 되지 않는다.
    """

    if promo.operator == "multiply":
        discount = int(Winc(amount).times(max(promo.magnitude, 0)))
        if promo.max_discount_amount is not None:
            discount = min(discount, promo.max_discount_amount)
        discount = min(discount, amount)
        actual = amount - discount
    else:
        actual = max(amount + int(promo.magnitude), 0)

    return actual, AppliedAdjustment.from_catalog(
        promo, actual - amount, currency=currency
    )


def apply_inclusive_fees(
    base: Winc, adjustments: Sequence[InclusiveAdjustment]
) -> tuple[Winc, list[AppliedAdjustment]]:
    """상시 수수료를 크레딧 소계에 적용한다. (winc 단위)"""

    running = int(base)
    applied: list[AppliedAdjustment] = []
    for adjustment in sort_by_priority(list(adjustments)):
        amount = adjustment_amount(adjustment, running)
        running += amount
        applied.append(AppliedAdjustment.from_catalog(adjustment, amount))
    return Winc(max(running, 0)), applied


def invert_inclusive_fees(
    net: Winc, adjustments: Sequence[InclusiveAdjustment]
) -> tuple[Winc, list[AppliedAdjustment]]:
    """수수료를 빼는 대신 얹는다. 결과에 apply_inclusive_fees 를 적용하면 net 이상이 된다.

    multiply 수수료 f 는 ceil(net / (1 - f)), add 수수료 m 은 net - m 으로 역산하며
    적용 순서의 역순으로 되돌린다.
    """

    running = net
    applied: list[AppliedAdjustment] = []
    for adjustment in reversed(sort_by_priority(list(adjustments))):
        if adjustment.operator == "multiply":
            gross = running.divided_by(Decimal(1) - Decimal(str(adjustment.magnitude)))
        else:
            gross = Winc(max(int(running) - int(adjustment.magnitude), 0))
        applied.append(
            AppliedAdjustment.from_catalog(adjustment, int(gross) - int(running))
        )
        running = gross
    applied.reverse()
    return running, applied
