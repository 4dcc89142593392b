"""가격 조정(할인/수수료/프로모션 코드) 도메인 모델.

카탈로그 조정은 exclusivity 로 구분되는 닫힌 변형이다.
- InclusiveAdjustment: 항상 적용되는 상시 조정 (예: 인프라 수수료, 업로드 보조금)
- PromoCodeAdjustment: 코드로 적용되는 배타적 할인. 한 요청에 하나만 적용된다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


AdjustmentOperator = Literal["add", "multiply"]


class AdjustmentThreshold(BaseModel):
    """조정 적용 조건. unit 기준 값이 comparator 로 value 와 비교된다."""

    model_config = ConfigDict(frozen=True)

    unit: Literal["bytes", "credits"]
    comparator: Literal["less_than", "greater_than"]
    value: int

    def is_met(self, *, byte_count: int, running_winc: int) -> bool:
        subject = byte_count if self.unit == "bytes" else running_winc
        match self.comparator:
            case "less_than":
                return subject < self.value
            case "greater_than":
                return subject > self.value


class _CatalogAdjustmentBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    catalog_id: str
    name: str
    description: str = ""
    operator: AdjustmentOperator
    # multiply: 할인 비율 (0.2 = 20% 할인, 음수면 할증). add: 더할 고정 금액 (음수면 할인)
    magnitude: float
    priority: int = 0
    start_date: datetime
    end_date: datetime | None = None
    threshold: AdjustmentThreshold | None = None
    target_user_group: str | None = None

    def is_active(self, now: datetime) -> bool:
        if now < self.start_date:
            return False
        return self.end_date is None or now < self.end_date


class InclusiveAdjustment(_CatalogAdjustmentBase):
    exclusivity: Literal["inclusive"] = "inclusive"


class PromoCodeAdjustment(_CatalogAdjustmentBase):
    exclusivity: Literal["exclusive"] = "exclusive"
    code: str
    # multiply 할인의 최대 할인 금액 (결제 통화 최소 단위)
    max_discount_amount: int | None = None
    minimum_payment_amount: int | None = None
    max_uses: int | None = None
    uses: int = 0

    def has_uses_left(self) -> bool:
        return self.max_uses is None or self.uses < self.max_uses


CatalogAdjustment = Annotated[
    Union[InclusiveAdjustment, PromoCodeAdjustment],
    Field(discriminator="exclusivity"),
]


class AppliedAdjustment(BaseModel):
    """가격 계산에 실제로 적용된 조정의 감사 기록."""

    model_config = ConfigDict(frozen=True)

    catalog_id: str
    name: str
    description: str
    operator: AdjustmentOperator
    magnitude: float
    # 할인이면 음수. currency 가 None 이면 winc 단위, 아니면 해당 통화 최소 단위.
    adjustment_amount: int
    currency: str | None = None
    promo_code: str | None = None

    @classmethod
    def from_catalog(
        cls,
        adjustment: InclusiveAdjustment | PromoCodeAdjustment,
        adjustment_amount: int,
        *,
        currency: str | None = None,
    ) -> "AppliedAdjustment":
        return cls(
            catalog_id=adjustment.catalog_id,
            name=adjustment.name,
            description=adjustment.description,
            operator=adjustment.operator,
            magnitude=adjustment.magnitude,
            adjustment_amount=adjustment_amount,
            currency=currency,
            promo_code=(
                adjustment.code if isinstance(adjustment, PromoCodeAdjustment) else None
            ),
        )
