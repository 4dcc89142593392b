"""공통 스키마 정의.

기존 클라이언트와의 호환을 위해 응답 필드는 camelCase (winc, finalPrice, quotedPaymentAmount 등) 로 직렬화한다.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ...models.adjustment import AppliedAdjustment


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdjustmentResponse(CamelModel):
    catalog_id: str
    name: str
    description: str
    operator: str
    operator_magnitude: float
    adjustment_amount: str
    currency_type: str | None = None
    promo_code: str | None = None

    @classmethod
    def from_domain(cls, adjustment: AppliedAdjustment) -> "AdjustmentResponse":
        return cls(
            catalog_id=adjustment.catalog_id,
            name=adjustment.name,
            description=adjustment.description,
            operator=adjustment.operator,
            operator_magnitude=adjustment.magnitude,
            adjustment_amount=str(adjustment.adjustment_amount),
            currency_type=adjustment.currency,
            promo_code=adjustment.promo_code,
        )


def adjustments_to_response(
    adjustments: list[AppliedAdjustment],
) -> list[AdjustmentResponse]:
    return [AdjustmentResponse.from_domain(adjustment) for adjustment in adjustments]
