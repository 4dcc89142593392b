from __future__ import annotations

from typing import Any, Literal

from common.mongo.types import BaseDocument, MongoDateTime, OptionalMongoDateTime

from ...models.adjustment import (
    AdjustmentThreshold,
    InclusiveAdjustment,
    PromoCodeAdjustment,
)


class AdjustmentCatalogDocument(BaseDocument):
    """upload_adjustment_catalog / payment_adjustment_catalog / promo_codes 공통 도큐먼트.

    exclusivity 가 exclusive 인 도큐먼트만 code 를 가진다.
    """

    # 관리 도구로 직접 넣는 도큐먼트라 생성/수정 시각이 없을 수 있다.
    created_at: OptionalMongoDateTime = None  # type: ignore[assignment]
    updated_at: OptionalMongoDateTime = None  # type: ignore[assignment]

    name: str
    description: str = ""
    operator: Literal["add", "multiply"]
    magnitude: float
    priority: int = 0
    exclusivity: Literal["inclusive", "exclusive"] = "inclusive"
    start_date: MongoDateTime
    end_date: OptionalMongoDateTime = None
    threshold: dict[str, Any] | None = None
    target_user_group: str | None = None
    code: str | None = None
    max_discount_amount: int | None = None
    minimum_payment_amount: int | None = None
    max_uses: int | None = None
    uses: int = 0

    def to_domain(self) -> InclusiveAdjustment | PromoCodeAdjustment:
        common_fields: dict[str, Any] = {
            "catalog_id": str(self.id),
            "name": self.name,
            "description": self.description,
            "operator": self.operator,
            "magnitude": self.magnitude,
            "priority": self.priority,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "threshold": (
                AdjustmentThreshold.model_validate(self.threshold)
                if self.threshold
                else None
            ),
            "target_user_group": self.target_user_group,
        }
        if self.exclusivity == "exclusive":
            if not self.code:
                raise ValueError(f"exclusive adjustment {self.id} has no promo code")
            return PromoCodeAdjustment(
                **common_fields,
                code=self.code,
                max_discount_amount=self.max_discount_amount,
                minimum_payment_amount=self.minimum_payment_amount,
                max_uses=self.max_uses,
                uses=self.uses,
            )
        return InclusiveAdjustment(**common_fields)
