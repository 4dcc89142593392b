from __future__ import annotations

import logging
from datetime import datetime

from pymongo.asynchronous.database import AsyncDatabase

from .documents.adjustment_document import AdjustmentCatalogDocument
from .interfaces import AdjustmentCatalogRepositoryInterface
from ..models.adjustment import InclusiveAdjustment, PromoCodeAdjustment


logger = logging.getLogger(__name__)


# 결제 이력이 없는 사용자만 대상으로 하는 그룹
NEW_USERS_GROUP = "new_users"
ALL_USERS_GROUP = "all"


def _active_window_filter(now: datetime) -> dict:
    return {
        "start_date": {"$lte": now},
        "$or": [{"end_date": None}, {"end_date": {"$gt": now}}],
    }


class AdjustmentCatalogRepository(AdjustmentCatalogRepositoryInterface):
    """업로드/결제 조정 카탈로그와 프로모션 코드에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: AsyncDatabase) -> None:
        self._db = database
        self._upload_col = database["upload_adjustment_catalog"]
        self._payment_col = database["payment_adjustment_catalog"]
        self._promo_col = database["promo_codes"]
        self._receipts_col = database["payment_receipts"]

    async def get_active_upload_adjustments(
        self, now: datetime, payer_address: str | None = None
    ) -> list[InclusiveAdjustment | PromoCodeAdjustment]:
        cursor = self._upload_col.find(
            _active_window_filter(now), sort=[("priority", 1), ("_id", 1)]
        )
        adjustments: list[InclusiveAdjustment | PromoCodeAdjustment] = []
        async for raw in cursor:
            adjustment = AdjustmentCatalogDocument.model_validate(raw).to_domain()
            if adjustment.target_user_group is not None:
                # 대상 그룹이 있는 조정은 지불자를 알 때만 적용한다.
                if payer_address is None or not await self.is_user_in_group(
                    payer_address, adjustment.target_user_group
                ):
                    continue
            adjustments.append(adjustment)
        return adjustments

    async def get_active_payment_adjustments(
        self, now: datetime
    ) -> list[InclusiveAdjustment]:
        cursor = self._payment_col.find(
            {**_active_window_filter(now), "exclusivity": {"$ne": "exclusive"}},
            sort=[("priority", 1), ("_id", 1)],
        )
        adjustments: list[InclusiveAdjustment] = []
        async for raw in cursor:
            adjustment = AdjustmentCatalogDocument.model_validate(raw).to_domain()
            if isinstance(adjustment, InclusiveAdjustment):
                adjustments.append(adjustment)
        return adjustments

    async def get_promo_code(self, code: str) -> PromoCodeAdjustment | None:
        raw = await self._promo_col.find_one({"code": code})
        if raw is None:
            return None
        adjustment = AdjustmentCatalogDocument.model_validate(
            {**raw, "exclusivity": "exclusive"}
        ).to_domain()
        assert isinstance(adjustment, PromoCodeAdjustment)
        return adjustment

    async def is_user_in_group(self, address: str, user_group: str) -> bool:
        if user_group == ALL_USERS_GROUP:
            return True
        if user_group == NEW_USERS_GROUP:
            count = await self._receipts_col.count_documents(
                {"address": address}, limit=1
            )
            return count == 0
        logger.warning(
            "unknown target user group %s, treating user as ineligible",
            user_group,
            extra={"address": address},
        )
        return False
