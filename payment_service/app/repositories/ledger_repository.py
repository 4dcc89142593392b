"""원장 레포지토리 구현체.

예약/환불/승인 생성·회수는 MongoDB 멀티 도큐먼트 트랜잭션 하나로 수행한다.
같은 사용자/승인 도큐먼트를 동시에 갱신하는 트랜잭션은 write conflict 로 재시도되므로
재시도 시 최신 잔액으로 다시 계획을 세운다. (replica set 필요)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from pymongo import ReturnDocument
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError

from common.mongo.types import from_decimal128, to_decimal128

from .documents.ledger_document import (
    ApprovalDocument,
    PaymentReceiptDocument,
    ReservationDocument,
    UserDocument,
)
from .interfaces import LedgerRepositoryInterface
from ..exceptions import (
    BadRequestError,
    InsufficientBalanceError,
    NoApprovalsFoundError,
    ReservationNotFoundError,
    UserNotFoundWarning,
)
from ..models.adjustment import AppliedAdjustment
from ..models.ledger import (
    DelegatedApproval,
    PaymentReceipt,
    Reservation,
    User,
)
from ..models.winc import Winc
from ..services.reservation_planner import (
    RefundPlan,
    plan_refund,
    plan_reservation,
    plan_revocation,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def credit_user_balance(
    users: AsyncCollection,
    address: str,
    winc: Winc,
    now: datetime,
    session: AsyncClientSession | None = None,
) -> dict[str, Any]:
    """사용자 잔액을 원자적으로 증가시킨다. 사용자가 없으면 생성한다."""

    return await users.find_one_and_update(
        {"address": address},
        {
            "$inc": {"winc": to_decimal128(winc)},
            "$set": {"updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
        session=session,
    )


async def debit_user_balance(
    users: AsyncCollection,
    address: str,
    winc: Winc,
    now: datetime,
    session: AsyncClientSession | None = None,
) -> None:
    """잔액이 충분할 때만 차감한다. 부족하면 InsufficientBalanceError."""

    if winc.is_zero():
        return
    result = await users.update_one(
        {"address": address, "winc": {"$gte": to_decimal128(winc)}},
        {"$inc": {"winc": to_decimal128(-int(winc))}, "$set": {"updated_at": now}},
        session=session,
    )
    if result.modified_count != 1:
        raise InsufficientBalanceError(address, winc)


def _duplicate_reservation(data_item_id: str) -> BadRequestError:
    return BadRequestError(
        f"A balance reservation already exists for data item '{data_item_id}'",
        details={"data_item_id": data_item_id},
    )


def _duplicate_approval(approval_id: str) -> BadRequestError:
    return BadRequestError(
        f"An approval with id '{approval_id}' already exists",
        details={"approval_id": approval_id},
    )


class LedgerRepository(LedgerRepositoryInterface):
    """users / delegated_payment_approvals / balance_reservations / payment_receipts 컬렉션 접근 레이어."""

    def __init__(self, database: AsyncDatabase) -> None:
        self._db = database
        self._client = database.client
        self._users = database["users"]
        self._approvals = database["delegated_payment_approvals"]
        self._reservations = database["balance_reservations"]
        self._receipts = database["payment_receipts"]
        self._promo_codes = database["promo_codes"]

    async def _in_transaction(
        self, callback: Callable[[AsyncClientSession], Awaitable[T]]
    ) -> T:
        async with self._client.start_session() as session:
            return await session.with_transaction(callback)

    async def _find_approvals(
        self, query: dict[str, Any], session: AsyncClientSession | None = None
    ) -> list[DelegatedApproval]:
        cursor = self._approvals.find(
            query, sort=[("created_at", 1)], session=session
        )
        return [
            ApprovalDocument.model_validate(raw).to_domain() async for raw in cursor
        ]

    async def _apply_balance_credits(
        self, plan: RefundPlan, now: datetime, session: AsyncClientSession
    ) -> None:
        for address, winc in plan.balance_credits.items():
            await credit_user_balance(self._users, address, winc, now, session)

    async def get_user(self, address: str) -> User | None:
        raw = await self._users.find_one({"address": address})
        if raw is None:
            return None
        return UserDocument.model_validate(raw).to_domain()

    async def credit_balance(self, address: str, winc: Winc) -> User:
        now = datetime.now(timezone.utc)
        raw = await credit_user_balance(self._users, address, winc, now)
        return UserDocument.model_validate(raw).to_domain()

    async def get_approvals_for_signer(
        self, signer_address: str
    ) -> list[DelegatedApproval]:
        return await self._find_approvals(
            {"approved_address": signer_address, "status": "active"}
        )

    async def get_given_approvals(self, paying_address: str) -> list[DelegatedApproval]:
        return await self._find_approvals(
            {"paying_address": paying_address, "status": "active"}
        )

    async def get_approvals(
        self, paying_address: str, approved_address: str
    ) -> list[DelegatedApproval]:
        return await self._find_approvals(
            {
                "paying_address": paying_address,
                "approved_address": approved_address,
                "status": "active",
            }
        )

    async def get_open_reservations_total(self, signer_address: str) -> Winc:
        total = Winc(0)
        cursor = self._reservations.find(
            {"signer_address": signer_address, "status": "reserved"},
            projection={"reserved_winc_amount": 1},
        )
        async for raw in cursor:
            total = total.plus(Winc(from_decimal128(raw["reserved_winc_amount"])))
        return total

    async def reserve_balance_atomic(
        self,
        *,
        signer_address: str,
        data_item_id: str,
        payers: list[str],
        reserved_winc_amount: Winc,
        network_winc_amount: Winc,
        adjustments: list[AppliedAdjustment],
        now: datetime,
    ) -> Reservation:
        async def _reserve(session: AsyncClientSession) -> Reservation:
            # 범위 지정 승인 충돌보다 중복 예약을 먼저 판정한다.
            if await self._reservations.find_one(
                {"data_item_id": data_item_id}, projection={"_id": 1}, session=session
            ):
                raise _duplicate_reservation(data_item_id)
            raw_user = await self._users.find_one(
                {"address": signer_address}, session=session
            )
            signer_balance = (
                Winc(from_decimal128(raw_user["winc"])) if raw_user else Winc(0)
            )
            delegated_payers = [p for p in payers if p != signer_address]
            approvals = (
                await self._find_approvals(
                    {
                        "approved_address": signer_address,
                        "paying_address": {"$in": delegated_payers},
                        "status": "active",
                    },
                    session,
                )
                if delegated_payers
                else []
            )

            plan = plan_reservation(
                signer_address=signer_address,
                data_item_id=data_item_id,
                required=reserved_winc_amount,
                payers=payers,
                signer_balance=signer_balance,
                approvals=approvals,
                now=now,
            )

            await debit_user_balance(
                self._users, signer_address, plan.balance_winc, now, session
            )
            for usage in plan.approval_usages:
                await self._approvals.update_one(
                    {"approval_id": usage.approval_id, "status": "active"},
                    {
                        "$inc": {"used_winc_amount": to_decimal128(usage.winc)},
                        "$set": {"updated_at": now},
                    },
                    session=session,
                )

            reservation = Reservation(
                data_item_id=data_item_id,
                signer_address=signer_address,
                reserved_winc_amount=reserved_winc_amount,
                network_winc_amount=network_winc_amount,
                balance_winc_amount=plan.balance_winc,
                approval_usages=plan.approval_usages,
                adjustments=adjustments,
                status="reserved",
                created_at=now,
                updated_at=now,
            )
            document = ReservationDocument.from_domain(reservation)
            try:
                await self._reservations.insert_one(
                    document.to_mongo_record(winc_fields=document.WINC_FIELDS),
                    session=session,
                )
            except DuplicateKeyError as exc:
                raise _duplicate_reservation(data_item_id) from exc
            return reservation

        return await self._in_transaction(_reserve)

    async def refund_balance(self, data_item_id: str, now: datetime) -> Reservation:
        async def _refund(session: AsyncClientSession) -> Reservation:
            raw = await self._reservations.find_one(
                {"data_item_id": data_item_id}, session=session
            )
            if raw is None:
                raise ReservationNotFoundError(data_item_id)
            reservation = ReservationDocument.model_validate(raw).to_domain()
            if reservation.status == "refunded":
                return reservation
            if reservation.status == "finalized":
                raise BadRequestError(
                    f"Balance reservation for data item '{data_item_id}' is already finalized",
                    details={"data_item_id": data_item_id},
                )

            approval_ids = [usage.approval_id for usage in reservation.approval_usages]
            approvals = (
                await self._find_approvals(
                    {"approval_id": {"$in": approval_ids}}, session
                )
                if approval_ids
                else []
            )
            plan = plan_refund(
                reservation, {approval.approval_id: approval for approval in approvals}
            )

            await self._apply_balance_credits(plan, now, session)
            for approval_id, winc in plan.approval_restores.items():
                await self._approvals.update_one(
                    {"approval_id": approval_id},
                    {
                        "$inc": {"used_winc_amount": to_decimal128(-int(winc))},
                        "$set": {"updated_at": now},
                    },
                    session=session,
                )
            await self._reservations.update_one(
                {"data_item_id": data_item_id, "status": "reserved"},
                {"$set": {"status": "refunded", "updated_at": now}},
                session=session,
            )
            return reservation.model_copy(
                update={"status": "refunded", "updated_at": now}
            )

        return await self._in_transaction(_refund)

    async def finalize_reservation(
        self, data_item_id: str, now: datetime
    ) -> Reservation:
        raw = await self._reservations.find_one_and_update(
            {"data_item_id": data_item_id, "status": "reserved"},
            {"$set": {"status": "finalized", "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is not None:
            return ReservationDocument.model_validate(raw).to_domain()

        existing = await self.get_reservation(data_item_id)
        if existing is None:
            raise ReservationNotFoundError(data_item_id)
        if existing.status == "refunded":
            raise BadRequestError(
                f"Balance reservation for data item '{data_item_id}' was already refunded",
                details={"data_item_id": data_item_id},
            )
        return existing

    async def get_reservation(self, data_item_id: str) -> Reservation | None:
        raw = await self._reservations.find_one({"data_item_id": data_item_id})
        if raw is None:
            return None
        return ReservationDocument.model_validate(raw).to_domain()

    async def create_approval(
        self,
        *,
        approval_id: str,
        paying_address: str,
        approved_address: str,
        approved_winc_amount: Winc,
        expiration_date: datetime | None,
        scope_data_item_id: str | None,
        now: datetime,
    ) -> DelegatedApproval:
        approval = DelegatedApproval(
            approval_id=approval_id,
            paying_address=paying_address,
            approved_address=approved_address,
            approved_winc_amount=approved_winc_amount,
            used_winc_amount=Winc(0),
            expiration_date=expiration_date,
            scope_data_item_id=scope_data_item_id,
            status="active",
            created_at=now,
            updated_at=now,
        )

        async def _create(session: AsyncClientSession) -> DelegatedApproval:
            payer = await self._users.find_one(
                {"address": paying_address}, session=session
            )
            if payer is None:
                raise UserNotFoundWarning(paying_address)
            if await self._approvals.find_one(
                {"approval_id": approval_id}, projection={"_id": 1}, session=session
            ):
                raise _duplicate_approval(approval_id)
            await debit_user_balance(
                self._users, paying_address, approved_winc_amount, now, session
            )
            document = ApprovalDocument.from_domain(approval)
            try:
                await self._approvals.insert_one(
                    document.to_mongo_record(winc_fields=document.WINC_FIELDS),
                    session=session,
                )
            except DuplicateKeyError as exc:
                raise _duplicate_approval(approval_id) from exc
            return approval

        return await self._in_transaction(_create)

    async def revoke_approvals(
        self,
        *,
        paying_address: str,
        approved_address: str,
        approval_id: str | None,
        now: datetime,
    ) -> list[DelegatedApproval]:
        query: dict[str, Any] = {
            "paying_address": paying_address,
            "approved_address": approved_address,
            "status": "active",
        }
        if approval_id is not None:
            query["approval_id"] = approval_id

        async def _revoke(session: AsyncClientSession) -> list[DelegatedApproval]:
            approvals = await self._find_approvals(query, session)
            if not approvals:
                raise NoApprovalsFoundError(paying_address, approved_address)
            plan = plan_revocation(approvals, approval_id=approval_id)
            return await self._close_approvals(approvals, plan, "revoked", now, session)

        return await self._in_transaction(_revoke)

    async def expire_approvals(
        self, now: datetime, paying_address: str | None = None
    ) -> list[DelegatedApproval]:
        query: dict[str, Any] = {"status": "active", "expiration_date": {"$lte": now}}
        if paying_address is not None:
            query["paying_address"] = paying_address

        async def _expire(session: AsyncClientSession) -> list[DelegatedApproval]:
            approvals = await self._find_approvals(query, session)
            if not approvals:
                return []
            plan = plan_revocation(approvals, approval_id=None)
            return await self._close_approvals(approvals, plan, "expired", now, session)

        expired = await self._in_transaction(_expire)
        if expired:
            logger.info("expired %d delegated approvals", len(expired))
        return expired

    async def _close_approvals(
        self,
        approvals: list[DelegatedApproval],
        plan: RefundPlan,
        status: str,
        now: datetime,
        session: AsyncClientSession,
    ) -> list[DelegatedApproval]:
        await self._approvals.update_many(
            {
                "approval_id": {"$in": [a.approval_id for a in approvals]},
                "status": "active",
            },
            {"$set": {"status": status, "updated_at": now}},
            session=session,
        )
        await self._apply_balance_credits(plan, now, session)
        return [
            approval.model_copy(update={"status": status, "updated_at": now})
            for approval in approvals
        ]

    async def credit_payment_receipt(
        self, receipt: PaymentReceipt, promo_codes: list[str]
    ) -> tuple[PaymentReceipt, bool]:
        async def _credit(session: AsyncClientSession) -> tuple[PaymentReceipt, bool]:
            existing = await self._receipts.find_one(
                {"payment_receipt_id": receipt.payment_receipt_id}, session=session
            )
            if existing is not None:
                return PaymentReceiptDocument.model_validate(existing).to_domain(), False

            document = PaymentReceiptDocument.from_domain(receipt)
            await self._receipts.insert_one(
                document.to_mongo_record(winc_fields=document.WINC_FIELDS),
                session=session,
            )
            await credit_user_balance(
                self._users,
                receipt.address,
                receipt.winc_amount.plus(receipt.excess_winc),
                receipt.created_at,
                session,
            )
            for code in promo_codes:
                await self._promo_codes.update_one(
                    {"code": code}, {"$inc": {"uses": 1}}, session=session
                )
            return receipt, True

        return await self._in_transaction(_credit)
