"""크레딧 원장 서비스.

업로드 비용 예약/환불/확정, 잔액 조회, 위임 승인 생성·조회·회수, 카드 결제 적립을 처리한다.
원자성은 LedgerRepositoryInterface 구현체가 보장하고, 이 레이어는 입력 검증과 가격 산정,
알림 이벤트 발행을 담당한다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from common.eventbus.core import new_json_event
from common.eventbus.kafka import NotificationPublisher
from common.eventbus.topics import TOPIC_APPROVAL, TOPIC_PAYMENT
from common.events.payment import (
    ApprovalEvent,
    FiatPaymentCreditedEvent,
    PaymentEventType,
)

from ..exceptions import (
    ApprovalInvalidError,
    InsufficientBalanceError,
    NoApprovalsFoundError,
    ReservationNotFoundError,
    UserNotFoundWarning,
)
from ..metrics import MetricsContext
from ..models.ledger import (
    Balance,
    BalanceCheck,
    DelegatedApproval,
    PaymentReceipt,
    Reservation,
    User,
)
from ..models.winc import Winc
from ..repositories.interfaces import LedgerRepositoryInterface
from .pricing_service import PricingService
from .reservation_planner import effective_balance, plan_reservation


logger = logging.getLogger(__name__)

EVENT_SOURCE = "payment-service"


def is_known_signer(
    user: User | None, received: Sequence[DelegatedApproval], payers: Sequence[str]
) -> bool:
    """서명자 계정이 없어도 나열된 지불자의 위임 승인이 있으면 알려진 서명자로 본다."""

    if user is not None:
        return True
    return any(approval.paying_address in payers for approval in received)


class LedgerService:
    """잔액/예약/위임 승인 관련 비즈니스 로직."""

    def __init__(
        self,
        ledger_repo: LedgerRepositoryInterface,
        pricing: PricingService,
        publisher: NotificationPublisher,
        *,
        metrics: MetricsContext | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repo = ledger_repo
        self._pricing = pricing
        self._publisher = publisher
        self._metrics = metrics
        self._clock = clock

    # -------- reservations --------

    async def reserve_balance(
        self,
        signer_address: str,
        byte_count: int,
        data_item_id: str,
        paid_by: Sequence[str] = (),
    ) -> Reservation:
        """업로드 비용을 위임 지불자 승인과 서명자 잔액에서 원자적으로 예약한다.

        부족하면 InsufficientBalanceError 이며 아무것도 차감되지 않는다.
        """

        quote = await self._pricing.get_price_for_bytes(byte_count, signer_address)
        payers = [*paid_by, signer_address]

        if not quote.final_price.is_zero():
            await self._ensure_known_payer(signer_address, payers)

        try:
            reservation = await self._repo.reserve_balance_atomic(
                signer_address=signer_address,
                data_item_id=data_item_id,
                payers=payers,
                reserved_winc_amount=quote.final_price,
                network_winc_amount=quote.network_price,
                adjustments=quote.adjustments,
                now=self._clock(),
            )
        except InsufficientBalanceError:
            self._count_reservation("insufficient_balance")
            logger.info(
                "insufficient balance for reservation",
                extra={
                    "address": signer_address,
                    "data_item_id": data_item_id,
                    "winc": str(quote.final_price),
                },
            )
            raise

        self._count_reservation("reserved")
        logger.info(
            "reserved balance",
            extra={
                "address": signer_address,
                "data_item_id": data_item_id,
                "winc": str(reservation.reserved_winc_amount),
                "payers": reservation.payers,
            },
        )
        return reservation

    async def _ensure_known_payer(self, signer_address: str, payers: list[str]) -> None:
        user = await self._repo.get_user(signer_address)
        received = await self._repo.get_approvals_for_signer(signer_address)
        if is_known_signer(user, received, payers):
            return
        self._count_reservation("user_not_found")
        raise UserNotFoundWarning(signer_address)

    async def check_balance(
        self,
        signer_address: str,
        byte_count: int,
        paid_by: Sequence[str] = (),
    ) -> BalanceCheck:
        """예약과 같은 순서로 차감 가능 여부만 확인한다. 상태는 바꾸지 않는다."""

        quote = await self._pricing.get_price_for_bytes(byte_count, signer_address)
        now = self._clock()
        user = await self._repo.get_user(signer_address)
        approvals = await self._repo.get_approvals_for_signer(signer_address)

        payers = [*paid_by, signer_address]
        reason: str | None = None
        if quote.final_price.is_zero():
            sufficient = True
        elif not is_known_signer(user, approvals, payers):
            sufficient = False
            reason = "user_not_found"
        else:
            try:
                plan_reservation(
                    signer_address=signer_address,
                    # 아직 존재하지 않는 아이템이므로 범위 지정 승인은 모두 제외된다.
                    data_item_id="",
                    required=quote.final_price,
                    payers=payers,
                    signer_balance=user.winc if user else Winc(0),
                    approvals=approvals,
                    now=now,
                )
                sufficient = True
            except InsufficientBalanceError:
                sufficient = False
                reason = "insufficient_balance"

        return BalanceCheck(
            address=signer_address,
            byte_count=byte_count,
            user_has_sufficient_balance=sufficient,
            price=quote.final_price,
            adjustments=quote.adjustments,
            reason=reason,
        )

    async def refund_balance(
        self, data_item_id: str, signer_address: str | None = None
    ) -> Reservation:
        """예약을 되돌린다. 이미 환불된 예약을 다시 환불해도 추가로 적립되지 않는다."""
        if signer_address is not None:
            await self._ensure_reservation_owner(data_item_id, signer_address)
        reservation = await self._repo.refund_balance(data_item_id, self._clock())
        self._count_reservation("refunded")
        logger.info(
            "refunded reservation",
            extra={
                "address": reservation.signer_address,
                "data_item_id": data_item_id,
                "winc": str(reservation.reserved_winc_amount),
            },
        )
        return reservation

    async def finalize_reservation(
        self, data_item_id: str, signer_address: str | None = None
    ) -> Reservation:
        if signer_address is not None:
            await self._ensure_reservation_owner(data_item_id, signer_address)
        reservation = await self._repo.finalize_reservation(data_item_id, self._clock())
        self._count_reservation("finalized")
        return reservation

    async def _ensure_reservation_owner(
        self, data_item_id: str, signer_address: str
    ) -> None:
        reservation = await self._repo.get_reservation(data_item_id)
        if reservation is None or reservation.signer_address != signer_address:
            raise ReservationNotFoundError(data_item_id)

    def _count_reservation(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.reservations.inc(outcome)

    # -------- balance --------

    async def get_balance(self, address: str) -> Balance:
        now = self._clock()
        await self._repo.expire_approvals(now, paying_address=address)

        user = await self._repo.get_user(address)
        received = await self._repo.get_approvals_for_signer(address)
        if user is None and not received:
            raise UserNotFoundWarning(address)

        given = await self._repo.get_given_approvals(address)
        winc = user.winc if user else Winc(0)
        return Balance(
            address=address,
            winc=winc,
            reserved_winc=await self._repo.get_open_reservations_total(address),
            effective_balance=effective_balance(winc, received, now),
            given_approvals=given,
            received_approvals=[a for a in received if a.is_usable(now)],
        )

    # -------- delegated approvals --------

    async def create_approval(
        self,
        paying_address: str,
        approved_address: str,
        approved_winc_amount: Winc,
        *,
        approval_id: str | None = None,
        expires_in_seconds: int | None = None,
        scope_data_item_id: str | None = None,
    ) -> DelegatedApproval:
        if approved_winc_amount.is_zero():
            raise ApprovalInvalidError(
                "Approved winc amount must be greater than zero",
                details={"approved_winc_amount": str(approved_winc_amount)},
            )
        if paying_address == approved_address:
            raise ApprovalInvalidError(
                "Paying address and approved address must differ",
                details={"paying_address": paying_address},
            )
        if expires_in_seconds is not None and expires_in_seconds <= 0:
            raise ApprovalInvalidError(
                "Approval expiry must be a positive number of seconds",
                details={"expires_in_seconds": expires_in_seconds},
            )

        now = self._clock()
        approval = await self._repo.create_approval(
            approval_id=approval_id or str(uuid.uuid4()),
            paying_address=paying_address,
            approved_address=approved_address,
            approved_winc_amount=approved_winc_amount,
            expiration_date=(
                now + timedelta(seconds=expires_in_seconds)
                if expires_in_seconds is not None
                else None
            ),
            scope_data_item_id=scope_data_item_id,
            now=now,
        )
        logger.info(
            "created delegated approval",
            extra={
                "address": paying_address,
                "approval_id": approval.approval_id,
                "winc": str(approved_winc_amount),
            },
        )
        self._publish_approval_event(
            PaymentEventType.APPROVAL_CREATED,
            paying_address,
            approved_address,
            [approval],
            approved_winc_amount,
        )
        return approval

    async def get_approvals(
        self, paying_address: str, approved_address: str
    ) -> list[DelegatedApproval]:
        now = self._clock()
        approvals = [
            approval
            for approval in await self._repo.get_approvals(paying_address, approved_address)
            if approval.is_usable(now)
        ]
        if not approvals:
            raise NoApprovalsFoundError(paying_address, approved_address)
        return approvals

    async def get_all_approvals(
        self, address: str
    ) -> tuple[list[DelegatedApproval], list[DelegatedApproval]]:
        """(준 승인, 받은 승인)."""
        now = self._clock()
        given = await self._repo.get_given_approvals(address)
        received = await self._repo.get_approvals_for_signer(address)
        return (
            [a for a in given if a.is_usable(now)],
            [a for a in received if a.is_usable(now)],
        )

    async def revoke_approvals(
        self,
        paying_address: str,
        approved_address: str,
        approval_id: str | None = None,
    ) -> list[DelegatedApproval]:
        revoked = await self._repo.revoke_approvals(
            paying_address=paying_address,
            approved_address=approved_address,
            approval_id=approval_id,
            now=self._clock(),
        )
        returned = Winc(0)
        for approval in revoked:
            returned = returned.plus(approval.remaining_winc_amount)

        logger.info(
            "revoked delegated approvals",
            extra={
                "address": paying_address,
                "approval_id": approval_id,
                "count": len(revoked),
                "winc": str(returned),
            },
        )
        self._publish_approval_event(
            PaymentEventType.APPROVALS_REVOKED,
            paying_address,
            approved_address,
            revoked,
            returned,
        )
        return revoked

    def _publish_approval_event(
        self,
        event_type: str,
        paying_address: str,
        approved_address: str,
        approvals: list[DelegatedApproval],
        winc: Winc,
    ) -> None:
        event_id = str(uuid.uuid4())
        event = ApprovalEvent(
            id=event_id,
            type=event_type,
            timestamp=self._clock().isoformat(),
            source=EVENT_SOURCE,
            version="1.0",
            paying_address=paying_address,
            approved_address=approved_address,
            approval_ids=[approval.approval_id for approval in approvals],
            winc=str(winc),
        )
        self._publisher.publish(
            TOPIC_APPROVAL, new_json_event(payload=asdict(event), event_id=event_id)
        )

    # -------- fiat crediting --------

    async def credit_payment_receipt(self, receipt: PaymentReceipt) -> PaymentReceipt:
        """카드 결제 영수증을 한 번만 적립한다. 같은 영수증 재요청은 기존 기록을 반환한다."""

        stored, created = await self._repo.credit_payment_receipt(
            receipt, list(receipt.promo_codes)
        )
        if not created:
            logger.info(
                "payment receipt already credited",
                extra={"payment_receipt_id": receipt.payment_receipt_id},
            )
            return stored

        total = stored.winc_amount.plus(stored.excess_winc)
        logger.info(
            "credited payment receipt",
            extra={
                "address": stored.address,
                "payment_receipt_id": stored.payment_receipt_id,
                "winc": str(total),
            },
        )
        event_id = str(uuid.uuid4())
        event = FiatPaymentCreditedEvent(
            id=event_id,
            type=PaymentEventType.FIAT_PAYMENT_CREDITED,
            timestamp=self._clock().isoformat(),
            source=EVENT_SOURCE,
            version="1.0",
            payment_receipt_id=stored.payment_receipt_id,
            address=stored.address,
            currency=stored.currency,
            payment_amount=stored.payment_amount,
            winc=str(total),
            promo_codes=list(stored.promo_codes),
        )
        self._publisher.publish(
            TOPIC_PAYMENT, new_json_event(payload=asdict(event), event_id=event_id)
        )
        return stored
