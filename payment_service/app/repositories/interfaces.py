from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.adjustment import (
    AppliedAdjustment,
    InclusiveAdjustment,
    PromoCodeAdjustment,
)
from ..models.ledger import (
    DelegatedApproval,
    PaymentReceipt,
    Reservation,
    User,
)
from ..models.transaction import PaymentTransaction
from ..models.winc import Winc


class AdjustmentCatalogRepositoryInterface(Protocol):
    """관리자가 등록한 할인/수수료/프로모션 코드 카탈로그에 대한 읽기 계약.

    PricingService 는 이 인터페이스에만 의존한다.
    """

    async def get_active_upload_adjustments(
        self, now: datetime, payer_address: str | None = None
    ) -> list[InclusiveAdjustment | PromoCodeAdjustment]:  # pragma: no cover - Protocol
        """현재 활성화된 업로드 조정. payer_address 가 있으면 대상 그룹에 속하지 않는 조정은 제외한다."""
        ...

    async def get_active_payment_adjustments(
        self, now: datetime
    ) -> list[InclusiveAdjustment]:  # pragma: no cover - Protocol
        """현재 활성화된 상시(inclusive) 결제 조정. 예: 인프라 수수료."""
        ...

    async def get_promo_code(
        self, code: str
    ) -> PromoCodeAdjustment | None:  # pragma: no cover - Protocol
        """날짜/사용 횟수와 무관하게 코드로 조회한다. 검증은 서비스 레이어에서 한다."""
        ...

    async def is_user_in_group(
        self, address: str, user_group: str
    ) -> bool:  # pragma: no cover - Protocol
        ...


class LedgerRepositoryInterface(Protocol):
    """잔액/승인/예약을 다루는 원장 저장소 계약.

    예약/환불/승인 생성·회수는 각각 하나의 원자적 단위로 수행되어야 한다.
    동시에 들어온 예약이 함께 잔액을 초과 차감하면 안 된다.
    """

    async def get_user(self, address: str) -> User | None:  # pragma: no cover - Protocol
        ...

    async def credit_balance(
        self, address: str, winc: Winc
    ) -> User:  # pragma: no cover - Protocol
        """잔액을 증가시킨다. 사용자가 없으면 생성한다."""
        ...

    async def get_approvals_for_signer(
        self, signer_address: str
    ) -> list[DelegatedApproval]:  # pragma: no cover - Protocol
        """signer 가 받은 active 승인 목록."""
        ...

    async def get_given_approvals(
        self, paying_address: str
    ) -> list[DelegatedApproval]:  # pragma: no cover - Protocol
        """paying_address 가 준 active 승인 목록."""
        ...

    async def get_approvals(
        self, paying_address: str, approved_address: str
    ) -> list[DelegatedApproval]:  # pragma: no cover - Protocol
        ...

    async def get_open_reservations_total(
        self, signer_address: str
    ) -> Winc:  # pragma: no cover - Protocol
        ...

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
    ) -> Reservation:  # pragma: no cover - Protocol
        """plan_reservation 으로 차감 계획을 세우고 잔액/승인/예약 기록을 한 단위로 반영한다."""
        ...

    async def refund_balance(
        self, data_item_id: str, now: datetime
    ) -> Reservation:  # pragma: no cover - Protocol
        """예약을 되돌린다. 이미 환불된 예약은 다시 적립하지 않고 그대로 반환한다."""
        ...

    async def finalize_reservation(
        self, data_item_id: str, now: datetime
    ) -> Reservation:  # pragma: no cover - Protocol
        ...

    async def get_reservation(
        self, data_item_id: str
    ) -> Reservation | None:  # pragma: no cover - Protocol
        ...

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
    ) -> DelegatedApproval:  # pragma: no cover - Protocol
        """지불자 잔액에서 승인 금액을 빼고 승인을 만든다."""
        ...

    async def revoke_approvals(
        self,
        *,
        paying_address: str,
        approved_address: str,
        approval_id: str | None,
        now: datetime,
    ) -> list[DelegatedApproval]:  # pragma: no cover - Protocol
        """승인을 회수하고 남은 금액을 지불자에게 돌려준다. 회수된 승인 목록을 반환한다."""
        ...

    async def expire_approvals(
        self, now: datetime, paying_address: str | None = None
    ) -> list[DelegatedApproval]:  # pragma: no cover - Protocol
        """만료된 active 승인을 expired 로 바꾸고 남은 금액을 지불자에게 돌려준다."""
        ...

    async def credit_payment_receipt(
        self, receipt: PaymentReceipt, promo_codes: list[str]
    ) -> tuple[PaymentReceipt, bool]:  # pragma: no cover - Protocol
        """영수증을 저장하고 적립한다. 이미 적립된 영수증이면 (기존 영수증, False)."""
        ...


class PaymentTransactionRepositoryInterface(Protocol):
    """온체인 결제 트랜잭션 저장소 계약. transaction_id 는 전역적으로 유일하다."""

    async def get(
        self, transaction_id: str
    ) -> PaymentTransaction | None:  # pragma: no cover - Protocol
        ...

    async def create_pending(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:  # pragma: no cover - Protocol
        """이미 같은 id 가 있으면 (기존 레코드, False)."""
        ...

    async def create_credited(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:  # pragma: no cover - Protocol
        """credited 레코드 생성과 잔액 적립을 한 단위로 수행한다. 이미 있으면 (기존 레코드, False)."""
        ...

    async def list_pending(
        self, limit: int
    ) -> list[PaymentTransaction]:  # pragma: no cover - Protocol
        ...

    async def mark_credited(
        self, transaction_id: str, block_height: int | None, now: datetime
    ) -> PaymentTransaction | None:  # pragma: no cover - Protocol
        """pending -> credited 전이와 고정된 금액 적립. pending 이 아니면 None."""
        ...

    async def mark_failed(
        self, transaction_id: str, reason: str, now: datetime
    ) -> PaymentTransaction | None:  # pragma: no cover - Protocol
        """pending -> failed 전이. pending 이 아니면 None."""
        ...
