"""결제/원장 도메인 예외.

모든 예외는 PaymentServiceError 를 상속하고 ErrorKind 로 구분된다.
호출자(API 레이어 등)는 상속 계층이 아니라 kind 값으로 분기한다.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    # 결제 입력 검증
    UNSUPPORTED_CURRENCY_TYPE = "UnsupportedCurrencyType"
    INVALID_PAYMENT_AMOUNT = "InvalidPaymentAmount"
    PAYMENT_AMOUNT_TOO_SMALL = "PaymentAmountTooSmall"
    PAYMENT_AMOUNT_TOO_LARGE = "PaymentAmountTooLarge"
    # 프로모션 코드
    PROMO_CODE_NOT_FOUND = "PromoCodeNotFound"
    PROMO_CODE_EXPIRED = "PromoCodeExpired"
    PROMO_CODE_EXCEEDS_MAX_USES = "PromoCodeExceedsMaxUses"
    USER_INELIGIBLE_FOR_PROMO_CODE = "UserIneligibleForPromoCode"
    PAYMENT_AMOUNT_TOO_SMALL_FOR_PROMO_CODE = "PaymentAmountTooSmallForPromoCode"
    # 원장
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    USER_NOT_FOUND_WARNING = "UserNotFoundWarning"
    RESERVATION_NOT_FOUND = "ReservationNotFound"
    INVALID_CREDIT_AMOUNT = "InvalidCreditAmount"
    # 위임 승인
    APPROVAL_INVALID = "ApprovalInvalid"
    NO_APPROVALS_FOUND = "NoApprovalsFound"
    CONFLICTING_APPROVAL_FOUND = "ConflictingApprovalFound"
    # 암호화폐 결제
    UNSUPPORTED_TOKEN = "UnsupportedToken"
    INVALID_CRYPTO_PAYMENT = "InvalidCryptoPayment"
    PAYMENT_TRANSACTION_HAS_WRONG_TARGET = "PaymentTransactionHasWrongTarget"
    PAYMENT_TRANSACTION_NOT_FOUND = "PaymentTransactionNotFound"
    # 기타
    ORACLE_UNAVAILABLE = "OracleUnavailable"
    BAD_REQUEST = "BadRequest"


# ErrorKind -> HTTP 상태 코드. API 레이어의 예외 핸들러가 이 표만 참조한다.
HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNSUPPORTED_CURRENCY_TYPE: 400,
    ErrorKind.INVALID_PAYMENT_AMOUNT: 400,
    ErrorKind.PAYMENT_AMOUNT_TOO_SMALL: 400,
    ErrorKind.PAYMENT_AMOUNT_TOO_LARGE: 400,
    ErrorKind.PROMO_CODE_NOT_FOUND: 400,
    ErrorKind.PROMO_CODE_EXPIRED: 400,
    ErrorKind.PROMO_CODE_EXCEEDS_MAX_USES: 400,
    ErrorKind.USER_INELIGIBLE_FOR_PROMO_CODE: 400,
    ErrorKind.PAYMENT_AMOUNT_TOO_SMALL_FOR_PROMO_CODE: 400,
    ErrorKind.INSUFFICIENT_BALANCE: 402,
    ErrorKind.USER_NOT_FOUND_WARNING: 404,
    ErrorKind.RESERVATION_NOT_FOUND: 404,
    ErrorKind.INVALID_CREDIT_AMOUNT: 400,
    ErrorKind.APPROVAL_INVALID: 400,
    ErrorKind.NO_APPROVALS_FOUND: 404,
    ErrorKind.CONFLICTING_APPROVAL_FOUND: 409,
    ErrorKind.UNSUPPORTED_TOKEN: 400,
    ErrorKind.INVALID_CRYPTO_PAYMENT: 400,
    ErrorKind.PAYMENT_TRANSACTION_HAS_WRONG_TARGET: 400,
    ErrorKind.PAYMENT_TRANSACTION_NOT_FOUND: 404,
    ErrorKind.ORACLE_UNAVAILABLE: 503,
    ErrorKind.BAD_REQUEST: 400,
}


class PaymentServiceError(Exception):
    """결제 서비스 예외의 베이스 클래스.

    Attributes:
        kind: 에러 종류 (응답 매핑에 사용)
        message: 사람이 읽을 수 있는 메시지
        details: 응답에 함께 실을 구조화된 필드
    """

    kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if kind is not None:
            self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict 로 변환한다."""
        return {
            "error": str(self.kind),
            "message": self.message,
            "details": self.details,
        }


class UnsupportedCurrencyTypeError(PaymentServiceError):
    kind = ErrorKind.UNSUPPORTED_CURRENCY_TYPE

    def __init__(self, currency: str) -> None:
        super().__init__(
            f"The currency type '{currency}' is currently not supported by this API!",
            details={"currency": currency},
        )


class InvalidPaymentAmountError(PaymentServiceError):
    kind = ErrorKind.INVALID_PAYMENT_AMOUNT

    def __init__(self, amount: object) -> None:
        super().__init__(
            f"The provided payment amount ({amount}) is invalid; it must be a positive non-decimal integer!",
            details={"amount": str(amount)},
        )


class PaymentAmountTooSmallError(PaymentServiceError):
    kind = ErrorKind.PAYMENT_AMOUNT_TOO_SMALL

    def __init__(self, amount: int, currency: str, minimum: int) -> None:
        super().__init__(
            f"The provided payment amount ({amount}) is too small for the currency type "
            f"'{currency}'; it must be above {minimum}!",
            details={"amount": amount, "currency": currency, "minimum": minimum},
        )


class PaymentAmountTooLargeError(PaymentServiceError):
    kind = ErrorKind.PAYMENT_AMOUNT_TOO_LARGE

    def __init__(self, amount: int, currency: str, maximum: int) -> None:
        super().__init__(
            f"The provided payment amount ({amount}) is too large for the currency type "
            f"'{currency}'; it must be below or equal to {maximum}!",
            details={"amount": amount, "currency": currency, "maximum": maximum},
        )


class PromoCodeNotFoundError(PaymentServiceError):
    kind = ErrorKind.PROMO_CODE_NOT_FOUND

    def __init__(self, code: str) -> None:
        super().__init__(
            f"No promo code found with code '{code}'", details={"promo_code": code}
        )


class PromoCodeExpiredError(PaymentServiceError):
    kind = ErrorKind.PROMO_CODE_EXPIRED

    def __init__(self, code: str) -> None:
        super().__init__(
            f"The promo code '{code}' is not currently active",
            details={"promo_code": code},
        )


class PromoCodeExceedsMaxUsesError(PaymentServiceError):
    kind = ErrorKind.PROMO_CODE_EXCEEDS_MAX_USES

    def __init__(self, code: str, max_uses: int) -> None:
        super().__init__(
            f"The promo code '{code}' has already been used the maximum number of times ({max_uses})",
            details={"promo_code": code, "max_uses": max_uses},
        )


class UserIneligibleForPromoCodeError(PaymentServiceError):
    kind = ErrorKind.USER_INELIGIBLE_FOR_PROMO_CODE

    def __init__(self, code: str, address: str | None, target_user_group: str) -> None:
        super().__init__(
            f"The user '{address}' is ineligible for the promo code '{code}'",
            details={
                "promo_code": code,
                "address": address,
                "target_user_group": target_user_group,
            },
        )


class PaymentAmountTooSmallForPromoCodeError(PaymentServiceError):
    kind = ErrorKind.PAYMENT_AMOUNT_TOO_SMALL_FOR_PROMO_CODE

    def __init__(self, code: str, minimum_payment_amount: int) -> None:
        super().__init__(
            f"The payment amount is too small for promo code '{code}'; "
            f"it must be at least {minimum_payment_amount}",
            details={
                "promo_code": code,
                "minimum_payment_amount": minimum_payment_amount,
            },
        )


class InsufficientBalanceError(PaymentServiceError):
    kind = ErrorKind.INSUFFICIENT_BALANCE

    def __init__(self, address: str, required: int | None = None) -> None:
        details: dict[str, Any] = {"address": address}
        if required is not None:
            details["required_winc"] = str(required)
        super().__init__("Insufficient balance", details=details)


class UserNotFoundWarning(PaymentServiceError):
    kind = ErrorKind.USER_NOT_FOUND_WARNING

    def __init__(self, address: str) -> None:
        super().__init__(
            f"No user found in database with address '{address}'",
            details={"address": address},
        )


class ReservationNotFoundError(PaymentServiceError):
    kind = ErrorKind.RESERVATION_NOT_FOUND

    def __init__(self, data_item_id: str) -> None:
        super().__init__(
            f"No balance reservation found for data item '{data_item_id}'",
            details={"data_item_id": data_item_id},
        )


class InvalidCreditAmountError(PaymentServiceError):
    kind = ErrorKind.INVALID_CREDIT_AMOUNT

    def __init__(self, value: object) -> None:
        super().__init__(
            f"Credit amounts must be non-negative integers, got {value!r}",
            details={"value": repr(value)},
        )


class ApprovalInvalidError(PaymentServiceError):
    kind = ErrorKind.APPROVAL_INVALID


class NoApprovalsFoundError(PaymentServiceError):
    kind = ErrorKind.NO_APPROVALS_FOUND

    def __init__(self, paying_address: str, approved_address: str | None = None) -> None:
        super().__init__(
            "No valid approvals found for the given addresses",
            details={
                "paying_address": paying_address,
                "approved_address": approved_address,
            },
        )


class ConflictingApprovalFoundError(PaymentServiceError):
    kind = ErrorKind.CONFLICTING_APPROVAL_FOUND

    def __init__(self, approval_id: str, data_item_id: str | None = None) -> None:
        super().__init__(
            f"Approval '{approval_id}' has already been used by another data item",
            details={"approval_id": approval_id, "data_item_id": data_item_id},
        )


class UnsupportedTokenError(PaymentServiceError):
    kind = ErrorKind.UNSUPPORTED_TOKEN

    def __init__(self, token: str) -> None:
        super().__init__(
            f"Token '{token}' is not supported", details={"token": token}
        )


class InvalidCryptoPaymentError(PaymentServiceError):
    kind = ErrorKind.INVALID_CRYPTO_PAYMENT


class PaymentTransactionHasWrongTargetError(PaymentServiceError):
    kind = ErrorKind.PAYMENT_TRANSACTION_HAS_WRONG_TARGET

    def __init__(self, tx_id: str, recipient_address: str) -> None:
        super().__init__(
            f"Payment transaction '{tx_id}' has wrong target address '{recipient_address}'",
            details={"tx_id": tx_id, "recipient_address": recipient_address},
        )


class PaymentTransactionNotFoundError(PaymentServiceError):
    kind = ErrorKind.PAYMENT_TRANSACTION_NOT_FOUND

    def __init__(self, tx_id: str) -> None:
        super().__init__(
            f"Payment transaction '{tx_id}' was not found", details={"tx_id": tx_id}
        )


class OracleUnavailableError(PaymentServiceError):
    kind = ErrorKind.ORACLE_UNAVAILABLE

    def __init__(self, oracle: str, reason: str) -> None:
        super().__init__(
            f"Price oracle '{oracle}' is unavailable: {reason}",
            details={"oracle": oracle},
        )


class BadRequestError(PaymentServiceError):
    kind = ErrorKind.BAD_REQUEST
