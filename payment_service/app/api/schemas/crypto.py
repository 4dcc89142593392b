from __future__ import annotations

from pydantic import Field

from ...services.crypto_payment_service import CryptoPaymentSubmission
from .common import AdjustmentResponse, CamelModel, adjustments_to_response


class SubmitTransactionRequest(CamelModel):
    tx_id: str = Field(min_length=1, alias="tx_id")


class PaymentTransactionResponse(CamelModel):
    transaction_id: str
    token_type: str
    transaction_quantity: str
    destination_address: str
    winston_credit_amount: str
    status: str
    block_height: int | None = None
    failed_reason: str | None = None


class SubmitTransactionResponse(CamelModel):
    message: str
    transaction: PaymentTransactionResponse
    fees: list[AdjustmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, submission: CryptoPaymentSubmission) -> "SubmitTransactionResponse":
        tx = submission.transaction
        if submission.already_recorded:
            message = {
                "credited": "Transaction already credited",
                "failed": "Transaction has already failed!",
                "pending": "Transaction already pending",
            }[tx.status]
        else:
            message = "Transaction credited" if tx.status == "credited" else "Transaction pending"
        return cls(
            message=message,
            transaction=PaymentTransactionResponse(
                transaction_id=tx.transaction_id,
                token_type=tx.token,
                transaction_quantity=str(tx.transaction_quantity),
                destination_address=tx.destination_address,
                winston_credit_amount=str(tx.winc_amount),
                status=tx.status,
                block_height=tx.block_height,
                failed_reason=tx.failed_reason,
            ),
            fees=adjustments_to_response(submission.inclusive_adjustments),
        )
