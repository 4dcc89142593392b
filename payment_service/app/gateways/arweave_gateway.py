"""arweave 게이트웨이 HTTP 조회.

상태는 /tx/{id}/status, 송수신자와 수량은 /graphql 로 조회한다.
"""

from __future__ import annotations

import logging

import httpx

from ..exceptions import OracleUnavailableError
from .interfaces import TransactionInfo, TransactionStatus


logger = logging.getLogger(__name__)


TRANSACTION_QUERY = """
query ($id: ID!) {
  transaction(id: $id) {
    recipient
    owner { address }
    quantity { winston }
  }
}
"""


class ArweaveTransactionGateway:
    name = "arweave-gateway"

    def __init__(
        self,
        client: httpx.AsyncClient,
        gateway_url: str,
        *,
        min_confirmations: int = 18,
    ) -> None:
        self._client = client
        self._base_url = gateway_url.rstrip("/")
        self._min_confirmations = min_confirmations

    async def get_transaction_status(self, transaction_id: str) -> TransactionStatus:
        url = f"{self._base_url}/tx/{transaction_id}/status"
        try:
            resp = await self._client.get(url)
        except httpx.RequestError as exc:
            raise OracleUnavailableError(self.name, f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code == 404:
            return TransactionStatus(status="not_found")
        if resp.status_code != 200:
            # 202 는 아직 채굴되지 않은 트랜잭션이다.
            return TransactionStatus(status="pending")

        body = resp.json()
        confirmations = int(body.get("number_of_confirmations") or 0)
        if confirmations >= self._min_confirmations:
            return TransactionStatus(
                status="confirmed", block_height=int(body["block_height"])
            )
        return TransactionStatus(status="pending")

    async def get_transaction(self, transaction_id: str) -> TransactionInfo | None:
        try:
            resp = await self._client.post(
                f"{self._base_url}/graphql",
                json={"query": TRANSACTION_QUERY, "variables": {"id": transaction_id}},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise OracleUnavailableError(self.name, f"{type(exc).__name__}: {exc}") from exc

        transaction = ((resp.json() or {}).get("data") or {}).get("transaction")
        if not transaction:
            logger.debug("transaction not indexed yet", extra={"tx_id": transaction_id})
            return None
        return TransactionInfo(
            sender_address=transaction["owner"]["address"],
            recipient_address=transaction["recipient"],
            quantity=int(transaction["quantity"]["winston"]),
        )
