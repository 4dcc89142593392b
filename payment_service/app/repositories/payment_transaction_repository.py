from __future__ import annotations

from datetime import datetime

from pymongo import ReturnDocument
from pymongo.asynchronous.client_session import AsyncClientSession
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError

from .documents.payment_transaction_document import PaymentTransactionDocument
from .interfaces import PaymentTransactionRepositoryInterface
from .ledger_repository import credit_user_balance
from ..models.transaction import PaymentTransaction


class PaymentTransactionRepository(PaymentTransactionRepositoryInterface):
    """payment_transactions 컬렉션에 대한 MongoDB 접근 레이어.

    transaction_id 유니크 인덱스가 같은 트랜잭션의 중복 적립을 막는다.
    """

    def __init__(self, database: AsyncDatabase) -> None:
        self._db = database
        self._client = database.client
        self._col = database["payment_transactions"]
        self._users = database["users"]

    async def get(self, transaction_id: str) -> PaymentTransaction | None:
        raw = await self._col.find_one({"transaction_id": transaction_id})
        if raw is None:
            return None
        return PaymentTransactionDocument.model_validate(raw).to_domain()

    async def create_pending(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:
        document = PaymentTransactionDocument.from_domain(tx)
        try:
            await self._col.insert_one(
                document.to_mongo_record(winc_fields=document.WINC_FIELDS)
            )
            return tx, True
        except DuplicateKeyError:
            pass
        existing = await self.get(tx.transaction_id)
        assert existing is not None
        return existing, False

    async def create_credited(
        self, tx: PaymentTransaction
    ) -> tuple[PaymentTransaction, bool]:
        async def _create(session: AsyncClientSession) -> bool:
            existing = await self._col.find_one(
                {"transaction_id": tx.transaction_id}, session=session
            )
            if existing is not None:
                return False
            # 트랜잭션 안에서의 중복 키 오류는 트랜잭션을 중단시키므로 그대로 전파한다.
            document = PaymentTransactionDocument.from_domain(tx)
            await self._col.insert_one(
                document.to_mongo_record(winc_fields=document.WINC_FIELDS),
                session=session,
            )
            await credit_user_balance(
                self._users,
                tx.destination_address,
                tx.winc_amount,
                tx.updated_at,
                session,
            )
            return True

        try:
            async with self._client.start_session() as session:
                inserted = await session.with_transaction(_create)
        except DuplicateKeyError:
            inserted = False
        if inserted:
            return tx, True
        existing = await self.get(tx.transaction_id)
        assert existing is not None
        return existing, False

    async def list_pending(self, limit: int) -> list[PaymentTransaction]:
        cursor = self._col.find(
            {"status": "pending"}, sort=[("created_at", 1)], limit=limit
        )
        return [
            PaymentTransactionDocument.model_validate(raw).to_domain()
            async for raw in cursor
        ]

    async def mark_credited(
        self, transaction_id: str, block_height: int | None, now: datetime
    ) -> PaymentTransaction | None:
        async def _credit(session: AsyncClientSession) -> PaymentTransaction | None:
            raw = await self._col.find_one_and_update(
                {"transaction_id": transaction_id, "status": "pending"},
                {
                    "$set": {
                        "status": "credited",
                        "block_height": block_height,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if raw is None:
                return None
            tx = PaymentTransactionDocument.model_validate(raw).to_domain()
            await credit_user_balance(
                self._users, tx.destination_address, tx.winc_amount, now, session
            )
            return tx

        async with self._client.start_session() as session:
            return await session.with_transaction(_credit)

    async def mark_failed(
        self, transaction_id: str, reason: str, now: datetime
    ) -> PaymentTransaction | None:
        raw = await self._col.find_one_and_update(
            {"transaction_id": transaction_id, "status": "pending"},
            {"$set": {"status": "failed", "failed_reason": reason, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is None:
            return None
        return PaymentTransactionDocument.model_validate(raw).to_domain()
