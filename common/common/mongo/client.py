from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from .config import (
    get_mongo_db_name,
    get_mongo_uri,
    get_server_selection_timeout_ms,
)


logger = logging.getLogger(__name__)


_client: Optional[AsyncMongoClient] = None
_db: Optional[AsyncDatabase] = None
_lock = asyncio.Lock()


async def get_client() -> AsyncMongoClient:
    """전역 AsyncMongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 결제/원장 컬렉션에 필요한 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    async with _lock:
        if _client is not None:
            return _client

        client: AsyncMongoClient = AsyncMongoClient(
            get_mongo_uri(),
            tz_aware=True,
            serverSelectionTimeoutMS=get_server_selection_timeout_ms(),
        )

        try:
            await client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            await client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        db_name = get_mongo_db_name()
        try:
            db = client[db_name] if db_name else client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            await client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        try:
            await ensure_indexes(db)
        except Exception as exc:  # noqa: BLE001
            # 인덱스 생성 실패는 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            await client.close()
            raise

        _client = client
        _db = db
        logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
        return _client


async def get_database() -> AsyncDatabase:
    """전역 기본 Database 객체를 반환한다."""

    if _db is None:
        await get_client()
    assert _db is not None  # get_client 에서 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


async def close_client() -> None:
    global _client, _db

    if _client is not None:
        await _client.close()
    _client = None
    _db = None


async def ensure_indexes(db: AsyncDatabase) -> None:
    """필수 인덱스를 생성한다. 중복 생성해도 MongoDB 가 처리하므로 idempotent 하다."""

    await db["users"].create_index(
        [("address", ASCENDING)], name="uniq_address", unique=True
    )

    approvals = db["delegated_payment_approvals"]
    await approvals.create_index(
        [("approval_id", ASCENDING)], name="uniq_approval_id", unique=True
    )
    await approvals.create_index(
        [("approved_address", ASCENDING), ("paying_address", ASCENDING)],
        name="idx_approved_paying",
    )
    await approvals.create_index(
        [("paying_address", ASCENDING), ("created_at", DESCENDING)],
        name="idx_paying_created",
    )

    await db["balance_reservations"].create_index(
        [("data_item_id", ASCENDING)], name="uniq_data_item_id", unique=True
    )

    # pending/credited/failed 는 하나의 컬렉션에서 status 로 구분하므로 tx id 유니크가 멱등성을 보장한다.
    payment_transactions = db["payment_transactions"]
    await payment_transactions.create_index(
        [("transaction_id", ASCENDING)], name="uniq_transaction_id", unique=True
    )
    await payment_transactions.create_index(
        [("status", ASCENDING), ("created_at", ASCENDING)], name="idx_status_created"
    )

    await db["payment_receipts"].create_index(
        [("payment_receipt_id", ASCENDING)], name="uniq_payment_receipt_id", unique=True
    )
    await db["payment_receipts"].create_index(
        [("address", ASCENDING)], name="idx_receipt_address"
    )

    await db["promo_codes"].create_index(
        [("code", ASCENDING)], name="uniq_promo_code", unique=True
    )
    await db["upload_adjustment_catalog"].create_index(
        [("start_date", ASCENDING), ("end_date", ASCENDING)], name="idx_upload_window"
    )
    await db["payment_adjustment_catalog"].create_index(
        [("start_date", ASCENDING), ("end_date", ASCENDING)], name="idx_payment_window"
    )
