from __future__ import annotations

import logging

import httpx

from ..cache.read_through_cache import ReadThroughCache
from ..config import CacheConfig, OracleConfig
from ..exceptions import OracleUnavailableError
from ..metrics import MetricsContext
from ..models.winc import Winc
from .http import get_with_retries
from .interfaces import BytesToCreditOracleInterface


logger = logging.getLogger(__name__)


class GatewayBytesToCreditOracle:
    """스토리지 게이트웨이의 `/price/{bytes}` 엔드포인트로 업로드 원가를 조회한다."""

    name = "bytes-to-credit"

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: OracleConfig,
        *,
        metrics: MetricsContext | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._metrics = metrics

    async def get_credits_for_bytes(self, chunk_size: int) -> Winc:
        url = f"{self._config.arweave_gateway_url.rstrip('/')}/price/{chunk_size}"
        resp = await get_with_retries(
            self._client,
            url,
            oracle_name=self.name,
            attempts=self._config.retry_attempts,
            backoff_seconds=self._config.retry_backoff_seconds,
            metrics=self._metrics,
        )
        body = resp.text.strip()
        try:
            winc = Winc(body)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "unexpected response from bytes oracle url=%s body=%s", url, body[:100]
            )
            raise OracleUnavailableError(self.name, "unexpected response body") from exc
        logger.debug(
            "fetched upload price from gateway",
            extra={"byte_count": chunk_size, "winc": str(winc)},
        )
        return winc


class ReadThroughBytesToCreditOracle:
    """청크 크기를 키로 업로드 원가를 캐시한다."""

    def __init__(
        self,
        oracle: BytesToCreditOracleInterface,
        config: CacheConfig,
        *,
        metrics: MetricsContext | None = None,
    ) -> None:
        self._cache: ReadThroughCache[int, Winc] = ReadThroughCache(
            name="bytes_to_credit",
            fetch=oracle.get_credits_for_bytes,
            capacity=config.bytes_oracle_capacity,
            ttl_seconds=config.bytes_oracle_ttl_seconds,
            timeout_seconds=config.fetch_timeout_seconds,
            metrics=metrics,
        )

    async def get_credits_for_bytes(self, chunk_size: int) -> Winc:
        try:
            return await self._cache.get(chunk_size)
        except TimeoutError as exc:
            raise OracleUnavailableError(
                GatewayBytesToCreditOracle.name, "timed out waiting for price"
            ) from exc
