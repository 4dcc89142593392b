from __future__ import annotations

import logging

import httpx

from ..cache.read_through_cache import ReadThroughCache
from ..config import CacheConfig, OracleConfig
from ..constants import (
    ALL_FIAT_RATES_CACHE_KEY,
    BASE_CREDIT_TOKEN,
    SUPPORTED_FIAT_CURRENCIES,
    TOKEN_TO_COINGECKO_ID,
)
from ..exceptions import OracleUnavailableError, UnsupportedCurrencyTypeError
from ..metrics import MetricsContext
from .http import get_with_retries
from .interfaces import FiatToCreditOracleInterface


logger = logging.getLogger(__name__)


class CoingeckoFiatToCreditOracle:
    """CoinGecko simple/price 로 기준 토큰 1개의 통화별 가격을 한 번에 조회한다."""

    name = "fiat-to-credit"

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

    async def get_rates_for_one_credit_unit(self) -> dict[str, float]:
        coingecko_id = TOKEN_TO_COINGECKO_ID[BASE_CREDIT_TOKEN]
        url = f"{self._config.coingecko_api_url.rstrip('/')}/simple/price"
        resp = await get_with_retries(
            self._client,
            url,
            oracle_name=self.name,
            attempts=self._config.retry_attempts,
            backoff_seconds=self._config.retry_backoff_seconds,
            params={
                "ids": coingecko_id,
                "vs_currencies": ",".join(SUPPORTED_FIAT_CURRENCIES),
            },
            metrics=self._metrics,
        )

        try:
            prices = resp.json()[coingecko_id]
            rates = {
                currency: float(prices[currency])
                for currency in SUPPORTED_FIAT_CURRENCIES
            }
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("unexpected response shape from coingecko url=%s", url)
            raise OracleUnavailableError(self.name, "unexpected response shape") from exc

        if any(rate <= 0 for rate in rates.values()):
            raise OracleUnavailableError(self.name, "non-positive rate in response")
        return rates


class ReadThroughFiatToCreditOracle:
    """모든 통화의 가격을 상수 키 하나로 캐시하고 통화별 조회를 제공한다."""

    def __init__(
        self,
        oracle: FiatToCreditOracleInterface,
        config: CacheConfig,
        *,
        metrics: MetricsContext | None = None,
    ) -> None:
        self._oracle = oracle
        self._cache: ReadThroughCache[str, dict[str, float]] = ReadThroughCache(
            name="fiat_to_credit",
            fetch=self._fetch,
            capacity=config.fiat_oracle_capacity,
            ttl_seconds=config.fiat_oracle_ttl_seconds,
            timeout_seconds=config.fetch_timeout_seconds,
            metrics=metrics,
        )

    async def _fetch(self, _key: str) -> dict[str, float]:
        return await self._oracle.get_rates_for_one_credit_unit()

    async def get_rates_for_one_credit_unit(self) -> dict[str, float]:
        try:
            return await self._cache.get(ALL_FIAT_RATES_CACHE_KEY)
        except TimeoutError as exc:
            raise OracleUnavailableError(
                CoingeckoFiatToCreditOracle.name, "timed out waiting for rates"
            ) from exc

    async def get_fiat_price_for_one_credit(self, currency: str) -> float:
        rates = await self.get_rates_for_one_credit_unit()
        rate = rates.get(currency.lower())
        if rate is None:
            raise UnsupportedCurrencyTypeError(currency)
        return rate
