from __future__ import annotations

import logging
from decimal import Decimal, localcontext

import httpx

from ..cache.read_through_cache import ReadThroughCache
from ..config import CacheConfig, OracleConfig
from ..constants import (
    ALL_TOKEN_RATES_CACHE_KEY,
    BASE_CREDIT_TOKEN,
    SUPPORTED_FIAT_CURRENCIES,
    TOKEN_DECIMALS,
    TOKEN_TO_COINGECKO_ID,
)
from ..exceptions import (
    OracleUnavailableError,
    UnsupportedCurrencyTypeError,
    UnsupportedTokenError,
)
from ..metrics import MetricsContext
from .http import get_with_retries
from .interfaces import TokenToFiatOracleInterface


logger = logging.getLogger(__name__)


class CoingeckoTokenToFiatOracle:
    """CoinGecko simple/price 한 번으로 모든 결제 토큰의 통화별 가격을 조회한다.

    응답은 CoinGecko id 기준이므로 결제 토큰 이름(ed25519, pol 등)으로 다시 펼친다.
    """

    name = "token-to-fiat"

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

    async def get_rates_for_all_tokens(self) -> dict[str, dict[str, float]]:
        coingecko_ids = sorted(set(TOKEN_TO_COINGECKO_ID.values()))
        url = f"{self._config.coingecko_api_url.rstrip('/')}/simple/price"
        resp = await get_with_retries(
            self._client,
            url,
            oracle_name=self.name,
            attempts=self._config.retry_attempts,
            backoff_seconds=self._config.retry_backoff_seconds,
            params={
                "ids": ",".join(coingecko_ids),
                "vs_currencies": ",".join(SUPPORTED_FIAT_CURRENCIES),
            },
            metrics=self._metrics,
        )

        try:
            data = resp.json()
            rates: dict[str, dict[str, float]] = {}
            for token, coingecko_id in TOKEN_TO_COINGECKO_ID.items():
                prices = data.get(coingecko_id)
                if not prices:
                    logger.warning(
                        "coingecko response is missing token",
                        extra={"token": token},
                    )
                    continue
                rates[token] = {
                    currency: float(value)
                    for currency, value in prices.items()
                    if currency in SUPPORTED_FIAT_CURRENCIES
                }
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("unexpected response shape from coingecko url=%s", url)
            raise OracleUnavailableError(self.name, "unexpected response shape") from exc

        # 기준 토큰 가격이 없으면 어떤 환산도 할 수 없다.
        if "usd" not in rates.get(BASE_CREDIT_TOKEN, {}):
            raise OracleUnavailableError(self.name, "base credit token price missing")
        return rates


class ReadThroughTokenToFiatOracle:
    """모든 토큰 시세를 상수 키 하나로 캐시한다. 한 번의 조회로 모든 토큰/통화 조합을 처리한다."""

    def __init__(
        self,
        oracle: TokenToFiatOracleInterface,
        config: CacheConfig,
        *,
        metrics: MetricsContext | None = None,
    ) -> None:
        self._oracle = oracle
        self._cache: ReadThroughCache[str, dict[str, dict[str, float]]] = (
            ReadThroughCache(
                name="token_to_fiat",
                fetch=self._fetch,
                capacity=config.token_oracle_capacity,
                ttl_seconds=config.token_oracle_ttl_seconds,
                timeout_seconds=config.fetch_timeout_seconds,
                metrics=metrics,
            )
        )

    async def _fetch(self, _key: str) -> dict[str, dict[str, float]]:
        return await self._oracle.get_rates_for_all_tokens()

    async def get_rates_for_all_tokens(self) -> dict[str, dict[str, float]]:
        try:
            return await self._cache.get(ALL_TOKEN_RATES_CACHE_KEY)
        except TimeoutError as exc:
            raise OracleUnavailableError(
                CoingeckoTokenToFiatOracle.name, "timed out waiting for rates"
            ) from exc

    async def get_fiat_price_for_one_token(self, token: str, currency: str = "usd") -> float:
        if token not in TOKEN_TO_COINGECKO_ID:
            raise UnsupportedTokenError(token)
        rates = await self.get_rates_for_all_tokens()
        token_rates = rates.get(token)
        if token_rates is None:
            raise OracleUnavailableError(
                CoingeckoTokenToFiatOracle.name, f"no price available for token '{token}'"
            )
        price = token_rates.get(currency.lower())
        if price is None:
            raise UnsupportedCurrencyTypeError(currency)
        return price

    async def get_price_ratio_for_token(self, token: str) -> Decimal:
        """토큰 1개가 기준 토큰 몇 개에 해당하는지 (USD 가격 비율)."""

        token_usd = await self.get_fiat_price_for_one_token(token, "usd")
        base_usd = await self.get_fiat_price_for_one_token(BASE_CREDIT_TOKEN, "usd")
        with localcontext() as ctx:
            ctx.prec = 50
            return Decimal(str(token_usd)) / Decimal(str(base_usd))

    async def get_usd_price_for_crypto_amount(self, amount: int, token: str) -> float:
        """토큰 최소 단위 수량의 USD 가치."""

        usd_price = await self.get_fiat_price_for_one_token(token, "usd")
        decimals = TOKEN_DECIMALS[token]
        with localcontext() as ctx:
            ctx.prec = 50
            value = Decimal(amount) / (Decimal(10) ** decimals) * Decimal(str(usd_price))
        return float(value)
