from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    CHUNK_SIZE_BYTES,
    DEFAULT_INFRA_FEE_MAGNITUDE,
    DEFAULT_PENDING_TX_EXPIRY_SECONDS,
    PAYMENT_AMOUNT_LIMITS,
    PROCESSOR_MINIMUM_CHARGE,
    SUPPORTED_PAYMENT_TOKENS,
    WINC_PER_CREDIT,
)


DEFAULT_CONFIG_FILE_NAME = "config.yaml"


@dataclass(slots=True)
class PricingConfig:
    chunk_size_bytes: int = CHUNK_SIZE_BYTES
    winc_per_credit: int = WINC_PER_CREDIT
    # 카탈로그에 inclusive 결제 조정이 없을 때 사용할 인프라 수수료 비율
    infra_fee_magnitude: float = DEFAULT_INFRA_FEE_MAGNITUDE
    processor_minimum_charge: dict[str, int] = field(
        default_factory=lambda: dict(PROCESSOR_MINIMUM_CHARGE)
    )


@dataclass(slots=True)
class CacheConfig:
    bytes_oracle_capacity: int = 100
    bytes_oracle_ttl_seconds: float = 15 * 60
    fiat_oracle_capacity: int = 10
    fiat_oracle_ttl_seconds: float = 60
    token_oracle_capacity: int = 10
    token_oracle_ttl_seconds: float = 60
    # 호출자가 기다리는 최대 시간. None 이면 업스트림 응답까지 기다린다.
    fetch_timeout_seconds: float | None = None


@dataclass(slots=True)
class OracleConfig:
    arweave_gateway_url: str = "https://arweave.net"
    coingecko_api_url: str = "https://api.coingecko.com/api/v3/"
    request_timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5


@dataclass(slots=True)
class CurrencyLimit:
    minimum_payment_amount: int
    maximum_payment_amount: int
    suggested_payment_amounts: tuple[int, int, int]


@dataclass(slots=True)
class CurrencyLimitConfig:
    limits: dict[str, CurrencyLimit] = field(
        default_factory=lambda: {
            currency: CurrencyLimit(minimum, maximum, suggested)
            for currency, (minimum, maximum, suggested) in PAYMENT_AMOUNT_LIMITS.items()
        }
    )


@dataclass(slots=True)
class CryptoConfig:
    # 토큰별 입금 지갑 주소. 설정되지 않은 토큰의 입금은 받지 않는다.
    wallet_addresses: dict[str, str] = field(default_factory=dict)
    pending_tx_expiry_seconds: int = DEFAULT_PENDING_TX_EXPIRY_SECONDS
    # arweave 트랜잭션을 확정으로 보기 위한 최소 확인 수
    arweave_min_confirmations: int = 18
    # 서비스 안에서 pending 정산 잡을 돌리는 주기. 0 이면 돌리지 않는다 (크론 사용).
    pending_tx_check_interval_seconds: float = 5 * 60


@dataclass(slots=True)
class AppConfig:
    """payment-service 전체 설정 루트."""

    pricing: PricingConfig = field(default_factory=PricingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    currency_limits: CurrencyLimitConfig = field(default_factory=CurrencyLimitConfig)
    crypto: CryptoConfig = field(default_factory=CryptoConfig)


def _find_config_path() -> Path | None:
    """현재 작업 디렉토리 기준으로 상위로 올라가며 config.yaml 을 찾는다.

    설정 파일은 선택 사항이므로 찾지 못하면 None 을 반환하고 기본값을 사용한다.
    """

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid integer for {name}: {value!r}") from exc


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:  # noqa: TRY003
        raise RuntimeError(f"invalid number for {name}: {value!r}") from exc


def _load_pricing(data: dict[str, Any]) -> PricingConfig:
    cfg = PricingConfig()
    if "chunk_size_bytes" in data:
        cfg.chunk_size_bytes = _as_int(data["chunk_size_bytes"], "pricing.chunk_size_bytes")
    if "infra_fee_magnitude" in data:
        cfg.infra_fee_magnitude = _as_float(
            data["infra_fee_magnitude"], "pricing.infra_fee_magnitude"
        )
    for currency, amount in (data.get("processor_minimum_charge") or {}).items():
        cfg.processor_minimum_charge[str(currency).lower()] = _as_int(
            amount, f"pricing.processor_minimum_charge.{currency}"
        )

    raw_fee = os.getenv("INFRA_FEE_MAGNITUDE", "").strip()
    if raw_fee:
        cfg.infra_fee_magnitude = _as_float(raw_fee, "INFRA_FEE_MAGNITUDE")

    if cfg.chunk_size_bytes <= 0:
        raise RuntimeError("pricing.chunk_size_bytes must be positive")
    if not 0 <= cfg.infra_fee_magnitude < 1:
        raise RuntimeError("pricing.infra_fee_magnitude must be within [0, 1)")
    return cfg


def _load_cache(data: dict[str, Any]) -> CacheConfig:
    cfg = CacheConfig()
    for name in (
        "bytes_oracle_capacity",
        "fiat_oracle_capacity",
        "token_oracle_capacity",
    ):
        if name in data:
            setattr(cfg, name, _as_int(data[name], f"cache.{name}"))
    for name in (
        "bytes_oracle_ttl_seconds",
        "fiat_oracle_ttl_seconds",
        "token_oracle_ttl_seconds",
    ):
        if name in data:
            setattr(cfg, name, _as_float(data[name], f"cache.{name}"))
    if data.get("fetch_timeout_seconds") is not None:
        cfg.fetch_timeout_seconds = _as_float(
            data["fetch_timeout_seconds"], "cache.fetch_timeout_seconds"
        )
    return cfg


def _load_oracle(data: dict[str, Any]) -> OracleConfig:
    cfg = OracleConfig()
    cfg.arweave_gateway_url = os.getenv(
        "ARWEAVE_GATEWAY_URL", str(data.get("arweave_gateway_url") or cfg.arweave_gateway_url)
    )
    cfg.coingecko_api_url = os.getenv(
        "COINGECKO_API_URL", str(data.get("coingecko_api_url") or cfg.coingecko_api_url)
    )
    if "request_timeout_seconds" in data:
        cfg.request_timeout_seconds = _as_float(
            data["request_timeout_seconds"], "oracle.request_timeout_seconds"
        )
    if "retry_attempts" in data:
        cfg.retry_attempts = _as_int(data["retry_attempts"], "oracle.retry_attempts")
    if "retry_backoff_seconds" in data:
        cfg.retry_backoff_seconds = _as_float(
            data["retry_backoff_seconds"], "oracle.retry_backoff_seconds"
        )
    if cfg.retry_attempts < 1:
        raise RuntimeError("oracle.retry_attempts must be at least 1")
    return cfg


def _load_currency_limits(data: dict[str, Any]) -> CurrencyLimitConfig:
    cfg = CurrencyLimitConfig()
    for currency, raw in data.items():
        if not isinstance(raw, dict):
            continue
        key = str(currency).lower()
        suggested = raw.get("suggested_payment_amounts") or []
        if len(suggested) != 3:
            raise RuntimeError(
                f"currency_limits.{key}.suggested_payment_amounts must have 3 values"
            )
        cfg.limits[key] = CurrencyLimit(
            minimum_payment_amount=_as_int(
                raw.get("minimum_payment_amount"), f"currency_limits.{key}.minimum"
            ),
            maximum_payment_amount=_as_int(
                raw.get("maximum_payment_amount"), f"currency_limits.{key}.maximum"
            ),
            suggested_payment_amounts=(
                _as_int(suggested[0], f"currency_limits.{key}.suggested"),
                _as_int(suggested[1], f"currency_limits.{key}.suggested"),
                _as_int(suggested[2], f"currency_limits.{key}.suggested"),
            ),
        )
    return cfg


def _load_crypto(data: dict[str, Any]) -> CryptoConfig:
    cfg = CryptoConfig()
    for token, address in (data.get("wallet_addresses") or {}).items():
        if address:
            cfg.wallet_addresses[str(token)] = str(address)

    # 환경 변수가 있으면 우선한다. 예: ETHEREUM_WALLET_ADDRESS, BASE_ETH_WALLET_ADDRESS
    for token in SUPPORTED_PAYMENT_TOKENS:
        env_name = f"{token.upper().replace('-', '_')}_WALLET_ADDRESS"
        value = os.getenv(env_name, "").strip()
        if value:
            cfg.wallet_addresses[token] = value

    if "pending_tx_expiry_seconds" in data:
        cfg.pending_tx_expiry_seconds = _as_int(
            data["pending_tx_expiry_seconds"], "crypto.pending_tx_expiry_seconds"
        )
    if "pending_tx_check_interval_seconds" in data:
        cfg.pending_tx_check_interval_seconds = _as_float(
            data["pending_tx_check_interval_seconds"],
            "crypto.pending_tx_check_interval_seconds",
        )
    if cfg.pending_tx_check_interval_seconds < 0:
        raise RuntimeError("crypto.pending_tx_check_interval_seconds must not be negative")
    min_confirmations = os.getenv("ARWEAVE_MIN_CONFIRMATIONS") or data.get(
        "arweave_min_confirmations"
    )
    if min_confirmations is not None:
        cfg.arweave_min_confirmations = _as_int(
            min_confirmations, "crypto.arweave_min_confirmations"
        )
    return cfg


def load_config(path: Path | None = None) -> AppConfig:
    """payment-service 설정을 로드하여 AppConfig 로 반환한다.

    config.yaml 의 payment_service 섹션을 읽고, 환경 변수 값으로 덮어쓴다.
    """

    path = path or _find_config_path()
    data: dict[str, Any] = {}
    if path is not None:
        with path.open("r", encoding="utf-8") as f:
            data = (yaml.safe_load(f) or {}).get("payment_service") or {}

    return AppConfig(
        pricing=_load_pricing(data.get("pricing") or {}),
        cache=_load_cache(data.get("cache") or {}),
        oracle=_load_oracle(data.get("oracle") or {}),
        currency_limits=_load_currency_limits(data.get("currency_limits") or {}),
        crypto=_load_crypto(data.get("crypto") or {}),
    )
