from __future__ import annotations

from typing import Final


# 스토리지 네트워크가 가격을 매기는 바이트 단위 (256 KiB)
CHUNK_SIZE_BYTES: Final[int] = 256 * 1024

# 1 크레딧(기준 토큰 1개) = 10^12 winc
WINC_PER_CREDIT: Final[int] = 10**12

# 기본 인프라 수수료 (크레딧 소계에 곱해지는 할인 비율)
DEFAULT_INFRA_FEE_MAGNITUDE: Final[float] = 0.234

# 결제 대행사가 허용하는 최대 자리수와 그에 대응하는 정돈된 최대 금액
MAX_PROCESSOR_DIGITS: Final[int] = 8
MAX_PROCESSOR_AMOUNT: Final[int] = 99_000_000

SUPPORTED_FIAT_CURRENCIES: Final[tuple[str, ...]] = (
    "usd",
    "brl",
    "hkd",
    "jpy",
    "cad",
    "gbp",
    "eur",
    "sgd",
    "aud",
    "inr",
)

# 최소 단위가 없는 통화 (금액이 곧 주 단위)
ZERO_DECIMAL_CURRENCIES: Final[frozenset[str]] = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)

# 통화별 정적 결제 한도 (최소 단위). (minimum, maximum, suggested)
PAYMENT_AMOUNT_LIMITS: Final[dict[str, tuple[int, int, tuple[int, int, int]]]] = {
    "aud": (1500, 1_500_000, (2500, 7500, 15000)),
    "brl": (5000, 5_000_000, (12500, 25000, 50000)),
    "cad": (1000, 1_500_000, (2500, 5000, 10000)),
    "eur": (1000, 1_000_000, (2500, 5000, 10000)),
    "gbp": (1000, 1_000_000, (2000, 4000, 8000)),
    "hkd": (10000, 10_000_000, (20000, 40000, 80000)),
    "inr": (100000, 90_000_000, (200000, 400000, 800000)),
    "jpy": (1500, 1_500_000, (3500, 6500, 15000)),
    "sgd": (1500, 1_500_000, (2500, 7500, 15000)),
    "usd": (1000, 1_000_000, (2500, 5000, 10000)),
}

# 결제 대행사 최소 청구 금액 (최소 단위). 할인 후 금액이 이보다 작으면 이 금액으로 청구한다.
PROCESSOR_MINIMUM_CHARGE: Final[dict[str, int]] = {
    "usd": 50,
    "aud": 50,
    "brl": 50,
    "cad": 50,
    "eur": 50,
    "gbp": 30,
    "hkd": 400,
    "inr": 50,
    "jpy": 50,
    "sgd": 50,
}

# 결제 토큰 -> CoinGecko 토큰 id
TOKEN_TO_COINGECKO_ID: Final[dict[str, str]] = {
    "arweave": "arweave",
    "ethereum": "ethereum",
    "solana": "solana",
    "ed25519": "solana",
    "kyve": "kyve-network",
    "matic": "matic-network",
    "pol": "matic-network",
    "base-eth": "l2-standard-bridged-weth-base",
    "ario": "ar-io-network",
}

# 토큰별 최소 단위 자리수 (1 토큰 = 10^decimals 최소 단위)
TOKEN_DECIMALS: Final[dict[str, int]] = {
    "arweave": 12,
    "ethereum": 18,
    "solana": 9,
    "ed25519": 9,
    "kyve": 6,
    "matic": 18,
    "pol": 18,
    "base-eth": 18,
    "ario": 6,
}

# 크레딧의 기준 토큰. winc 는 이 토큰의 최소 단위와 1:1 이다.
BASE_CREDIT_TOKEN: Final[str] = "arweave"

SUPPORTED_PAYMENT_TOKENS: Final[tuple[str, ...]] = tuple(TOKEN_TO_COINGECKO_ID)

# 모든 토큰/통화 시세를 한 번에 가져오므로 캐시 키는 상수 하나다.
ALL_TOKEN_RATES_CACHE_KEY: Final[str] = "all-token-rates"
ALL_FIAT_RATES_CACHE_KEY: Final[str] = "all-fiat-rates"

# 확인되지 않은 pending 트랜잭션을 실패 처리하기까지의 기간 (초)
DEFAULT_PENDING_TX_EXPIRY_SECONDS: Final[int] = 24 * 60 * 60
