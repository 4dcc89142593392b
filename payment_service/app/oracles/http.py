from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import OracleConfig
from ..exceptions import OracleUnavailableError
from ..metrics import MetricsContext


logger = logging.getLogger(__name__)


ORACLE_USER_AGENT = "storage-credit-service/0.1"


def build_oracle_client(config: OracleConfig) -> httpx.AsyncClient:
    """오라클 어댑터들이 공유하는 비동기 HTTP 클라이언트를 생성한다."""

    return httpx.AsyncClient(
        timeout=config.request_timeout_seconds,
        follow_redirects=True,
        headers={
            "User-Agent": ORACLE_USER_AGENT,
            "Accept": "application/json, text/plain;q=0.9",
        },
    )


async def get_with_retries(
    client: httpx.AsyncClient,
    url: str,
    *,
    oracle_name: str,
    attempts: int,
    backoff_seconds: float,
    params: dict[str, Any] | None = None,
    metrics: MetricsContext | None = None,
) -> httpx.Response:
    """GET 요청을 재시도 정책에 따라 수행한다.

    - 네트워크 오류, 429, 5xx 는 지수 백오프로 재시도한다.
    - 그 외 4xx 는 재시도해도 결과가 같으므로 바로 실패한다.
    - 모든 시도가 실패하면 OracleUnavailableError 를 던진다.
    """

    last_error = "no attempts made"
    for attempt in range(1, attempts + 1):
        try:
            resp = await client.get(url, params=params)
        except httpx.RequestError as exc:  # noqa: BLE001
            last_error = f"{type(exc).__name__}: {exc}"
            retryable = True
        else:
            if resp.status_code == 200:
                return resp
            last_error = f"status code {resp.status_code}, body: {resp.text[:200]}"
            retryable = resp.status_code == 429 or resp.status_code >= 500

        if metrics is not None:
            metrics.oracle_request_failures.inc(oracle_name)
        logger.warning(
            "oracle request failed (attempt %d/%d) oracle=%s url=%s: %s",
            attempt,
            attempts,
            oracle_name,
            url,
            last_error,
        )
        if not retryable:
            break
        if attempt < attempts:
            await asyncio.sleep(backoff_seconds * (2 ** (attempt - 1)))

    raise OracleUnavailableError(oracle_name, last_error)
