import contextvars
import json
import logging
import os
import sys


# RequestTraceMiddleware 가 요청마다 설정하고, 포맷터가 모든 로그 라인에 붙인다.
request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)

# extra 로 넘어오면 JSON 로그에 그대로 포함하는 필드 목록
EXTRA_LOG_KEYS: tuple[str, ...] = (
    "request_id",
    "span_id",
    "method",
    "path",
    "query_params",
    "status",
    "duration",
    "address",
    "signer_address",
    "paying_address",
    "data_item_id",
    "byte_count",
    "winc",
    "currency",
    "token",
    "tx_id",
    "cache_key",
    "catalog_id",
    "promo_code",
    "approval_id",
    "payment_receipt_id",
    "payers",
    "count",
    "status_code",
    "error_kind",
)


def setup_logger(
    name: str = "payment-service", level: str | None = None
) -> logging.Logger:
    """애플리케이션 전역 로거를 설정하고 반환한다.

    Args:
        name: 로거 이름 (기본값: payment-service)
        level: 로그 레벨 (기본값: None -> 환경변수 LOG_LEVEL 또는 INFO 사용)

    Returns:
        설정된 logging.Logger 인스턴스
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")

    log_level = getattr(logging, level.upper(), logging.INFO)

    service_name = os.getenv("SERVICE_NAME", name)
    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)

    # 이미 핸들러가 있다면 제거 (중복 출력 방지)
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    # 모듈 로거(payment_service.app.*)는 루트 로거로 전파되므로 루트에도 같은 핸들러를 단다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
        root_logger.setLevel(log_level)

    return logger


class JsonFormatter(logging.Formatter):
    """구조화 로그 수집을 위한 JSON 포맷터.

    - datetime, level, logger, message 필드를 기본으로 포함한다.
    - request_id 는 extra 값을 우선 사용하고, 없으면 컨텍스트 변수 값을 사용한다.
    - 예외 정보가 있으면 exc_info 필드에 문자열로 추가한다.
    """

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, object] = {
            "datetime": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in EXTRA_LOG_KEYS:
            if hasattr(record, key):
                log_record[key] = getattr(record, key)

        if "request_id" not in log_record:
            request_id = request_id_var.get()
            if request_id:
                log_record["request_id"] = request_id

        service_name = getattr(record, "service_name", None) or os.getenv(
            "SERVICE_NAME"
        )
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        # winc 같은 큰 정수/Decimal 값은 문자열로 남긴다.
        return json.dumps(log_record, ensure_ascii=False, default=str)
