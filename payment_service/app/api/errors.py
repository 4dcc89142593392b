"""PaymentServiceError -> HTTP 응답 매핑.

라우터는 예외를 잡지 않고 그대로 올리며, 상태 코드는 ErrorKind 별 테이블 하나로 결정한다.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import PaymentServiceError


logger = logging.getLogger(__name__)


async def payment_service_error_handler(
    request: Request, exc: PaymentServiceError
) -> JSONResponse:
    status_code = exc.status_code
    log = logger.warning if status_code >= 500 else logger.info
    log(
        "request rejected: %s",
        exc.message,
        extra={
            "error_kind": str(exc.kind),
            "path": request.url.path,
            "status_code": status_code,
        },
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PaymentServiceError, payment_service_error_handler)  # type: ignore[arg-type]
