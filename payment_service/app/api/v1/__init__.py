from fastapi import APIRouter

from .approvals import router as approvals_router
from .balance import router as balance_router
from .crypto import router as crypto_router
from .currencies import router as currencies_router
from .price import router as price_router

api_router = APIRouter()
api_router.include_router(price_router)
api_router.include_router(currencies_router)
api_router.include_router(balance_router)
api_router.include_router(
    approvals_router
)  # prefix는 router 파일 내부에서 정의되어 있음 (/account/approvals)
api_router.include_router(crypto_router)
