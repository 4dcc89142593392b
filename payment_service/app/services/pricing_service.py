"""가격 산정 서비스.

캐시된 오라클 환율과 조정 카탈로그를 합쳐 바이트/법정화폐/암호화폐 금액을 크레딧으로 환산한다.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal, localcontext
from typing import Callable, Literal, Sequence

from ..config import CurrencyLimit, CurrencyLimitConfig, PricingConfig
from ..constants import (
    MAX_PROCESSOR_AMOUNT,
    MAX_PROCESSOR_DIGITS,
    SUPPORTED_FIAT_CURRENCIES,
    TOKEN_DECIMALS,
    ZERO_DECIMAL_CURRENCIES,
)
from ..exceptions import (
    BadRequestError,
    InvalidCryptoPaymentError,
    PaymentAmountTooLargeError,
    PaymentAmountTooSmallError,
    PaymentAmountTooSmallForPromoCodeError,
    PromoCodeExceedsMaxUsesError,
    PromoCodeExpiredError,
    PromoCodeNotFoundError,
    UnsupportedCurrencyTypeError,
    UnsupportedTokenError,
    UserIneligibleForPromoCodeError,
)
from ..models.adjustment import AppliedAdjustment, InclusiveAdjustment, PromoCodeAdjustment
from ..models.payment import Payment
from ..models.price import NetworkPrice
from ..models.quote import (
    BytesPriceQuote,
    CryptoPriceQuote,
    CurrencyLimitation,
    PaymentPriceQuote,
    TopUpQuote,
)
from ..models.winc import Winc
from ..oracles.bytes_to_credit_oracle import ReadThroughBytesToCreditOracle
from ..oracles.fiat_to_credit_oracle import ReadThroughFiatToCreditOracle
from ..oracles.token_to_fiat_oracle import ReadThroughTokenToFiatOracle
from ..repositories.interfaces import AdjustmentCatalogRepositoryInterface
from .adjustment_engine import (
    apply_inclusive_fees,
    apply_promo_code_to_payment,
    apply_upload_adjustments,
    invert_inclusive_fees,
)


logger = logging.getLogger(__name__)


FeeMode = Literal["none", "invert", "standard"]

ONE_GIB = 1024**3

DEFAULT_INFRA_FEE_CATALOG_ID = "default-infra-fee"


def round_up_to_chunk_size(byte_count: int, chunk_size: int) -> int:
    """바이트 수를 청크 크기의 배수로 올림한다. 0 바이트는 0 으로 남는다."""

    if byte_count <= 0:
        return 0
    return math.ceil(byte_count / chunk_size) * chunk_size


def apply_processor_minimum_charge(
    payment_amount: int, minimum_charge: int
) -> tuple[int, int]:
    """결제 대행사 최소 청구 금액 규칙.

    할인된 청구 금액이 0 보다 크고 최소 금액보다 작으면 최소 금액으로 올려 청구하고,
    더 받은 금액을 (청구 금액, 초과 금액) 으로 돌려준다. 초과 금액만큼은 크레딧을 추가 적립한다.
    """

    if 0 < payment_amount < minimum_charge:
        return minimum_charge, minimum_charge - payment_amount
    return payment_amount, 0


def _count_digits(value: float) -> int:
    return len(f"{value:.0f}")


def _snap_multiplier(value: float) -> float:
    return 10.0 ** (_count_digits(value) - 2)


def _is_within_ten_percent(value: float, target: float) -> bool:
    return abs(value - target) / target * 100 <= 10


class PricingService:
    """바이트/결제/암호화폐 가격 견적과 통화 한도를 계산한다."""

    def __init__(
        self,
        *,
        bytes_oracle: ReadThroughBytesToCreditOracle,
        fiat_oracle: ReadThroughFiatToCreditOracle,
        token_oracle: ReadThroughTokenToFiatOracle,
        catalog: AdjustmentCatalogRepositoryInterface,
        pricing_config: PricingConfig,
        currency_limits: CurrencyLimitConfig,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._bytes_oracle = bytes_oracle
        self._fiat_oracle = fiat_oracle
        self._token_oracle = token_oracle
        self._catalog = catalog
        self._config = pricing_config
        self._currency_limits = currency_limits
        self._clock = clock

    # -------- bytes --------

    async def get_price_for_bytes(
        self, byte_count: int, payer_address: str | None = None
    ) -> BytesPriceQuote:
        if isinstance(byte_count, bool) or byte_count < 0:
            raise BadRequestError(
                "Byte count must be a non-negative integer",
                details={"byte_count": byte_count},
            )
        chunk_size = round_up_to_chunk_size(byte_count, self._config.chunk_size_bytes)
        network_winc = await self._bytes_oracle.get_credits_for_bytes(chunk_size)
        adjustments = await self._catalog.get_active_upload_adjustments(
            self._clock(), payer_address
        )

        final_price, applied = apply_upload_adjustments(
            NetworkPrice(network_winc), adjustments, byte_count=byte_count
        )
        logger.debug(
            "priced upload",
            extra={
                "byte_count": byte_count,
                "winc": str(final_price.winc),
                "address": payer_address,
            },
        )
        return BytesPriceQuote(
            byte_count=byte_count,
            final_price=final_price.winc,
            network_price=network_winc,
            adjustments=applied,
        )

    # -------- fiat --------

    async def get_credits_for_payment(
        self,
        payment: Payment,
        promo_codes: Sequence[str] = (),
        payer_address: str | None = None,
        *,
        validate_limits: bool = True,
    ) -> PaymentPriceQuote:
        """결제 금액을 크레딧으로 환산한다.

        프로모션 코드는 결제 금액(법정화폐)에, 상시 수수료는 환산된 크레딧에 적용한다.
        """

        if validate_limits:
            await self.validate_payment_amount(payment)

        now = self._clock()
        actual_amount = payment.amount
        applied: list[AppliedAdjustment] = []
        promo = await self._resolve_promo_code(promo_codes, payment, payer_address, now)
        if promo is not None:
            actual_amount, promo_applied = apply_promo_code_to_payment(
                payment.amount, payment.currency, promo
            )
            applied.append(promo_applied)

        fiat_price_per_credit = await self._fiat_oracle.get_fiat_price_for_one_credit(
            payment.currency
        )
        base_winc = payment.with_amount(actual_amount).winc_for_credit_price(
            fiat_price_per_credit, self._config.winc_per_credit
        )
        final_winc, inclusive_applied = apply_inclusive_fees(
            base_winc, await self._inclusive_payment_adjustments(now)
        )

        logger.info(
            "priced payment",
            extra={
                "currency": payment.currency,
                "winc": str(final_winc),
                "address": payer_address,
                "promo_code": promo.code if promo else None,
            },
        )
        return PaymentPriceQuote(
            currency=payment.currency,
            final_price=final_winc,
            quoted_payment_amount=payment.amount,
            actual_payment_amount=actual_amount,
            adjustments=applied,
            inclusive_adjustments=inclusive_applied,
        )

    async def get_top_up_quote(
        self,
        payment: Payment,
        destination_address: str,
        promo_codes: Sequence[str] = (),
    ) -> TopUpQuote:
        """충전 견적. 결제 대행사 최소 금액 규칙은 apply_processor_minimum_charge 로만 적용한다."""

        quote = await self.get_credits_for_payment(
            payment, promo_codes, destination_address
        )
        minimum_charge = self._config.processor_minimum_charge.get(payment.currency, 0)
        charged_amount, excess_amount = apply_processor_minimum_charge(
            quote.actual_payment_amount, minimum_charge
        )

        excess_winc = Winc(0)
        if excess_amount > 0:
            excess_quote = await self.get_credits_for_payment(
                payment.with_amount(excess_amount), (), validate_limits=False
            )
            excess_winc = excess_quote.final_price
            logger.info(
                "payment raised to processor minimum",
                extra={
                    "currency": payment.currency,
                    "address": destination_address,
                    "winc": str(excess_winc),
                },
            )

        return TopUpQuote(
            destination_address=destination_address,
            currency=payment.currency,
            quoted_payment_amount=quote.quoted_payment_amount,
            payment_amount=charged_amount,
            winc_amount=quote.final_price,
            excess_winc=excess_winc,
            adjustments=quote.adjustments,
            inclusive_adjustments=quote.inclusive_adjustments,
        )

    async def _inclusive_payment_adjustments(
        self, now: datetime
    ) -> list[InclusiveAdjustment]:
        adjustments = await self._catalog.get_active_payment_adjustments(now)
        if adjustments:
            return adjustments
        return [
            InclusiveAdjustment(
                catalog_id=DEFAULT_INFRA_FEE_CATALOG_ID,
                name="Infrastructure Fee",
                description="Inclusive fee applied to all credit purchases",
                operator="multiply",
                magnitude=self._config.infra_fee_magnitude,
                priority=0,
                start_date=datetime(2023, 1, 1, tzinfo=timezone.utc),
            )
        ]

    async def _resolve_promo_code(
        self,
        promo_codes: Sequence[str],
        payment: Payment,
        payer_address: str | None,
        now: datetime,
    ) -> PromoCodeAdjustment | None:
        resolved: list[PromoCodeAdjustment] = []
        for code in dict.fromkeys(c.strip() for c in promo_codes if c.strip()):
            promo = await self._catalog.get_promo_code(code)
            if promo is None:
                raise PromoCodeNotFoundError(code)
            if not promo.is_active(now):
                raise PromoCodeExpiredError(code)
            if not promo.has_uses_left():
                raise PromoCodeExceedsMaxUsesError(code, promo.max_uses or 0)
            if (
                promo.minimum_payment_amount is not None
                and payment.amount < promo.minimum_payment_amount
            ):
                raise PaymentAmountTooSmallForPromoCodeError(
                    code, promo.minimum_payment_amount
                )
            if promo.target_user_group is not None and (
                payer_address is None
                or not await self._catalog.is_user_in_group(
                    payer_address, promo.target_user_group
                )
            ):
                raise UserIneligibleForPromoCodeError(
                    code, payer_address, promo.target_user_group
                )
            resolved.append(promo)

        if len(resolved) > 1:
            raise BadRequestError(
                "Only one exclusive promo code can be applied per payment",
                details={"promo_codes": [promo.code for promo in resolved]},
            )
        return resolved[0] if resolved else None

    # -------- crypto --------

    async def get_credits_for_crypto_payment(
        self, amount: int, token: str, fee_mode: FeeMode = "standard"
    ) -> CryptoPriceQuote:
        """토큰 최소 단위 수량을 크레딧으로 환산한다.

        - standard: 상시 수수료를 뺀다. (입금 적립)
        - invert: 수수료를 얹는다. (법정화폐로 결제할 토큰 가격 견적)
        - none: 수수료를 적용하지 않는다. (내부 원가 견적)
        """

        if token not in TOKEN_DECIMALS:
            raise UnsupportedTokenError(token)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidCryptoPaymentError(
                f"Token amount must be a non-negative integer, got {amount!r}",
                details={"token": token},
            )

        ratio = await self._token_oracle.get_price_ratio_for_token(token)
        with localcontext() as ctx:
            ctx.prec = 80
            raw_winc = (
                Decimal(amount)
                * ratio
                * Decimal(self._config.winc_per_credit)
                / (Decimal(10) ** TOKEN_DECIMALS[token])
            )
            base_winc = Winc(raw_winc.to_integral_value(rounding=ROUND_FLOOR))

        inclusive_applied: list[AppliedAdjustment] = []
        final_winc = base_winc
        if fee_mode != "none":
            adjustments = await self._inclusive_payment_adjustments(self._clock())
            if fee_mode == "standard":
                final_winc, inclusive_applied = apply_inclusive_fees(base_winc, adjustments)
            else:
                final_winc, inclusive_applied = invert_inclusive_fees(
                    base_winc, adjustments
                )

        return CryptoPriceQuote(
            token=token,
            amount=amount,
            final_price=final_winc,
            inclusive_adjustments=inclusive_applied,
        )

    # -------- currency limits / rates --------

    async def validate_payment_amount(self, payment: Payment) -> CurrencyLimitation:
        limitation = (await self.get_currency_limitations())[payment.currency]
        if payment.amount < limitation.minimum_payment_amount:
            raise PaymentAmountTooSmallError(
                payment.amount, payment.currency, limitation.minimum_payment_amount
            )
        if payment.amount > limitation.maximum_payment_amount:
            raise PaymentAmountTooLargeError(
                payment.amount, payment.currency, limitation.maximum_payment_amount
            )
        return limitation

    async def get_currency_limitations(self) -> dict[str, CurrencyLimitation]:
        """지원 통화별 결제 한도를 현재 환율로 동적으로 계산한다.

        USD 한도를 각 통화로 환산해 보기 좋은 수로 맞추고, 정적 기본값과 10% 이내면 기본값을 쓴다.
        """

        rates = await self._fiat_oracle.get_rates_for_one_credit_unit()
        usd_limit = self._currency_limits.limits["usd"]
        usd_price = rates["usd"]
        return {
            currency: self._dynamic_limitation(
                currency,
                self._currency_limits.limits[currency],
                usd_limit,
                usd_price,
                rates[currency],
            )
            for currency in SUPPORTED_FIAT_CURRENCIES
            if currency in self._currency_limits.limits and currency in rates
        }

    def _dynamic_limitation(
        self,
        currency: str,
        static: CurrencyLimit,
        usd_limit: CurrencyLimit,
        usd_price_of_one_credit: float,
        currency_price_of_one_credit: float,
    ) -> CurrencyLimitation:
        zero_decimal = currency in ZERO_DECIMAL_CURRENCIES

        def convert_from_usd(amount: int) -> float:
            # 최소 단위가 없는 통화는 USD cent 가 아니라 dollar 기준으로 환산한다.
            divisor = usd_price_of_one_credit * 100 if zero_decimal else usd_price_of_one_credit
            return amount / divisor * currency_price_of_one_credit

        raw_min = convert_from_usd(usd_limit.minimum_payment_amount)
        min_multiplier = _snap_multiplier(raw_min)
        dynamic_min = int(round(math.ceil(raw_min / min_multiplier) * min_multiplier))

        raw_max = convert_from_usd(usd_limit.maximum_payment_amount)
        max_multiplier = _snap_multiplier(raw_max)
        dynamic_max = int(round(math.floor(raw_max / max_multiplier) * max_multiplier))

        minimum = (
            static.minimum_payment_amount
            if _is_within_ten_percent(dynamic_min, static.minimum_payment_amount)
            else dynamic_min
        )
        if _is_within_ten_percent(dynamic_max, static.maximum_payment_amount):
            maximum = static.maximum_payment_amount
        elif _count_digits(dynamic_max) <= MAX_PROCESSOR_DIGITS:
            maximum = dynamic_max
        else:
            maximum = MAX_PROCESSOR_AMOUNT

        if all(minimum <= value <= maximum for value in static.suggested_payment_amounts):
            suggested = static.suggested_payment_amounts
        else:
            suggested = (minimum, minimum * 2, minimum * 4)

        return CurrencyLimitation(
            minimum_payment_amount=minimum,
            maximum_payment_amount=maximum,
            suggested_payment_amounts=suggested,
            zero_decimal_currency=zero_decimal,
        )

    async def get_fiat_price_for_one_credit(self, currency: str) -> float:
        if currency.lower() not in SUPPORTED_FIAT_CURRENCIES:
            raise UnsupportedCurrencyTypeError(currency)
        return await self._fiat_oracle.get_fiat_price_for_one_credit(currency)

    async def get_rates(self) -> tuple[BytesPriceQuote, dict[str, float]]:
        """1 GiB 업로드 가격(winc)과 그 통화별 가격."""

        quote, fiat_rates = await asyncio.gather(
            self.get_price_for_bytes(ONE_GIB),
            self._fiat_oracle.get_rates_for_one_credit_unit(),
        )
        credits = Decimal(int(quote.final_price)) / Decimal(self._config.winc_per_credit)
        fiat = {
            currency: float(credits * Decimal(str(price)))
            for currency, price in fiat_rates.items()
        }
        return quote, fiat
