from __future__ import annotations

from datetime import timedelta

import pytest

from payment_service.app.exceptions import (
    BadRequestError,
    ErrorKind,
    InvalidPaymentAmountError,
    PaymentAmountTooLargeError,
    PaymentAmountTooSmallError,
    PaymentServiceError,
    UnsupportedCurrencyTypeError,
    UnsupportedTokenError,
)
from payment_service.app.models.payment import Payment
from payment_service.app.services.pricing_service import (
    ONE_GIB,
    apply_processor_minimum_charge,
    round_up_to_chunk_size,
)
from payment_service.tests.fakes import NOW, build_pricing, inclusive, promo


CHUNK = 256 * 1024


def test_round_up_to_chunk_size() -> None:
    assert round_up_to_chunk_size(0, CHUNK) == 0
    assert round_up_to_chunk_size(1, CHUNK) == CHUNK
    assert round_up_to_chunk_size(CHUNK, CHUNK) == CHUNK
    assert round_up_to_chunk_size(CHUNK + 1, CHUNK) == 2 * CHUNK


@pytest.mark.parametrize(
    ("amount", "minimum", "expected"),
    [
        (30, 50, (50, 20)),
        (50, 50, (50, 0)),
        (0, 50, (0, 0)),
        (8000, 50, (8000, 0)),
    ],
)
def test_apply_processor_minimum_charge(
    amount: int, minimum: int, expected: tuple[int, int]
) -> None:
    assert apply_processor_minimum_charge(amount, minimum) == expected


# -------- bytes --------


async def test_price_for_bytes_uses_chunk_rounded_network_price() -> None:
    fixture = build_pricing()

    quote = await fixture.service.get_price_for_bytes(1)

    assert quote.network_price == CHUNK
    assert quote.final_price == CHUNK
    assert quote.adjustments == []
    assert fixture.bytes_oracle.calls == [CHUNK]


async def test_zero_bytes_are_priced_as_zero_chunk() -> None:
    fixture = build_pricing()

    quote = await fixture.service.get_price_for_bytes(0)

    assert fixture.bytes_oracle.calls == [0]
    assert quote.network_price == 0
    assert quote.final_price == 0


async def test_price_for_bytes_applies_upload_subsidy() -> None:
    fixture = build_pricing()
    fixture.catalog.upload_adjustments = [
        inclusive("subsidy", operator="add", magnitude=-1_000_000)
    ]

    quote = await fixture.service.get_price_for_bytes(1_048_576)

    assert quote.network_price == 1_048_576
    assert quote.final_price == 48_576
    assert quote.adjustments[0].catalog_id == "subsidy"


async def test_price_for_bytes_is_cached_per_chunk_size() -> None:
    fixture = build_pricing()

    await fixture.service.get_price_for_bytes(10)
    await fixture.service.get_price_for_bytes(20)

    assert fixture.bytes_oracle.calls == [CHUNK]


async def test_group_targeted_upload_adjustment_needs_payer() -> None:
    fixture = build_pricing()
    fixture.catalog.upload_adjustments = [
        inclusive("new-user-discount", magnitude=0.5, target_user_group="new_users")
    ]
    fixture.catalog.paying_users.add("returning-user")

    anonymous = await fixture.service.get_price_for_bytes(CHUNK)
    new_user = await fixture.service.get_price_for_bytes(CHUNK, "new-user")
    returning = await fixture.service.get_price_for_bytes(CHUNK, "returning-user")

    assert anonymous.final_price == CHUNK
    assert new_user.final_price == CHUNK // 2
    assert returning.final_price == CHUNK


async def test_negative_byte_count_is_rejected() -> None:
    fixture = build_pricing()

    with pytest.raises(BadRequestError):
        await fixture.service.get_price_for_bytes(-1)


# -------- fiat --------


async def test_payment_without_promo_applies_infra_fee() -> None:
    # 100 USD / 10 USD per credit = 10 credits = 10^13 winc, 23.4% 수수료 차감
    fixture = build_pricing()

    quote = await fixture.service.get_credits_for_payment(Payment(10_000, "usd"))

    assert quote.actual_payment_amount == 10_000
    assert quote.final_price == 7_660_000_000_000
    assert quote.adjustments == []
    assert [a.catalog_id for a in quote.inclusive_adjustments] == ["default-infra-fee"]


async def test_promo_code_discounts_payment_amount() -> None:
    fixture = build_pricing()
    fixture.catalog.promo_codes["TWENTY"] = promo("TWENTY", magnitude=0.2)

    quote = await fixture.service.get_credits_for_payment(
        Payment(10_000, "usd"), ["TWENTY"], "some-address"
    )

    assert quote.quoted_payment_amount == 10_000
    assert quote.actual_payment_amount == 8000
    assert quote.final_price == 6_128_000_000_000
    assert quote.adjustments[0].adjustment_amount == -2000
    assert quote.adjustments[0].promo_code == "TWENTY"


async def test_catalog_payment_adjustments_replace_default_fee() -> None:
    fixture = build_pricing()
    fixture.catalog.payment_adjustments = [inclusive("fee", magnitude=0.1)]

    quote = await fixture.service.get_credits_for_payment(Payment(10_000, "usd"))

    assert quote.final_price == 9_000_000_000_000
    assert [a.catalog_id for a in quote.inclusive_adjustments] == ["fee"]


@pytest.mark.parametrize(
    ("setup", "kind"),
    [
        (lambda catalog: None, ErrorKind.PROMO_CODE_NOT_FOUND),
        (
            lambda catalog: catalog.promo_codes.__setitem__(
                "CODE", promo("CODE", end_date=NOW - timedelta(days=1))
            ),
            ErrorKind.PROMO_CODE_EXPIRED,
        ),
        (
            lambda catalog: catalog.promo_codes.__setitem__(
                "CODE", promo("CODE", max_uses=3, uses=3)
            ),
            ErrorKind.PROMO_CODE_EXCEEDS_MAX_USES,
        ),
        (
            lambda catalog: catalog.promo_codes.__setitem__(
                "CODE", promo("CODE", minimum_payment_amount=50_000)
            ),
            ErrorKind.PAYMENT_AMOUNT_TOO_SMALL_FOR_PROMO_CODE,
        ),
        (
            lambda catalog: catalog.promo_codes.__setitem__(
                "CODE", promo("CODE", target_user_group="new_users")
            ),
            ErrorKind.USER_INELIGIBLE_FOR_PROMO_CODE,
        ),
    ],
)
async def test_invalid_promo_codes_are_rejected(setup, kind: ErrorKind) -> None:
    fixture = build_pricing()
    setup(fixture.catalog)
    fixture.catalog.paying_users.add("returning-user")

    with pytest.raises(PaymentServiceError) as exc_info:
        await fixture.service.get_credits_for_payment(
            Payment(10_000, "usd"), ["CODE"], "returning-user"
        )

    assert exc_info.value.kind == kind
    assert exc_info.value.status_code == 400


async def test_more_than_one_promo_code_is_rejected() -> None:
    fixture = build_pricing()
    fixture.catalog.promo_codes["A"] = promo("A")
    fixture.catalog.promo_codes["B"] = promo("B")

    with pytest.raises(BadRequestError):
        await fixture.service.get_credits_for_payment(Payment(10_000, "usd"), ["A", "B"])


async def test_duplicate_promo_code_counts_once() -> None:
    fixture = build_pricing()
    fixture.catalog.promo_codes["A"] = promo("A")

    quote = await fixture.service.get_credits_for_payment(
        Payment(10_000, "usd"), ["A", " A "]
    )

    assert quote.actual_payment_amount == 8000


@pytest.mark.parametrize(
    ("amount", "error"),
    [(999, PaymentAmountTooSmallError), (1_000_001, PaymentAmountTooLargeError)],
)
async def test_payment_amount_outside_limits_is_rejected(amount: int, error) -> None:
    fixture = build_pricing()

    with pytest.raises(error):
        await fixture.service.get_credits_for_payment(Payment(amount, "usd"))


def test_payment_rejects_unknown_currency_and_bad_amount() -> None:
    with pytest.raises(UnsupportedCurrencyTypeError):
        Payment(1000, "doge")
    with pytest.raises(InvalidPaymentAmountError):
        Payment(-1, "usd")


async def test_top_up_quote_charges_processor_minimum() -> None:
    # 10 USD 에 99.6% 할인 -> 4 cent. 최소 청구 50 cent 로 올리고 46 cent 만큼 추가 적립한다.
    fixture = build_pricing()
    fixture.catalog.promo_codes["ALMOST-FREE"] = promo("ALMOST-FREE", magnitude=0.996)

    quote = await fixture.service.get_top_up_quote(
        Payment(1000, "usd"), "some-address", ["ALMOST-FREE"]
    )

    assert quote.quoted_payment_amount == 1000
    assert quote.payment_amount == 50
    assert quote.winc_amount == 3_064_000_000
    assert quote.excess_winc == 35_236_000_000


async def test_top_up_quote_without_minimum_has_no_excess() -> None:
    fixture = build_pricing()

    quote = await fixture.service.get_top_up_quote(Payment(1000, "usd"), "some-address")

    assert quote.payment_amount == 1000
    assert quote.excess_winc == 0


# -------- crypto --------


async def test_crypto_price_fee_modes() -> None:
    fixture = build_pricing()
    one_ar = 10**12

    none = await fixture.service.get_credits_for_crypto_payment(one_ar, "arweave", "none")
    standard = await fixture.service.get_credits_for_crypto_payment(one_ar, "arweave")
    inverted = await fixture.service.get_credits_for_crypto_payment(
        one_ar, "arweave", "invert"
    )

    assert none.final_price == 10**12
    assert none.inclusive_adjustments == []
    assert standard.final_price == 766_000_000_000
    assert inverted.final_price > none.final_price
    assert inverted.inclusive_adjustments[0].adjustment_amount > 0


async def test_crypto_price_uses_token_ratio_and_decimals() -> None:
    # 1 ETH = 2000 USD = 200 크레딧
    fixture = build_pricing()

    quote = await fixture.service.get_credits_for_crypto_payment(10**18, "ethereum", "none")

    assert quote.final_price == 200 * 10**12


async def test_crypto_price_rejects_unknown_token() -> None:
    fixture = build_pricing()

    with pytest.raises(UnsupportedTokenError):
        await fixture.service.get_credits_for_crypto_payment(1, "dogecoin")


# -------- limits / rates --------


async def test_currency_limitations_snap_to_static_defaults() -> None:
    fixture = build_pricing()

    limits = await fixture.service.get_currency_limitations()

    assert limits["usd"].minimum_payment_amount == 1000
    assert limits["usd"].maximum_payment_amount == 1_000_000
    assert limits["usd"].suggested_payment_amounts == (2500, 5000, 10000)
    assert limits["jpy"].zero_decimal_currency is True
    assert set(limits) == {
        "usd", "brl", "hkd", "jpy", "cad", "gbp", "eur", "sgd", "aud", "inr"
    }


async def test_currency_limitations_follow_large_rate_moves() -> None:
    # 유로 가치가 절반이 되면 유로 한도가 두 배 근처로 바뀐다.
    fixture = build_pricing()
    fixture.fiat_oracle.rates["eur"] = 20.0

    limits = await fixture.service.get_currency_limitations()

    assert limits["eur"].minimum_payment_amount == 2000
    assert limits["eur"].maximum_payment_amount == 2_000_000
    assert limits["eur"].suggested_payment_amounts == (2500, 5000, 10000)


async def test_get_rates_prices_one_gib() -> None:
    fixture = build_pricing()

    quote, fiat = await fixture.service.get_rates()

    assert quote.byte_count == ONE_GIB
    assert quote.final_price == ONE_GIB
    # 1 GiB = 1073741824 winc = 0.001073741824 크레딧
    assert fiat["usd"] == pytest.approx(0.01073741824)


async def test_fiat_price_for_one_credit_rejects_unknown_currency() -> None:
    fixture = build_pricing()

    assert await fixture.service.get_fiat_price_for_one_credit("usd") == 10.0
    with pytest.raises(UnsupportedCurrencyTypeError):
        await fixture.service.get_fiat_price_for_one_credit("doge")
