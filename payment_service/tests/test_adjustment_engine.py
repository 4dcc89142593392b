from __future__ import annotations

from payment_service.app.models.adjustment import AdjustmentThreshold
from payment_service.app.models.price import NetworkPrice
from payment_service.app.models.winc import Winc
from payment_service.app.services.adjustment_engine import (
    apply_inclusive_fees,
    apply_promo_code_to_payment,
    apply_upload_adjustments,
    invert_inclusive_fees,
)
from payment_service.tests.fakes import inclusive, promo


def test_add_adjustment_subtracts_flat_amount() -> None:
    adjustment = inclusive("subsidy", operator="add", magnitude=-1_000_000)

    final, applied = apply_upload_adjustments(
        NetworkPrice(Winc(1_048_576)), [adjustment], byte_count=1_048_576
    )

    assert final.winc == 48_576
    assert [a.adjustment_amount for a in applied] == [-1_000_000]


def test_discounts_compound_in_priority_order() -> None:
    # 50% 할인 후 나머지에서 10% 할인: 1000 -> 500 -> 450
    first = inclusive("half", magnitude=0.5, priority=1)
    second = inclusive("tenth", magnitude=0.1, priority=2)

    final, applied = apply_upload_adjustments(
        NetworkPrice(Winc(1000)), [second, first], byte_count=10
    )

    assert final.winc == 450
    assert [a.catalog_id for a in applied] == ["half", "tenth"]
    assert [a.adjustment_amount for a in applied] == [-500, -50]


def test_final_price_is_clamped_at_zero() -> None:
    adjustment = inclusive("free", operator="add", magnitude=-10_000)

    final, applied = apply_upload_adjustments(
        NetworkPrice(Winc(100)), [adjustment], byte_count=100
    )

    assert final.winc == 0
    assert applied[0].adjustment_amount == -10_000


def test_threshold_skips_unmet_adjustments() -> None:
    small_files_free = inclusive(
        "small-files",
        magnitude=1.0,
        threshold=AdjustmentThreshold(unit="bytes", comparator="less_than", value=1000),
    )

    small, small_applied = apply_upload_adjustments(
        NetworkPrice(Winc(500)), [small_files_free], byte_count=500
    )
    large, large_applied = apply_upload_adjustments(
        NetworkPrice(Winc(5000)), [small_files_free], byte_count=5000
    )

    assert small.winc == 0
    assert len(small_applied) == 1
    assert large.winc == 5000
    assert large_applied == []


def test_credits_threshold_uses_running_total() -> None:
    subsidy = inclusive("subsidy", operator="add", magnitude=-900, priority=1)
    surcharge = inclusive(
        "surcharge",
        magnitude=-0.5,
        priority=2,
        threshold=AdjustmentThreshold(unit="credits", comparator="greater_than", value=500),
    )

    final, applied = apply_upload_adjustments(
        NetworkPrice(Winc(1000)), [subsidy, surcharge], byte_count=1
    )

    assert final.winc == 100
    assert [a.catalog_id for a in applied] == ["subsidy"]


def test_only_first_exclusive_adjustment_applies() -> None:
    first = promo("FIRST", magnitude=0.1, priority=1)
    second = promo("SECOND", magnitude=0.5, priority=2)

    final, applied = apply_upload_adjustments(
        NetworkPrice(Winc(1000)), [first, second], byte_count=1
    )

    assert final.winc == 900
    assert [a.promo_code for a in applied] == ["FIRST"]


def test_promo_code_discount_respects_max_discount() -> None:
    capped = promo("CAPPED", magnitude=0.5, max_discount_amount=1000)

    actual, applied = apply_promo_code_to_payment(10_000, "usd", capped)

    assert actual == 9000
    assert applied.adjustment_amount == -1000
    assert applied.currency == "usd"
    assert applied.promo_code == "CAPPED"


def test_flat_promo_code_never_goes_below_zero() -> None:
    flat = promo("FLAT", operator="add", magnitude=-5000)

    actual, _ = apply_promo_code_to_payment(3000, "usd", flat)

    assert actual == 0


def test_multiply_promo_above_one_is_clamped_at_zero() -> None:
    generous = promo("BIG", magnitude=1.5)

    actual, applied = apply_promo_code_to_payment(1000, "usd", generous)

    assert actual == 0
    assert applied.adjustment_amount == -1000


def test_max_discount_larger_than_payment_is_clamped_at_zero() -> None:
    capped = promo("CAPPED", magnitude=1.5, max_discount_amount=50_000)

    actual, applied = apply_promo_code_to_payment(2000, "usd", capped)

    assert actual == 0
    assert applied.adjustment_amount == -2000


def test_inclusive_fee_is_subtracted() -> None:
    fee = inclusive("infra", magnitude=0.234)

    final, applied = apply_inclusive_fees(Winc(10**13), [fee])

    assert final == 7_660_000_000_000
    assert applied[0].adjustment_amount == -2_340_000_000_000


def test_inverted_fee_covers_net_amount() -> None:
    fees = [
        inclusive("infra", magnitude=0.234, priority=1),
        inclusive("flat", operator="add", magnitude=-1000, priority=2),
    ]
    net = Winc(1_000_000_000)

    gross, applied = invert_inclusive_fees(net, fees)
    back, _ = apply_inclusive_fees(gross, fees)

    assert back >= net
    assert back - net <= 1
    assert [a.catalog_id for a in applied] == ["infra", "flat"]
    assert all(a.adjustment_amount > 0 for a in applied)
