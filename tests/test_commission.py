from __future__ import annotations

from decimal import Decimal

import pytest

from marketplace.modules.billing.commission import (
    calculate_commission,
    minor_unit,
    resolve_commission_rate,
)
from marketplace.shared.exceptions import InvalidInputException


@pytest.mark.parametrize(
    ("price", "commission", "payout"),
    [
        (Decimal("150"), Decimal("18.00"), Decimal("132.00")),
        (Decimal("450"), Decimal("54.00"), Decimal("396.00")),
        (Decimal("750"), Decimal("90.00"), Decimal("660.00")),
    ],
)
def test_default_rate_applies_to_catalogue_prices(
    price: Decimal,
    commission: Decimal,
    payout: Decimal,
) -> None:
    breakdown = calculate_commission(price)

    assert breakdown.rate == Decimal("0.12")
    assert breakdown.commission == commission
    assert breakdown.payout == payout


def test_commission_and_payout_always_sum_to_price() -> None:
    for cents in range(0, 100_001, 997):
        price = Decimal(cents) / 100
        for rate in ("0", "0.05", "0.12", "0.175", "0.333", "0.99"):
            breakdown = calculate_commission(price, rate)
            assert breakdown.commission + breakdown.payout == breakdown.price
            assert Decimal(0) <= breakdown.commission <= breakdown.price
            assert breakdown.commission.as_tuple().exponent == -2


def test_commission_rounds_half_up_to_minor_unit() -> None:
    breakdown = calculate_commission(Decimal("10.45"), Decimal("0.1"))

    assert breakdown.commission == Decimal("1.05")
    assert breakdown.payout == Decimal("9.40")


def test_float_input_is_read_through_its_decimal_literal() -> None:
    breakdown = calculate_commission(19.99, 0.12)

    assert breakdown.commission == Decimal("2.40")
    assert breakdown.payout == Decimal("17.59")


def test_zero_price_and_zero_rate() -> None:
    assert calculate_commission(0).commission == Decimal("0.00")

    breakdown = calculate_commission(Decimal("450"), Decimal("0"))
    assert breakdown.commission == Decimal("0.00")
    assert breakdown.payout == Decimal("450.00")


def test_provider_override_rate_is_used() -> None:
    breakdown = calculate_commission(Decimal("450"), Decimal("0.08"))

    assert breakdown.commission == Decimal("36.00")
    assert breakdown.payout == Decimal("414.00")


@pytest.mark.parametrize(
    ("price", "rate"),
    [
        (Decimal("-1"), None),
        (Decimal("100"), Decimal("1")),
        (Decimal("100"), Decimal("-0.01")),
        (Decimal("100"), Decimal("1.5")),
        ("not-a-number", None),
        (Decimal("NaN"), None),
        (float("inf"), None),
    ],
)
def test_invalid_input_is_rejected(price, rate) -> None:
    with pytest.raises(InvalidInputException):
        calculate_commission(price, rate)


def test_minor_unit_follows_currency_digits() -> None:
    assert minor_unit() == Decimal("0.01")
    assert minor_unit(0) == Decimal("1")
    assert calculate_commission(Decimal("455"), Decimal("0.12"), minor_units=0).commission == Decimal("55")


def test_missing_provider_rate_falls_back_to_platform_default() -> None:
    assert resolve_commission_rate(None) == Decimal("0.12")
    assert resolve_commission_rate(Decimal("0.2")) == Decimal("0.2")
