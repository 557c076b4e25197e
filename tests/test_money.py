from __future__ import annotations

from decimal import Decimal

from sedia_pos.models import LineItem, TaxPolicy
from sedia_pos.money import ZERO, compute_totals, quantize_money, tax_amount

from pos_helpers import PPN_11


def _line(price: str, quantity: int = 1, product_id: str = "p-1") -> LineItem:
    return LineItem(product_id=product_id, name="Item", unit_price=Decimal(price), quantity=quantity, stock_ceiling=99)


def test_subtotal_sums_price_times_quantity() -> None:
    totals = compute_totals([_line("18000", 2), _line("5500", 3, "p-2")])
    assert totals.subtotal == Decimal("52500")
    assert totals.tax == ZERO
    assert totals.total == Decimal("52500")


def test_member_discount_applies_before_tax() -> None:
    totals = compute_totals([_line("100000")], PPN_11, Decimal("10"))
    assert totals.discount == Decimal("10000")
    assert totals.taxable == Decimal("90000")
    assert totals.tax == Decimal("9900")
    assert totals.total == Decimal("99900")


def test_inclusive_tax_is_extracted_not_added() -> None:
    policy = TaxPolicy(is_enabled=True, rate_percent=Decimal("11"), is_inclusive=True)
    totals = compute_totals([_line("111000")], policy)
    assert totals.tax == Decimal("11000")
    assert totals.total == Decimal("111000")
    assert totals.tax_inclusive is True


def test_disabled_policy_has_no_tax() -> None:
    policy = TaxPolicy(is_enabled=False, rate_percent=Decimal("11"))
    assert tax_amount(Decimal("50000"), policy) == ZERO
    assert tax_amount(Decimal("50000"), None) == ZERO


def test_rounding_happens_once_on_the_final_amount() -> None:
    totals = compute_totals([_line("3333.335", 3)])
    assert totals.subtotal == Decimal("10000.005")
    # per-line rounding would give 10000.02
    assert totals.quantized().subtotal == Decimal("10000.01")


def test_quantize_money_rounds_half_up() -> None:
    assert quantize_money(Decimal("0.005")) == Decimal("0.01")
    assert quantize_money(Decimal("12.344")) == Decimal("12.34")
    assert quantize_money(Decimal("-1.005")) == Decimal("-1.01")


def test_reference_examples_on_100000() -> None:
    exclusive = compute_totals([_line("100000")], TaxPolicy(is_enabled=True, rate_percent=Decimal("11")))
    assert (exclusive.tax, exclusive.total) == (Decimal("11000"), Decimal("111000"))

    inclusive = compute_totals(
        [_line("100000")], TaxPolicy(is_enabled=True, rate_percent=Decimal("11"), is_inclusive=True)
    )
    assert quantize_money(inclusive.tax) == Decimal("9909.91")
    assert inclusive.total == Decimal("100000")
    assert inclusive.tax <= inclusive.subtotal
