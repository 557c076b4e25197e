"""Cart arithmetic: subtotal, member discount, tax and grand total.

Everything stays in unrounded Decimal until :func:`quantize_money` is
called at a presentation or wire boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .models import LineItem, TaxPolicy

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    taxable: Decimal
    tax: Decimal
    total: Decimal
    tax_inclusive: bool = False

    def quantized(self) -> "Totals":
        return Totals(
            subtotal=quantize_money(self.subtotal),
            discount=quantize_money(self.discount),
            taxable=quantize_money(self.taxable),
            tax=quantize_money(self.tax),
            total=quantize_money(self.total),
            tax_inclusive=self.tax_inclusive,
        )


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal, unit: Decimal = CENT) -> Decimal:
    return to_decimal(value).quantize(unit, rounding=ROUND_HALF_UP)


def subtotal(items: Iterable[LineItem]) -> Decimal:
    return sum((item.unit_price * item.quantity for item in items), ZERO)


def member_discount(amount: Decimal, discount_percent: Decimal | int | str | None) -> Decimal:
    if not discount_percent:
        return ZERO
    return amount * to_decimal(discount_percent) / HUNDRED


def tax_amount(taxable: Decimal, policy: TaxPolicy | None) -> Decimal:
    if policy is None or not policy.is_enabled:
        return ZERO
    rate = policy.rate_percent / HUNDRED
    if policy.is_inclusive:
        # already inside the price, only extracted for reporting
        return taxable - taxable / (1 + rate)
    return taxable * rate


def grand_total(taxable: Decimal, tax: Decimal, policy: TaxPolicy | None) -> Decimal:
    if policy is None or not policy.is_enabled or policy.is_inclusive:
        return taxable
    return taxable + tax


def compute_totals(
    items: Iterable[LineItem],
    policy: TaxPolicy | None = None,
    discount_percent: Decimal | int | str | None = None,
) -> Totals:
    gross = subtotal(items)
    discount = member_discount(gross, discount_percent)
    taxable = gross - discount
    tax = tax_amount(taxable, policy)
    return Totals(
        subtotal=gross,
        discount=discount,
        taxable=taxable,
        tax=tax,
        total=grand_total(taxable, tax, policy),
        tax_inclusive=bool(policy and policy.is_enabled and policy.is_inclusive),
    )
