from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import Sequence

from .models import Customer, LoyaltySettings, MemberTier


def points_for(amount: Decimal, settings: LoyaltySettings | None = None) -> int:
    settings = settings or LoyaltySettings()
    if not settings.is_enabled or settings.amount_per_point <= 0 or amount <= 0:
        return 0
    blocks = (amount / settings.amount_per_point).to_integral_value(rounding=ROUND_FLOOR)
    return int(blocks) * settings.points_per_amount


def qualifying_tier(points: int, tiers: Sequence[MemberTier]) -> MemberTier | None:
    eligible = [tier for tier in tiers if points >= tier.min_points]
    if not eligible:
        return None
    return max(eligible, key=lambda tier: tier.min_points)


def tier_discount(customer: Customer, tiers: Sequence[MemberTier]) -> Decimal:
    tier = next((tier for tier in tiers if tier.id == customer.tier_id), None)
    return tier.discount_percent if tier else Decimal("0")


def apply_award(
    customer: Customer,
    amount: Decimal,
    settings: LoyaltySettings | None,
    tiers: Sequence[MemberTier],
) -> tuple[Customer, int]:
    """Accrue points for a sale and move the customer to the best tier they qualify for."""
    earned = points_for(amount, settings)
    if earned <= 0:
        return customer, 0
    points = customer.points + earned
    update: dict[str, object] = {"points": points, "total_spent": customer.total_spent + amount}
    tier = qualifying_tier(points, tiers)
    if tier is not None and tier.id != customer.tier_id:
        update["tier_id"] = tier.id
    return customer.model_copy(update=update), earned
