from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal

from ..models import MemberTier
from .base import BaseClient, expect_list, expect_object


@dataclass
class CustomersClient(BaseClient):
    """Member discount and point accrual through the customer and loyalty routes."""

    _tiers: list[MemberTier] | None = field(default=None, repr=False)

    def list_tiers(self, refresh: bool = False) -> list[MemberTier]:
        if self._tiers is None or refresh:
            params = {"outletId": self.outlet_id} if self.outlet_id else None
            data = self._request("GET", "/api/loyalty/tiers", params=params, operation="loyalty.tiers")
            self._tiers = [
                MemberTier(
                    id=str(row["id"]),
                    name=str(row.get("name") or ""),
                    discount_percent=Decimal(str(row.get("discountPercent") or "0")),
                    min_points=int(row.get("minPoints") or 0),
                )
                for row in expect_list(data, "member tiers")
            ]
        return self._tiers

    def get_discount_percent(self, customer_id: str) -> Decimal:
        customer = expect_object(self._request("GET", f"/api/customers/{customer_id}", operation="customers.get"), "customer")
        tier_id = customer.get("tierId")
        if not tier_id:
            return Decimal("0")
        tier = next((tier for tier in self.list_tiers() if tier.id == tier_id), None)
        return tier.discount_percent if tier else Decimal("0")

    def award_points(self, customer_id: str, amount: Decimal) -> int:
        data = self._request(
            "POST",
            f"/api/customers/{customer_id}/points",
            json_body={"action": "earn", "transactionAmount": int(amount.to_integral_value(rounding=ROUND_FLOOR))},
            operation="customers.points",
        )
        return int(expect_object(data, "points").get("pointsChange") or 0)
