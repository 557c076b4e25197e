from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from ..exceptions import NotFoundError
from ..models import HeldOrder, HeldOrderStatus, LineItem
from .base import BaseClient, expect_list, expect_object, money_str

_TO_REMOTE: dict[str, str] = {"held": "active", "resumed": "resumed", "completed": "completed", "deleted": "cancelled"}
_FROM_REMOTE: dict[str, HeldOrderStatus] = {"active": "held", "resumed": "resumed", "completed": "completed", "cancelled": "deleted"}


def _item_payload(item: LineItem) -> dict[str, Any]:
    return {
        "productId": item.product_id,
        "variantId": item.variant_id,
        "name": item.name,
        "price": money_str(item.unit_price),
        "quantity": item.quantity,
        "stock": item.stock_ceiling,
    }


def _parse_item(data: Mapping[str, Any]) -> LineItem:
    return LineItem(
        product_id=str(data["productId"]),
        variant_id=data.get("variantId"),
        name=str(data.get("name") or ""),
        unit_price=Decimal(str(data.get("price") or "0")),
        quantity=int(data.get("quantity") or 1),
        stock_ceiling=max(int(data.get("stock") or 0), 0),
    )


def parse_held_order(data: Mapping[str, Any]) -> HeldOrder:
    items = data.get("items") or []
    if isinstance(items, str):
        items = json.loads(items)
    return HeldOrder(
        id=str(data["id"]),
        outlet_id=str(data.get("outletId") or ""),
        items=[_parse_item(item) for item in items],
        total_amount=Decimal(str(data.get("totalAmount") or "0")),
        created_at=datetime.fromisoformat(str(data["createdAt"]).replace("Z", "+00:00")),
        status=_FROM_REMOTE.get(str(data.get("status") or "active"), "held"),
        notes=data.get("notes"),
        customer_id=data.get("customerId"),
        customer_name=data.get("customerName"),
        customer_phone=data.get("customerPhone"),
        discount_percent=Decimal(str(data.get("discountPercent") or "0")),
    )


@dataclass
class HeldOrdersClient(BaseClient):
    def add(self, order: HeldOrder) -> HeldOrder:
        data = self._request(
            "POST",
            "/api/held-orders",
            json_body={
                "outletId": order.outlet_id,
                "customerId": order.customer_id,
                "customerName": order.customer_name,
                "customerPhone": order.customer_phone,
                "discountPercent": money_str(order.discount_percent),
                "items": [_item_payload(item) for item in order.items],
                "notes": order.notes,
                "totalAmount": money_str(order.total_amount),
            },
            operation="held_orders.add",
        )
        return parse_held_order(expect_object(data, "held order"))

    def get(self, order_id: str) -> HeldOrder | None:
        try:
            data = self._request("GET", f"/api/held-orders/{order_id}", operation="held_orders.get")
        except NotFoundError:
            return None
        return parse_held_order(expect_object(data, "held order"))

    def list(self, outlet_id: str, status: HeldOrderStatus = "held") -> list[HeldOrder]:
        data = self._request("GET", "/api/held-orders", params={"outletId": outlet_id}, operation="held_orders.list")
        orders = [parse_held_order(row) for row in expect_list(data, "held orders")]
        return [order for order in orders if order.status == status]

    def update_status(self, order_id: str, status: HeldOrderStatus) -> None:
        self._request(
            "PUT",
            f"/api/held-orders/{order_id}",
            json_body={"status": _TO_REMOTE[status]},
            operation="held_orders.update_status",
        )

    def delete(self, order_id: str) -> None:
        self._request("DELETE", f"/api/held-orders/{order_id}", operation="held_orders.delete")
