from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from ..exceptions import NotFoundError
from ..models import Product, Variant
from .base import BaseClient, expect_list


def _variant(data: Mapping[str, Any]) -> Variant:
    return Variant(
        id=str(data["id"]),
        name=str(data.get("name") or ""),
        price_adjustment=Decimal(str(data.get("priceAdjustment") or "0")),
        stock=max(int(data.get("stock") or 0), 0),
    )


@dataclass
class CatalogClient(BaseClient):
    """Read-only product lookups. Stock is read fresh on every call."""

    def list_products(self) -> list[dict[str, Any]]:
        params = {"outletId": self.outlet_id} if self.outlet_id else None
        return expect_list(self._request("GET", "/api/products", params=params, operation="catalog.list"), "products")

    def list_variants(self, product_id: str) -> list[Variant]:
        data = self._request("GET", f"/api/products/{product_id}/variants", operation="catalog.variants")
        return [_variant(row) for row in expect_list(data, "variants") if row.get("isActive", True)]

    def get_product(self, product_id: str) -> Product:
        row = next((row for row in self.list_products() if str(row.get("id")) == product_id), None)
        if row is None:
            raise NotFoundError(
                code="PRODUCT_NOT_FOUND",
                message=f"Product {product_id} not found",
                details=None,
                trace_id=None,
                status_code=404,
            )
        return Product(
            id=product_id,
            name=str(row.get("name") or ""),
            price=Decimal(str(row.get("price") or "0")),
            stock=max(int(row.get("stock") or 0), 0),
            variants=self.list_variants(product_id),
        )
