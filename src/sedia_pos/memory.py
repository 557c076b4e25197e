"""In-process collaborators for a single till or for tests."""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Iterable

from .exceptions import StockConflict
from .loyalty import apply_award, tier_discount
from .models import (
    Customer,
    HeldOrder,
    HeldOrderStatus,
    LineItem,
    LoyaltySettings,
    MemberTier,
    Product,
    Shift,
    Transaction,
)


def _on_hand(product: Product | None, variant_id: str | None) -> int:
    if product is None:
        return 0
    if variant_id is None:
        return product.stock
    variant = product.find_variant(variant_id)
    return variant.stock if variant else 0


def _deducted(product: Product, item: LineItem) -> Product:
    if item.variant_id is None:
        return product.model_copy(update={"stock": product.stock - item.quantity})
    variants = [
        variant.model_copy(update={"stock": variant.stock - item.quantity}) if variant.id == item.variant_id else variant
        for variant in product.variants
    ]
    return product.model_copy(update={"variants": variants})


class InMemoryCatalog:
    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products = {product.id: product for product in products}
        self._lock = threading.Lock()

    def add(self, product: Product) -> None:
        with self._lock:
            self._products[product.id] = product

    def get_product(self, product_id: str) -> Product:
        with self._lock:
            return self._products[product_id].model_copy(deep=True)

    def deduct(self, invoice_number: str, items: Iterable[LineItem]) -> None:
        """Take stock for every line or for none of them."""
        lines = list(items)
        with self._lock:
            conflicts: list[str] = []
            for item in lines:
                on_hand = _on_hand(self._products.get(item.product_id), item.variant_id)
                if on_hand < item.quantity:
                    conflicts.append(f"{item.name}: available {on_hand}, requested {item.quantity}")
            if conflicts:
                raise StockConflict(invoice_number, conflicts)
            for item in lines:
                self._products[item.product_id] = _deducted(self._products[item.product_id], item)


class InMemoryCommitter:
    """Keeps committed sales in a dict and takes stock from an :class:`InMemoryCatalog`."""

    def __init__(self, catalog: InMemoryCatalog) -> None:
        self.catalog = catalog
        self.transactions: dict[str, Transaction] = {}
        self._lock = threading.Lock()

    def commit(self, transaction: Transaction) -> str:
        with self._lock:
            if transaction.invoice_number not in self.transactions:
                self.catalog.deduct(transaction.invoice_number, transaction.items)
                self.transactions[transaction.invoice_number] = transaction
        return transaction.invoice_number


class InMemoryLoyalty:
    def __init__(
        self,
        customers: Iterable[Customer] = (),
        tiers: Iterable[MemberTier] = (),
        settings: LoyaltySettings | None = None,
    ) -> None:
        self.customers = {customer.id: customer for customer in customers}
        self.tiers = list(tiers)
        self.settings = settings or LoyaltySettings()

    def get_discount_percent(self, customer_id: str) -> Decimal:
        customer = self.customers.get(customer_id)
        if customer is None:
            return Decimal("0")
        return tier_discount(customer, self.tiers)

    def award_points(self, customer_id: str, amount: Decimal) -> int:
        customer = self.customers.get(customer_id)
        if customer is None:
            return 0
        updated, earned = apply_award(customer, amount, self.settings, self.tiers)
        self.customers[customer_id] = updated
        return earned


class StaticAuthorizer:
    """Approves or denies every request. Records what was asked."""

    def __init__(self, approve: bool = True) -> None:
        self.approve = approve
        self.requests: list[str] = []

    def authorize(self, action: str) -> bool:
        self.requests.append(action)
        return self.approve


class InMemoryShiftRepository:
    def __init__(self) -> None:
        self._shifts: dict[str, Shift] = {}
        self._lock = threading.Lock()

    def find_open(self, outlet_id: str) -> Shift | None:
        return next(
            (shift for shift in self._shifts.values() if shift.outlet_id == outlet_id and shift.is_open),
            None,
        )

    def get(self, shift_id: str) -> Shift | None:
        return self._shifts.get(shift_id)

    def add(self, shift: Shift) -> Shift:
        self._shifts[shift.id] = shift
        return shift

    def save(self, shift: Shift) -> Shift:
        self._shifts[shift.id] = shift
        return shift

    def add_cash_sale(self, shift_id: str, amount: Decimal) -> Shift | None:
        with self._lock:
            shift = self._shifts.get(shift_id)
            if shift is None or not shift.is_open:
                return None
            updated = shift.model_copy(update={"cash_sales_total": shift.cash_sales_total + amount})
            self._shifts[shift_id] = updated
            return updated


class InMemoryHeldOrderRepository:
    def __init__(self) -> None:
        self._orders: dict[str, HeldOrder] = {}

    def add(self, order: HeldOrder) -> HeldOrder:
        self._orders[order.id] = order
        return order

    def get(self, order_id: str) -> HeldOrder | None:
        return self._orders.get(order_id)

    def list(self, outlet_id: str, status: HeldOrderStatus = "held") -> list[HeldOrder]:
        return [order for order in self._orders.values() if order.outlet_id == outlet_id and order.status == status]

    def update_status(self, order_id: str, status: HeldOrderStatus) -> None:
        order = self._orders[order_id]
        self._orders[order_id] = order.model_copy(update={"status": status})

    def delete(self, order_id: str) -> None:
        self._orders.pop(order_id, None)
