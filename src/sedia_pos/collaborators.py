"""Interfaces of the services the engine talks to.

HTTP adapters live in :mod:`sedia_pos.clients`, SQLAlchemy adapters in
:mod:`sedia_pos.persistence` and in-process ones in :mod:`sedia_pos.memory`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from .models import ChargeArtifact, GatewayKind, HeldOrder, HeldOrderStatus, Product, Shift, Transaction


class CatalogService(Protocol):
    def get_product(self, product_id: str) -> Product: ...


class PaymentGateway(Protocol):
    def charge(self, order_id: str, amount: Decimal, kind: GatewayKind, sub_method: str | None) -> ChargeArtifact: ...

    def get_status(self, order_id: str) -> str | None: ...


class TransactionCommitter(Protocol):
    """Records a sale and decrements its stock as one unit of work.

    Raises :class:`~sedia_pos.exceptions.StockConflict` when any line no
    longer fits the stock on hand; nothing is recorded in that case.
    """

    def commit(self, transaction: Transaction) -> str: ...


class LoyaltyService(Protocol):
    def get_discount_percent(self, customer_id: str) -> Decimal: ...

    def award_points(self, customer_id: str, amount: Decimal) -> int: ...


class SupervisorAuthorizer(Protocol):
    def authorize(self, action: str) -> bool: ...


class ShiftRepository(Protocol):
    def find_open(self, outlet_id: str) -> Shift | None: ...

    def get(self, shift_id: str) -> Shift | None: ...

    def add(self, shift: Shift) -> Shift: ...

    def save(self, shift: Shift) -> Shift: ...

    def add_cash_sale(self, shift_id: str, amount: Decimal) -> Shift | None:
        """Add to an open shift's cash sales in one step. None when the shift is not open."""
        ...


class HeldOrderRepository(Protocol):
    def add(self, order: HeldOrder) -> HeldOrder: ...

    def get(self, order_id: str) -> HeldOrder | None: ...

    def list(self, outlet_id: str, status: HeldOrderStatus = "held") -> list[HeldOrder]: ...

    def update_status(self, order_id: str, status: HeldOrderStatus) -> None: ...

    def delete(self, order_id: str) -> None: ...
