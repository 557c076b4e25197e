from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from .audit import AuditTrail
from .cart import Cart
from .collaborators import CatalogService, HeldOrderRepository
from .exceptions import CartNotEmpty, EmptyCart, HeldOrderNotFound
from .logging import log_json
from .models import HeldOrder, TaxPolicy

logger = logging.getLogger(__name__)


class HeldOrderStore:
    """Parks a cart for later and brings it back."""

    def __init__(
        self,
        repository: HeldOrderRepository,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.audit = audit or AuditTrail()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def hold(
        self,
        cart: Cart,
        *,
        outlet_id: str,
        tax_policy: TaxPolicy | None = None,
        notes: str | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
    ) -> HeldOrder:
        if cart.is_empty:
            raise EmptyCart("cannot hold an empty cart")
        order = self.repository.add(
            HeldOrder(
                id=str(uuid.uuid4()),
                outlet_id=outlet_id,
                items=list(cart.items),
                total_amount=cart.totals(tax_policy).total,
                created_at=self.clock(),
                notes=notes,
                customer_id=cart.customer_id,
                discount_percent=cart.discount_percent,
                customer_name=customer_name,
                customer_phone=customer_phone,
            )
        )
        superseded = cart.resumed_from
        cart.reset()
        if superseded:
            # the new hold replaces the order this cart was resumed from
            self.repository.update_status(superseded, "deleted")
        log_json(logger, {"event": "held_order.held", "held_order_id": order.id, "total": order.total_amount})
        self.audit.record(
            "held_order.held",
            "held_order",
            entity_id=order.id,
            outlet_id=outlet_id,
            metadata={"items": len(order.items), "total_amount": str(order.total_amount)},
        )
        return order

    def list(self, outlet_id: str) -> list[HeldOrder]:
        return self.repository.list(outlet_id, "held")

    def resume(
        self,
        order_id: str,
        cart: Cart,
        *,
        discard_current: bool = False,
        catalog: CatalogService | None = None,
    ) -> HeldOrder:
        """Load a held order into ``cart``.

        With ``catalog`` the stock ceilings are re-read. Lines that no longer
        fit are logged and kept; the commit-time stock check rejects them.
        """
        order = self._require_held(order_id)
        if not cart.is_empty and not discard_current:
            raise CartNotEmpty("the active cart must be empty or explicitly discarded")
        # The order leaves the held list but stays stored so the sale can complete it.
        self.repository.update_status(order.id, "resumed")
        cart.load(
            order.items,
            resumed_from=order.id,
            customer_id=order.customer_id,
            discount_percent=order.discount_percent,
        )
        if catalog is not None:
            short = cart.refresh_ceilings(catalog)
            if short:
                log_json(
                    logger,
                    {"event": "held_order.stock_short", "held_order_id": order.id, "keys": [list(key) for key in short]},
                    logging.WARNING,
                )
        log_json(logger, {"event": "held_order.resumed", "held_order_id": order.id})
        return order

    def delete(self, order_id: str) -> None:
        order = self._require_held(order_id)
        self.repository.delete(order.id)
        log_json(logger, {"event": "held_order.deleted", "held_order_id": order.id})
        self.audit.record("held_order.deleted", "held_order", entity_id=order.id, outlet_id=order.outlet_id)

    def complete(self, order_id: str) -> bool:
        """Mark a resumed order completed. Failures are logged, never raised."""
        try:
            self.repository.update_status(order_id, "completed")
        except Exception:
            logger.exception("Failed to complete held order", extra={"held_order_id": order_id})
            return False
        return True

    def _require_held(self, order_id: str) -> HeldOrder:
        order = self.repository.get(order_id)
        if order is None or order.status != "held":
            raise HeldOrderNotFound(f"held order {order_id} not found")
        return order
