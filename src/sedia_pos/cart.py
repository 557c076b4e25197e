from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Iterable, Iterator

from .collaborators import CatalogService, SupervisorAuthorizer
from .exceptions import InsufficientStock, SupervisorAuthorizationRequired, VariantRequired
from .logging import log_json
from .models import Actor, LineItem, LineKey, Product, TaxPolicy, Variant
from .money import Totals, compute_totals

logger = logging.getLogger(__name__)

CartListener = Callable[["Cart"], None]


def _check_stock(key: LineKey, requested: int, ceiling: int) -> None:
    if requested > ceiling:
        log_json(
            logger,
            {"event": "cart.insufficient_stock", "key": list(key), "requested": requested, "ceiling": ceiling},
        )
        raise InsufficientStock(key, requested, ceiling)


def price_line(product: Product, variant: Variant | None = None) -> LineItem:
    """Build a quantity-1 line for a product or one of its variants."""
    if variant is None:
        return LineItem(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            stock_ceiling=product.stock,
        )
    return LineItem(
        product_id=product.id,
        variant_id=variant.id,
        name=f"{product.name} - {variant.name}",
        unit_price=product.price + variant.price_adjustment,
        stock_ceiling=variant.stock,
    )


class Cart:
    """Line items for the sale in progress.

    Every successful mutation notifies subscribers so derived state (the
    payment allocations) can be recomputed against the new total.
    """

    def __init__(self, outlet_id: str | None = None, authorizer: SupervisorAuthorizer | None = None) -> None:
        self.outlet_id = outlet_id
        self.authorizer = authorizer
        self.customer_id: str | None = None
        self.discount_percent = Decimal("0")
        self.resumed_from: str | None = None
        self._items: list[LineItem] = []
        self._listeners: list[CartListener] = []

    @property
    def items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(tuple(self._items))

    def subscribe(self, listener: CartListener) -> None:
        self._listeners.append(listener)

    def find(self, key: LineKey) -> LineItem | None:
        return next((item for item in self._items if item.key == key), None)

    def totals(self, policy: TaxPolicy | None = None) -> Totals:
        return compute_totals(self._items, policy, self.discount_percent)

    def add_item(self, product: Product, variant: Variant | None = None, quantity: int = 1) -> LineItem:
        if variant is None and product.variants:
            raise VariantRequired(product.id, [option.id for option in product.variants])
        fresh = price_line(product, variant)
        existing = self.find(fresh.key)
        requested = quantity + (existing.quantity if existing else 0)
        _check_stock(fresh.key, requested, fresh.stock_ceiling)
        line = fresh.model_copy(update={"quantity": requested})
        if existing is None:
            self._items.append(line)
        else:
            self._replace(existing.key, line)
        self._changed()
        return line

    def set_quantity(self, key: LineKey, quantity: int, actor: Actor | None = None) -> LineItem | None:
        if quantity <= 0:
            self.remove_item(key, actor)
            return None
        existing = self._require(key)
        if quantity > existing.quantity:
            _check_stock(key, quantity, existing.stock_ceiling)
        line = existing.model_copy(update={"quantity": quantity})
        self._replace(key, line)
        self._changed()
        return line

    def remove_item(self, key: LineKey, actor: Actor | None = None) -> None:
        self._require(key)
        self._authorize("remove_item", actor)
        self._items = [item for item in self._items if item.key != key]
        self._changed()

    def clear(self, actor: Actor | None = None) -> None:
        self._authorize("clear_cart", actor)
        self.reset()

    def reset(self) -> None:
        """Empty the cart without the supervisor gate (sale completed or order held)."""
        self._items = []
        self.customer_id = None
        self.discount_percent = Decimal("0")
        self.resumed_from = None
        self._changed()

    def load(
        self,
        items: Iterable[LineItem],
        *,
        resumed_from: str | None = None,
        customer_id: str | None = None,
        discount_percent: Decimal | None = None,
    ) -> None:
        self._items = [item.model_copy() for item in items]
        self.resumed_from = resumed_from
        self.customer_id = customer_id
        self.discount_percent = discount_percent or Decimal("0")
        self._changed()

    def set_customer(self, customer_id: str | None, discount_percent: Decimal | None = None) -> None:
        self.customer_id = customer_id
        self.discount_percent = discount_percent if customer_id and discount_percent else Decimal("0")
        self._changed()

    def refresh_ceilings(self, catalog: CatalogService) -> list[LineKey]:
        """Re-read stock ceilings. Returns keys whose quantity now exceeds stock."""
        short: list[LineKey] = []
        refreshed: list[LineItem] = []
        for item in self._items:
            product = catalog.get_product(item.product_id)
            ceiling = product.stock
            if item.variant_id is not None:
                variant = product.find_variant(item.variant_id)
                ceiling = variant.stock if variant else 0
            if item.quantity > ceiling:
                short.append(item.key)
            refreshed.append(item.model_copy(update={"stock_ceiling": ceiling}))
        self._items = refreshed
        return short

    def _authorize(self, action: str, actor: Actor | None) -> None:
        if actor is not None and actor.is_privileged:
            return
        if self.authorizer is None or not self.authorizer.authorize(action):
            raise SupervisorAuthorizationRequired(action)
        log_json(
            logger,
            {
                "event": "cart.privileged_action",
                "action": action,
                "outlet_id": self.outlet_id,
                "actor_id": actor.employee_id if actor else None,
            },
        )

    def _require(self, key: LineKey) -> LineItem:
        existing = self.find(key)
        if existing is None:
            raise KeyError(key)
        return existing

    def _replace(self, key: LineKey, line: LineItem) -> None:
        self._items = [line if item.key == key else item for item in self._items]

    def _changed(self) -> None:
        for listener in self._listeners:
            listener(self)
