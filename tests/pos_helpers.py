from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sedia_pos.audit import AuditTrail, MemoryAuditSink
from sedia_pos.cart import Cart
from sedia_pos.config import PosConfig
from sedia_pos.finalizer import TransactionFinalizer
from sedia_pos.held_orders import HeldOrderStore
from sedia_pos.memory import (
    InMemoryCatalog,
    InMemoryCommitter,
    InMemoryHeldOrderRepository,
    InMemoryShiftRepository,
)
from sedia_pos.models import Actor, BankAccount, ChargeArtifact, PaymentMethod, Product, TaxPolicy, Variant
from sedia_pos.payment_ledger import PaymentLedger
from sedia_pos.shift import ShiftManager

OUTLET = "outlet-1"
CASHIER = Actor(employee_id="emp-1", role="cashier", outlet_id=OUTLET)
MANAGER = Actor(employee_id="emp-9", role="manager", outlet_id=OUTLET)
FIXED_NOW = datetime(2024, 5, 17, 10, 30, 0, tzinfo=timezone.utc)

CASH = PaymentMethod(id="cash", name="Tunai", kind="cash")
QRIS = PaymentMethod(id="qris", name="QRIS", kind="qris")
STATIC_QRIS = PaymentMethod(id="qris-static", name="QRIS Toko", kind="qris", qris_data="00020101021126570011ID")
VIRTUAL_ACCOUNT = PaymentMethod(id="va", name="Virtual Account", kind="transfer")
BANK_TRANSFER = PaymentMethod(
    id="bank",
    name="Transfer Bank",
    kind="transfer",
    is_manual=True,
    bank_accounts=[BankAccount(id="acc-1", bank_name="BCA", account_number="1234567890", account_holder="Toko Sedia")],
)
CARD = PaymentMethod(id="card", name="Kartu Debit", kind="card")
METHODS = [CASH, QRIS, STATIC_QRIS, VIRTUAL_ACCOUNT, BANK_TRANSFER, CARD]

PPN_11 = TaxPolicy(is_enabled=True, name="PPN", rate_percent=Decimal("11"), is_inclusive=False)


def make_product(
    product_id: str = "p-1",
    name: str = "Kopi Susu",
    price: str = "18000",
    stock: int = 10,
    variants: Iterable[Variant] = (),
) -> Product:
    return Product(id=product_id, name=name, price=Decimal(price), stock=stock, variants=list(variants))


class FakeGateway:
    """Scripted gateway. ``statuses`` are returned in order, the last one repeats."""

    def __init__(self, statuses: Iterable[Any] = ("pending",), fail_charge: bool = False, correlated: bool = True):
        self.statuses = list(statuses)
        self.fail_charge = fail_charge
        self.correlated = correlated
        self.charges: list[dict[str, Any]] = []
        self.status_calls = 0
        self._lock = threading.Lock()

    def charge(self, order_id: str, amount: Decimal, kind: str, sub_method: str | None) -> ChargeArtifact:
        if self.fail_charge:
            raise ConnectionError("gateway unreachable")
        self.charges.append({"order_id": order_id, "amount": amount, "kind": kind, "sub_method": sub_method})
        if not self.correlated:
            return ChargeArtifact(order_id=order_id, kind=kind)
        if kind == "qris":
            return ChargeArtifact(order_id=order_id, kind=kind, qr_string="00020101021226660014ID.CO.QRIS")
        return ChargeArtifact(order_id=order_id, kind=kind, bank=sub_method, va_number="988100012345")

    def get_status(self, order_id: str) -> str | None:
        with self._lock:
            index = min(self.status_calls, len(self.statuses) - 1)
            self.status_calls += 1
        value = self.statuses[index]
        if isinstance(value, Exception):
            raise value
        return value


class FlakyCommitter:
    def __init__(self, inner: Any, failures: int = 1) -> None:
        self.inner = inner
        self.failures = failures
        self.calls = 0

    def commit(self, transaction) -> str:
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError("backend unreachable")
        return self.inner.commit(transaction)


@dataclass
class Till:
    catalog: InMemoryCatalog
    committer: Any
    cart: Cart
    ledger: PaymentLedger
    shifts: ShiftManager
    held: HeldOrderStore
    held_repo: InMemoryHeldOrderRepository
    finalizer: TransactionFinalizer
    sink: MemoryAuditSink
    gateway: FakeGateway | None


def build_till(
    *,
    products: Iterable[Product] = (),
    gateway: FakeGateway | None = None,
    loyalty: Any = None,
    tax_policy: TaxPolicy | None = None,
    open_shift: bool = True,
    authorizer: Any = None,
    catalog: InMemoryCatalog | None = None,
    committer: Any = None,
    shifts: ShiftManager | None = None,
) -> Till:
    if catalog is None:
        catalog = InMemoryCatalog(products)
    if committer is None:
        committer = InMemoryCommitter(catalog)
    sink = MemoryAuditSink()
    audit = AuditTrail(sink)
    if shifts is None:
        shifts = ShiftManager(InMemoryShiftRepository(), audit, clock=lambda: FIXED_NOW)
        if open_shift:
            shifts.open_shift(CASHIER.employee_id, OUTLET, "500000")
    cart = Cart(OUTLET, authorizer)
    ledger = PaymentLedger(METHODS)
    held_repo = InMemoryHeldOrderRepository()
    held = HeldOrderStore(held_repo, audit, clock=lambda: FIXED_NOW)
    finalizer = TransactionFinalizer(
        outlet_id=OUTLET,
        cart=cart,
        ledger=ledger,
        shifts=shifts,
        committer=committer,
        gateway=gateway,
        held_orders=held,
        loyalty=loyalty,
        tax_policy=tax_policy,
        config=PosConfig(poll_interval_seconds=0.01),
        audit=audit,
        clock=lambda: FIXED_NOW,
    )
    return Till(
        catalog=catalog,
        committer=committer,
        cart=cart,
        ledger=ledger,
        shifts=shifts,
        held=held,
        held_repo=held_repo,
        finalizer=finalizer,
        sink=sink,
        gateway=gateway,
    )
