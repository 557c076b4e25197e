from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from sedia_pos.audit import AuditTrail
from sedia_pos.cart import Cart
from sedia_pos.exceptions import ShiftNotOpen, StockConflict
from sedia_pos.finalizer import TransactionFinalizer
from sedia_pos.held_orders import HeldOrderStore
from sedia_pos.models import LineItem, PaymentAllocation, Transaction
from sedia_pos.payment_ledger import PaymentLedger
from sedia_pos.persistence import (
    SqlCatalog,
    SqlHeldOrderRepository,
    SqlLoyaltyService,
    SqlShiftRepository,
    SqlTransactionCommitter,
    create_db_engine,
    init_db,
    make_session_factory,
)
from sedia_pos.persistence.tables import (
    CustomerRecord,
    MemberTierRecord,
    ProductRecord,
    TransactionItemRecord,
    TransactionRecord,
    VariantRecord,
)
from sedia_pos.shift import ShiftManager

from pos_helpers import CASHIER, FIXED_NOW, METHODS, OUTLET


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite+pysqlite:///{tmp_path / 'pos.db'}")
    init_db(engine)
    factory = make_session_factory(engine)
    with factory() as db:
        db.add_all(
            [
                ProductRecord(id="p-1", outlet_id=OUTLET, name="Kopi Susu", price=Decimal("18000"), stock=2),
                ProductRecord(id="p-2", outlet_id=OUTLET, name="Es Teh", price=Decimal("8000"), stock=0),
                VariantRecord(id="v-1", product_id="p-2", name="Large", price_adjustment=Decimal("3000"), stock=1),
                VariantRecord(id="v-2", product_id="p-2", name="Jumbo", stock=3, is_active=False),
                MemberTierRecord(id="silver", outlet_id=OUTLET, name="Silver", discount_percent=Decimal("5"), min_points=0),
                MemberTierRecord(id="gold", outlet_id=OUTLET, name="Gold", discount_percent=Decimal("10"), min_points=100),
                CustomerRecord(id="c-1", outlet_id=OUTLET, name="Sari", points=90, tier_id="silver"),
            ]
        )
        db.commit()
    yield factory
    engine.dispose()


def _transaction(invoice: str, *items: LineItem) -> Transaction:
    total = sum((item.line_total for item in items), Decimal("0"))
    return Transaction(
        invoice_number=invoice,
        outlet_id=OUTLET,
        items=items,
        subtotal=total,
        discount=Decimal("0"),
        tax=Decimal("0"),
        total_amount=total,
        payments=(PaymentAllocation(method_id="cash", method_name="Tunai", kind="cash", amount=total),),
        payment_method_label="Tunai",
        created_at=datetime(2024, 5, 17, 10, 30, tzinfo=timezone.utc),
    )


def _line(product_id: str, quantity: int, variant_id: str | None = None) -> LineItem:
    return LineItem(
        product_id=product_id, variant_id=variant_id, name=product_id, unit_price=Decimal("18000"), quantity=quantity
    )


def _stock(factory, table, row_id: str) -> int:
    with factory() as db:
        return db.get(table, row_id).stock


def test_catalog_loads_active_variants(session_factory) -> None:
    product = SqlCatalog(session_factory).get_product("p-2")
    assert [variant.id for variant in product.variants] == ["v-1"]
    assert product.variants[0].price_adjustment == Decimal("3000")
    with pytest.raises(KeyError):
        SqlCatalog(session_factory).get_product("p-404")


def test_commit_takes_stock_and_stores_lines(session_factory) -> None:
    committer = SqlTransactionCommitter(session_factory)
    committer.commit(_transaction("INV-1", _line("p-1", 2), _line("p-2", 1, "v-1")))

    assert _stock(session_factory, ProductRecord, "p-1") == 0
    assert _stock(session_factory, VariantRecord, "v-1") == 0
    with session_factory() as db:
        record = db.scalar(select(TransactionRecord).where(TransactionRecord.invoice_number == "INV-1"))
        assert record.total_amount == Decimal("54000")
        assert len(record.items) == 2
        assert record.payments[0].payment_method == "Tunai"


def test_commit_is_idempotent_per_invoice(session_factory) -> None:
    committer = SqlTransactionCommitter(session_factory)
    tx = _transaction("INV-1", _line("p-1", 1))
    committer.commit(tx)
    committer.commit(tx)
    assert _stock(session_factory, ProductRecord, "p-1") == 1
    with session_factory() as db:
        assert db.scalar(select(func.count()).select_from(TransactionRecord)) == 1


def test_short_line_rolls_back_whole_sale(session_factory) -> None:
    committer = SqlTransactionCommitter(session_factory)
    with pytest.raises(StockConflict) as excinfo:
        committer.commit(_transaction("INV-1", _line("p-1", 1), _line("p-2", 2, "v-1")))
    assert excinfo.value.conflicts == ["p-2: available 1, requested 2"]
    assert _stock(session_factory, ProductRecord, "p-1") == 2
    with session_factory() as db:
        assert db.scalar(select(func.count()).select_from(TransactionRecord)) == 0
        assert db.scalar(select(func.count()).select_from(TransactionItemRecord)) == 0


def test_second_sale_of_last_unit_conflicts(session_factory) -> None:
    committer = SqlTransactionCommitter(session_factory)
    committer.commit(_transaction("INV-1", _line("p-2", 1, "v-1")))
    with pytest.raises(StockConflict):
        committer.commit(_transaction("INV-2", _line("p-2", 1, "v-1")))
    assert _stock(session_factory, VariantRecord, "v-1") == 0


def test_shift_lifecycle_round_trips(session_factory) -> None:
    manager = ShiftManager(SqlShiftRepository(session_factory), clock=lambda: FIXED_NOW)
    shift = manager.open_shift("emp-1", OUTLET, "500000")
    manager.record_cash_sale(shift.id, Decimal("36000"))
    assert manager.require_open(OUTLET).cash_sales_total == Decimal("36000")
    closed = manager.close_shift(shift.id, "536000")
    assert closed.difference == Decimal("0")
    assert manager.current(OUTLET) is None
    stored = SqlShiftRepository(session_factory).get(shift.id)
    assert stored.status == "closed"
    assert stored.expected_cash == Decimal("536000")


def test_cash_accrual_is_atomic_across_repositories(session_factory) -> None:
    till_a = ShiftManager(SqlShiftRepository(session_factory), clock=lambda: FIXED_NOW)
    till_b = ShiftManager(SqlShiftRepository(session_factory), clock=lambda: FIXED_NOW)
    shift = till_a.open_shift("emp-1", OUTLET, "0")
    stale = till_b.require_open(OUTLET)

    till_a.record_cash_sale(shift.id, Decimal("36000"))
    updated = till_b.record_cash_sale(stale.id, Decimal("14000"))
    assert updated.cash_sales_total == Decimal("50000")

    till_a.close_shift(shift.id, "50000")
    with pytest.raises(ShiftNotOpen):
        till_b.record_cash_sale(shift.id, Decimal("1000"))


def test_held_orders_round_trip(session_factory) -> None:
    store = HeldOrderStore(SqlHeldOrderRepository(session_factory), clock=lambda: FIXED_NOW)
    cart = Cart(OUTLET)
    cart.add_item(SqlCatalog(session_factory).get_product("p-1"), quantity=2)
    cart.set_customer("c-1", Decimal("5"))
    order = store.hold(cart, outlet_id=OUTLET, notes="meja 2")

    listed = store.list(OUTLET)
    assert [held.id for held in listed] == [order.id]
    assert listed[0].items[0].unit_price == Decimal("18000")
    assert listed[0].discount_percent == Decimal("5")

    store.resume(order.id, cart)
    assert cart.items[0].quantity == 2
    assert cart.discount_percent == Decimal("5")
    assert store.list(OUTLET) == []


def test_loyalty_service_awards_and_upgrades(session_factory) -> None:
    loyalty = SqlLoyaltyService(session_factory, OUTLET)
    assert loyalty.get_discount_percent("c-1") == Decimal("5")
    assert loyalty.award_points("c-1", Decimal("34200")) == 34
    assert loyalty.get_discount_percent("c-1") == Decimal("10")
    assert loyalty.award_points("c-404", Decimal("34200")) == 0


def test_checkout_end_to_end_on_sql(session_factory) -> None:
    catalog = SqlCatalog(session_factory)
    shifts = ShiftManager(SqlShiftRepository(session_factory), clock=lambda: FIXED_NOW)
    shift = shifts.open_shift("emp-1", OUTLET, "100000")
    cart = Cart(OUTLET)
    finalizer = TransactionFinalizer(
        outlet_id=OUTLET,
        cart=cart,
        ledger=PaymentLedger(METHODS),
        shifts=shifts,
        committer=SqlTransactionCommitter(session_factory),
        loyalty=SqlLoyaltyService(session_factory, OUTLET),
        audit=AuditTrail(),
        clock=lambda: FIXED_NOW,
    )
    cart.add_item(catalog.get_product("p-1"), quantity=2)
    finalizer.set_customer("c-1")

    tx = finalizer.checkout(CASHIER)
    assert tx.total_amount == Decimal("34200.00")
    assert tx.points_earned == 34
    assert catalog.get_product("p-1").stock == 0
    assert shifts.summary(shift.id).cash_sales_total == Decimal("34200.00")
