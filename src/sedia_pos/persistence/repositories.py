"""SQLAlchemy implementations of the collaborator interfaces."""

from __future__ import annotations

import json
import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..exceptions import StockConflict
from ..loyalty import apply_award, tier_discount
from ..models import (
    Customer,
    HeldOrder,
    HeldOrderStatus,
    LineItem,
    LoyaltySettings,
    MemberTier,
    Product,
    Shift,
    Transaction,
    Variant,
)
from .tables import (
    CustomerRecord,
    HeldOrderRecord,
    LoyaltySettingsRecord,
    MemberTierRecord,
    ProductRecord,
    ShiftRecord,
    TransactionItemRecord,
    TransactionPaymentRecord,
    TransactionRecord,
    VariantRecord,
)

logger = logging.getLogger(__name__)


def _product_from_record(record: ProductRecord) -> Product:
    return Product(
        id=record.id,
        name=record.name,
        price=record.price,
        stock=record.stock,
        variants=[
            Variant(id=variant.id, name=variant.name, price_adjustment=variant.price_adjustment, stock=variant.stock)
            for variant in record.variants
            if variant.is_active
        ],
    )


class SqlCatalog:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def get_product(self, product_id: str) -> Product:
        with self.session_factory() as db:
            record = db.scalar(
                select(ProductRecord)
                .options(selectinload(ProductRecord.variants))
                .where(ProductRecord.id == product_id, ProductRecord.is_active.is_(True))
            )
            if record is None:
                raise KeyError(product_id)
            return _product_from_record(record)


class SqlTransactionCommitter:
    """Writes the sale and takes its stock in one database transaction.

    Each line is decremented with a guarded ``UPDATE ... WHERE stock >= qty``
    so two tills selling the last unit cannot both succeed. Committing an
    invoice that is already stored is a no-op.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def commit(self, transaction: Transaction) -> str:
        with self.session_factory() as db, db.begin():
            existing = db.scalar(
                select(TransactionRecord.id).where(TransactionRecord.invoice_number == transaction.invoice_number)
            )
            if existing is not None:
                logger.info("Sale %s already recorded", transaction.invoice_number)
                return transaction.invoice_number
            conflicts = self._take_stock(db, transaction.items)
            if conflicts:
                raise StockConflict(transaction.invoice_number, conflicts)
            db.add(self._to_record(transaction))
        return transaction.invoice_number

    def _take_stock(self, db: Session, items: tuple[LineItem, ...]) -> list[str]:
        conflicts: list[str] = []
        for item in items:
            table = VariantRecord if item.variant_id else ProductRecord
            row_id = item.variant_id or item.product_id
            result = db.execute(
                update(table)
                .where(table.id == row_id, table.stock >= item.quantity)
                .values(stock=table.stock - item.quantity)
            )
            if result.rowcount != 1:
                on_hand = db.scalar(select(table.stock).where(table.id == row_id)) or 0
                conflicts.append(f"{item.name}: available {on_hand}, requested {item.quantity}")
        return conflicts

    def _to_record(self, transaction: Transaction) -> TransactionRecord:
        return TransactionRecord(
            outlet_id=transaction.outlet_id,
            invoice_number=transaction.invoice_number,
            shift_id=transaction.shift_id,
            cashier_id=transaction.cashier_id,
            customer_id=transaction.customer_id,
            subtotal=transaction.subtotal,
            discount=transaction.discount,
            tax=transaction.tax,
            total_amount=transaction.total_amount,
            payment_method=transaction.payment_method_label,
            payment_status=transaction.payment_status,
            status=transaction.status,
            notes=transaction.notes,
            created_at=transaction.created_at,
            items=[
                TransactionItemRecord(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    product_name=item.name,
                    quantity=item.quantity,
                    price=item.unit_price,
                    total=item.line_total,
                )
                for item in transaction.items
            ],
            payments=[
                TransactionPaymentRecord(
                    payment_method=payment.method_name or payment.method_id,
                    kind=payment.kind,
                    amount=payment.amount,
                    reference_number=payment.gateway_ref,
                )
                for payment in transaction.payments
            ],
        )


def _shift_from_record(record: ShiftRecord) -> Shift:
    return Shift(
        id=record.id,
        employee_id=record.employee_id,
        outlet_id=record.outlet_id,
        starting_cash=record.starting_cash,
        opened_at=record.start_time,
        status=record.status,
        cash_sales_total=record.cash_sales,
        ending_cash=record.ending_cash,
        closed_at=record.end_time,
        expected_cash=record.expected_cash,
        difference=record.difference,
        notes=record.notes,
    )


def _copy_shift(shift: Shift, record: ShiftRecord) -> None:
    record.outlet_id = shift.outlet_id
    record.employee_id = shift.employee_id
    record.status = shift.status
    record.starting_cash = shift.starting_cash
    record.cash_sales = shift.cash_sales_total
    record.ending_cash = shift.ending_cash
    record.expected_cash = shift.expected_cash
    record.difference = shift.difference
    record.notes = shift.notes
    record.start_time = shift.opened_at
    record.end_time = shift.closed_at


class SqlShiftRepository:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def find_open(self, outlet_id: str) -> Shift | None:
        with self.session_factory() as db:
            record = db.scalar(
                select(ShiftRecord)
                .where(ShiftRecord.outlet_id == outlet_id, ShiftRecord.status == "open")
                .order_by(ShiftRecord.start_time.desc())
            )
            return _shift_from_record(record) if record else None

    def get(self, shift_id: str) -> Shift | None:
        with self.session_factory() as db:
            record = db.get(ShiftRecord, shift_id)
            return _shift_from_record(record) if record else None

    def add(self, shift: Shift) -> Shift:
        with self.session_factory() as db, db.begin():
            record = ShiftRecord(id=shift.id)
            _copy_shift(shift, record)
            db.add(record)
        return shift

    def save(self, shift: Shift) -> Shift:
        with self.session_factory() as db, db.begin():
            record = db.get(ShiftRecord, shift.id)
            if record is None:
                raise KeyError(shift.id)
            _copy_shift(shift, record)
        return shift

    def add_cash_sale(self, shift_id: str, amount: Decimal) -> Shift | None:
        with self.session_factory() as db, db.begin():
            result = db.execute(
                update(ShiftRecord)
                .where(ShiftRecord.id == shift_id, ShiftRecord.status == "open")
                .values(cash_sales=ShiftRecord.cash_sales + amount)
            )
            if result.rowcount != 1:
                return None
            record = db.get(ShiftRecord, shift_id, populate_existing=True)
            return _shift_from_record(record)


def _held_order_from_record(record: HeldOrderRecord) -> HeldOrder:
    return HeldOrder(
        id=record.id,
        outlet_id=record.outlet_id,
        items=[LineItem.model_validate(item) for item in json.loads(record.items)],
        total_amount=record.total_amount,
        created_at=record.created_at,
        status=record.status,
        notes=record.notes,
        customer_id=record.customer_id,
        customer_name=record.customer_name,
        customer_phone=record.customer_phone,
        discount_percent=record.discount_percent,
    )


class SqlHeldOrderRepository:
    """Held orders with their lines serialized as JSON text."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def add(self, order: HeldOrder) -> HeldOrder:
        with self.session_factory() as db, db.begin():
            db.add(
                HeldOrderRecord(
                    id=order.id,
                    outlet_id=order.outlet_id,
                    customer_id=order.customer_id,
                    customer_name=order.customer_name,
                    customer_phone=order.customer_phone,
                    discount_percent=order.discount_percent,
                    items=json.dumps([item.model_dump(mode="json") for item in order.items]),
                    notes=order.notes,
                    total_amount=order.total_amount,
                    status=order.status,
                    created_at=order.created_at,
                )
            )
        return order

    def get(self, order_id: str) -> HeldOrder | None:
        with self.session_factory() as db:
            record = db.get(HeldOrderRecord, order_id)
            return _held_order_from_record(record) if record else None

    def list(self, outlet_id: str, status: HeldOrderStatus = "held") -> list[HeldOrder]:
        with self.session_factory() as db:
            records = db.scalars(
                select(HeldOrderRecord)
                .where(HeldOrderRecord.outlet_id == outlet_id, HeldOrderRecord.status == status)
                .order_by(HeldOrderRecord.created_at.desc())
            ).all()
            return [_held_order_from_record(record) for record in records]

    def update_status(self, order_id: str, status: HeldOrderStatus) -> None:
        with self.session_factory() as db, db.begin():
            record = db.get(HeldOrderRecord, order_id)
            if record is None:
                raise KeyError(order_id)
            record.status = status

    def delete(self, order_id: str) -> None:
        with self.session_factory() as db, db.begin():
            record = db.get(HeldOrderRecord, order_id)
            if record is not None:
                db.delete(record)


class SqlLoyaltyService:
    def __init__(self, session_factory: sessionmaker, outlet_id: str) -> None:
        self.session_factory = session_factory
        self.outlet_id = outlet_id

    def _tiers(self, db: Session) -> list[MemberTier]:
        records = db.scalars(select(MemberTierRecord).where(MemberTierRecord.outlet_id == self.outlet_id)).all()
        return [
            MemberTier(id=r.id, name=r.name, discount_percent=r.discount_percent, min_points=r.min_points)
            for r in records
        ]

    def _settings(self, db: Session) -> LoyaltySettings:
        record = db.get(LoyaltySettingsRecord, self.outlet_id)
        if record is None:
            return LoyaltySettings()
        return LoyaltySettings(
            is_enabled=record.is_enabled,
            amount_per_point=record.amount_per_point,
            points_per_amount=record.points_per_amount,
        )

    def get_discount_percent(self, customer_id: str) -> Decimal:
        with self.session_factory() as db:
            record = db.get(CustomerRecord, customer_id)
            if record is None:
                return Decimal("0")
            return tier_discount(Customer(id=record.id, name=record.name, tier_id=record.tier_id), self._tiers(db))

    def award_points(self, customer_id: str, amount: Decimal) -> int:
        with self.session_factory() as db, db.begin():
            record = db.get(CustomerRecord, customer_id)
            if record is None:
                return 0
            customer = Customer(
                id=record.id,
                name=record.name,
                points=record.points,
                total_spent=record.total_spent,
                tier_id=record.tier_id,
            )
            updated, earned = apply_award(customer, amount, self._settings(db), self._tiers(db))
            record.points = updated.points
            record.total_spent = updated.total_spent
            record.tier_id = updated.tier_id
        return earned
