import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

Money = Numeric(15, 2)


def _new_id() -> str:
    return str(uuid.uuid4())


class ProductRecord(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    variants = relationship("VariantRecord", back_populates="product", order_by="VariantRecord.name")


class VariantRecord(Base):
    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(String(64), ForeignKey("products.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_adjustment: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    product = relationship("ProductRecord", back_populates="variants")


class MemberTierRecord(Base):
    __tablename__ = "member_tiers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    min_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class LoyaltySettingsRecord(Base):
    __tablename__ = "loyalty_settings"

    outlet_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    amount_per_point: Mapped[int] = mapped_column(Integer, default=1000, nullable=False)
    points_per_amount: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class CustomerRecord(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_spent: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tier_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("member_tiers.id"), nullable=True)


class TransactionRecord(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    shift_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    cashier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), default="paid", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    items = relationship("TransactionItemRecord", back_populates="transaction", cascade="all, delete-orphan")
    payments = relationship("TransactionPaymentRecord", back_populates="transaction", cascade="all, delete-orphan")


class TransactionItemRecord(Base):
    __tablename__ = "transaction_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey("transactions.id"), index=True, nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total: Mapped[Decimal] = mapped_column(Money, nullable=False)

    transaction = relationship("TransactionRecord", back_populates="items")


class TransactionPaymentRecord(Base):
    __tablename__ = "transaction_payments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey("transactions.id"), index=True, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    transaction = relationship("TransactionRecord", back_populates="payments")


class ShiftRecord(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="open", nullable=False)
    starting_cash: Mapped[Decimal] = mapped_column(Money, nullable=False)
    cash_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    ending_cash: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    expected_cash: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    difference: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class HeldOrderRecord(Base):
    __tablename__ = "held_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    outlet_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    items: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="held", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


Index("ix_shifts_outlet_status", ShiftRecord.outlet_id, ShiftRecord.status)
Index("ix_held_orders_outlet_status", HeldOrderRecord.outlet_id, HeldOrderRecord.status)
