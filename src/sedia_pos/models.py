from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PaymentKind = Literal["cash", "qris", "transfer", "ewallet", "card"]
GatewayKind = Literal["qris", "transfer"]
LineKey = tuple[str, str | None]

PRIVILEGED_ROLES = {"manager", "owner", "admin"}


class Actor(BaseModel):
    """Who is operating the till. Passed into every privileged call."""

    model_config = ConfigDict(frozen=True)

    employee_id: str
    role: str = "cashier"
    outlet_id: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role.strip().lower() in PRIVILEGED_ROLES


class Variant(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price_adjustment: Decimal = Decimal("0")
    stock: int = Field(default=0, ge=0)


class Product(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: Decimal
    stock: int = Field(default=0, ge=0)
    variants: list[Variant] = Field(default_factory=list)

    def find_variant(self, variant_id: str) -> Variant | None:
        return next((variant for variant in self.variants if variant.id == variant_id), None)


class LineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    product_id: str
    variant_id: str | None = None
    name: str
    unit_price: Decimal
    quantity: int = Field(default=1, ge=1)
    stock_ceiling: int = Field(default=0, ge=0)

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class TaxPolicy(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    is_enabled: bool = False
    name: str = "PPN"
    rate_percent: Decimal = Field(default=Decimal("0"), ge=0)
    is_inclusive: bool = False


class BankAccount(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    bank_name: str
    account_number: str
    account_holder: str | None = None


class PaymentMethod(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    kind: PaymentKind
    is_manual: bool = False
    qris_data: str | None = None
    bank_accounts: list[BankAccount] = Field(default_factory=list)

    @property
    def is_integrated(self) -> bool:
        if self.kind == "qris":
            return not self.qris_data
        if self.kind == "transfer":
            return not self.is_manual and not self.bank_accounts
        return False


class PaymentAllocation(BaseModel):
    model_config = ConfigDict(extra="allow")

    method_id: str
    method_name: str | None = None
    kind: PaymentKind
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    integrated: bool = False
    gateway_bank: str | None = None
    manual_account_ref: str | None = None
    qris_payload: str | None = None
    gateway_ref: str | None = None
    tendered: Decimal | None = None

    @property
    def change_due(self) -> Decimal:
        if self.tendered is None:
            return Decimal("0")
        return self.tendered - self.amount


class ChargeArtifact(BaseModel):
    """Correlation data returned by the gateway when a charge is created."""

    model_config = ConfigDict(extra="allow")

    order_id: str
    kind: GatewayKind
    qr_string: str | None = None
    bank: str | None = None
    va_number: str | None = None
    bill_key: str | None = None
    biller_code: str | None = None
    transaction_status: str | None = None

    @property
    def has_correlation(self) -> bool:
        return bool(self.qr_string or self.va_number or self.bill_key)


class MemberTier(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    discount_percent: Decimal = Decimal("0")
    min_points: int = 0


class Customer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    phone: str | None = None
    points: int = 0
    total_spent: Decimal = Decimal("0")
    tier_id: str | None = None


class LoyaltySettings(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    is_enabled: bool = True
    amount_per_point: int = 1000
    points_per_amount: int = 1


class Shift(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    employee_id: str
    outlet_id: str
    starting_cash: Decimal
    opened_at: datetime
    status: Literal["open", "closed"] = "open"
    cash_sales_total: Decimal = Decimal("0")
    ending_cash: Decimal | None = None
    closed_at: datetime | None = None
    expected_cash: Decimal | None = None
    difference: Decimal | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"


HeldOrderStatus = Literal["held", "resumed", "completed", "deleted"]


class HeldOrder(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    outlet_id: str
    items: list[LineItem]
    total_amount: Decimal
    created_at: datetime
    status: HeldOrderStatus = "held"
    notes: str | None = None
    customer_id: str | None = None
    discount_percent: Decimal = Decimal("0")
    customer_name: str | None = None
    customer_phone: str | None = None


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_number: str
    outlet_id: str
    items: tuple[LineItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total_amount: Decimal
    payments: tuple[PaymentAllocation, ...]
    payment_method_label: str
    created_at: datetime
    payment_status: Literal["paid", "pending"] = "paid"
    status: Literal["completed"] = "completed"
    shift_id: str | None = None
    shift_employee_id: str | None = None
    cashier_id: str | None = None
    customer_id: str | None = None
    notes: str | None = None
    points_earned: int = 0

    @property
    def cash_total(self) -> Decimal:
        return sum((payment.amount for payment in self.payments if payment.kind == "cash"), Decimal("0"))
