from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .config import GATEWAY_BANKS
from .exceptions import AllocationImbalance, InvalidPaymentOperation, MissingSubSelection
from .models import PaymentAllocation, PaymentMethod
from .money import ZERO, quantize_money, to_decimal

CASH_FALLBACK = PaymentMethod(id="cash", name="Tunai", kind="cash")


@dataclass(frozen=True)
class PaymentValidationIssue:
    field: str
    reason: str
    code: str


@dataclass(frozen=True)
class PaymentValidationResult:
    ok: bool
    remaining: Decimal
    issues: list[PaymentValidationIssue]


def missing_sub_selection(allocation: PaymentAllocation) -> str | None:
    """Return why an allocation cannot be charged yet, or None when it can."""
    kind = allocation.kind
    if kind == "transfer":
        if allocation.integrated:
            return None if allocation.gateway_bank else "a bank must be chosen for the virtual account"
        return None if allocation.manual_account_ref else "a receiving bank account must be chosen"
    if kind == "qris":
        if allocation.integrated:
            return None
        return None if allocation.qris_payload else "the static QRIS payload is missing"
    if kind in ("cash", "ewallet", "card"):
        return None
    raise ValueError(f"Unsupported payment kind: {kind}")


class PaymentLedger:
    """Payment allocations for one sale.

    In single mode there is exactly one allocation and its amount is pinned
    to the total. In split mode the operator edits amounts and checkout needs
    them to add up to the total exactly.
    """

    def __init__(self, methods: Iterable[PaymentMethod] = (), total: Decimal | int | str = ZERO) -> None:
        self.methods: dict[str, PaymentMethod] = {method.id: method for method in methods}
        self._cash = next((m for m in self.methods.values() if m.kind == "cash"), CASH_FALLBACK)
        self.methods.setdefault(self._cash.id, self._cash)
        self.split = False
        self._total = quantize_money(to_decimal(total))
        self._allocations: list[PaymentAllocation] = [self._allocate(self._cash, self._total)]

    @property
    def total(self) -> Decimal:
        return self._total

    @property
    def allocations(self) -> tuple[PaymentAllocation, ...]:
        return tuple(self._allocations)

    def allocated(self) -> Decimal:
        return sum((allocation.amount for allocation in self._allocations), ZERO)

    def remaining_balance(self) -> Decimal:
        return self._total - self.allocated()

    def method(self, method_id: str) -> PaymentMethod:
        try:
            return self.methods[method_id]
        except KeyError:
            raise InvalidPaymentOperation(f"unknown payment method {method_id}") from None

    def reprice(self, total: Decimal) -> None:
        """Apply a new total. Split allocations are dropped, a single one is re-pinned."""
        self._total = quantize_money(total)
        if self.split:
            self._allocations = []
        else:
            sole = self._allocations[0]
            self._allocations = [sole.model_copy(update={"amount": self._total, "tendered": None})]

    def reset(self) -> None:
        self.split = False
        self._allocations = [self._allocate(self._cash, self._total)]

    def enable_split(self) -> None:
        if self.split:
            return
        self.split = True
        self._allocations = []

    def disable_split(self) -> None:
        if not self.split:
            return
        first = self._allocations[0] if self._allocations else None
        self.split = False
        method = self.method(first.method_id) if first else self._cash
        self._allocations = [self._allocate(method, self._total)]

    def add_payment(self, method_id: str, amount: Decimal | None = None) -> PaymentAllocation:
        method = self.method(method_id)
        if not self.split:
            allocation = self._allocate(method, self._total)
            self._allocations = [allocation]
            return allocation
        remaining = self.remaining_balance()
        if self._allocations and remaining <= 0:
            raise InvalidPaymentOperation("the bill is already fully allocated")
        if method.is_integrated and self.integrated_indexes():
            raise InvalidPaymentOperation("only one gateway payment is allowed per sale")
        if amount is None:
            amount = remaining if remaining > 0 else self._total
        allocation = self._allocate(method, self._check_amount(amount))
        self._allocations.append(allocation)
        return allocation

    def remove_payment(self, index: int) -> None:
        if not self.split:
            raise InvalidPaymentOperation("payments can only be removed in split mode")
        self._at(index)
        del self._allocations[index]
        if not self._allocations:
            self.reset()

    def set_amount(self, index: int, amount: Decimal | int | str) -> PaymentAllocation:
        if not self.split:
            raise InvalidPaymentOperation("the single payment amount always equals the total")
        return self._update(index, amount=self._check_amount(amount))

    def set_tendered(self, tendered: Decimal | int | str, index: int = 0) -> PaymentAllocation:
        allocation = self._at(index)
        if allocation.kind != "cash":
            raise InvalidPaymentOperation("only cash payments take a tendered amount")
        value = to_decimal(tendered)
        if value < allocation.amount:
            raise InvalidPaymentOperation(f"tendered {value} is less than {allocation.amount}")
        return self._update(index, tendered=value)

    def set_sub_selection(
        self,
        index: int,
        *,
        gateway_bank: str | None = None,
        manual_account_ref: str | None = None,
    ) -> PaymentAllocation:
        allocation = self._at(index)
        if allocation.kind != "transfer":
            raise InvalidPaymentOperation(f"{allocation.kind} payments have no bank selection")
        if allocation.integrated:
            bank = (gateway_bank or "").strip().lower()
            if bank not in GATEWAY_BANKS:
                raise InvalidPaymentOperation(f"unsupported gateway bank {gateway_bank!r}")
            return self._update(index, gateway_bank=bank)
        method = self.method(allocation.method_id)
        if manual_account_ref not in {account.id for account in method.bank_accounts}:
            raise InvalidPaymentOperation(f"unknown bank account {manual_account_ref!r} for {method.name}")
        return self._update(index, manual_account_ref=manual_account_ref)

    def mark_settled(self, index: int, gateway_ref: str) -> PaymentAllocation:
        return self._update(index, gateway_ref=gateway_ref)

    def integrated_indexes(self) -> list[int]:
        return [idx for idx, allocation in enumerate(self._allocations) if allocation.integrated]

    def validate(self) -> PaymentValidationResult:
        issues: list[PaymentValidationIssue] = []
        remaining = self.remaining_balance()
        if not self._allocations:
            issues.append(
                PaymentValidationIssue(field="payments", reason="at least one payment is required", code=AllocationImbalance.code)
            )
        elif remaining != 0:
            issues.append(
                PaymentValidationIssue(
                    field="payments",
                    reason=f"payments must equal the total exactly (remaining {remaining})",
                    code=AllocationImbalance.code,
                )
            )
        for idx, allocation in enumerate(self._allocations):
            reason = missing_sub_selection(allocation)
            if reason:
                issues.append(
                    PaymentValidationIssue(field=f"payments[{idx}]", reason=reason, code=MissingSubSelection.code)
                )
        return PaymentValidationResult(ok=not issues, remaining=remaining, issues=issues)

    def ensure_ready(self) -> None:
        remaining = self.remaining_balance()
        if not self._allocations or remaining != 0:
            raise AllocationImbalance(remaining)
        for idx, allocation in enumerate(self._allocations):
            reason = missing_sub_selection(allocation)
            if reason:
                raise MissingSubSelection(idx, allocation.method_id, reason)

    def _allocate(self, method: PaymentMethod, amount: Decimal) -> PaymentAllocation:
        return PaymentAllocation(
            method_id=method.id,
            method_name=method.name,
            kind=method.kind,
            amount=amount,
            integrated=method.is_integrated,
            qris_payload=method.qris_data if method.kind == "qris" else None,
        )

    def _check_amount(self, amount: Decimal | int | str) -> Decimal:
        value = to_decimal(amount)
        if value < 0:
            raise InvalidPaymentOperation("payment amount cannot be negative")
        return value

    def _at(self, index: int) -> PaymentAllocation:
        if not 0 <= index < len(self._allocations):
            raise InvalidPaymentOperation(f"no payment at position {index}")
        return self._allocations[index]

    def _update(self, index: int, **changes: object) -> PaymentAllocation:
        updated = self._at(index).model_copy(update=changes)
        self._allocations[index] = updated
        return updated
