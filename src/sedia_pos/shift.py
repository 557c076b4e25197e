from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from .audit import AuditTrail
from .collaborators import ShiftRepository
from .exceptions import ShiftAlreadyClosed, ShiftAlreadyOpen, ShiftNotOpen, ShiftValidationError
from .logging import log_json
from .models import Shift
from .money import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class CashValidationResult:
    ok: bool
    issues: list[CashValidationIssue]


@dataclass(frozen=True)
class ShiftSummary:
    starting_cash: Decimal
    cash_sales_total: Decimal
    expected_cash: Decimal
    ending_cash: Decimal | None
    difference: Decimal | None


def _require_non_negative(value: Decimal | None, field: str, issues: list[CashValidationIssue]) -> None:
    if value is None:
        issues.append(CashValidationIssue(field=field, reason="is required"))
        return
    if value < 0:
        issues.append(CashValidationIssue(field=field, reason="must not be negative"))


def _require_non_empty(value: str | None, field: str, issues: list[CashValidationIssue]) -> None:
    if value is None or not value.strip():
        issues.append(CashValidationIssue(field=field, reason="is required"))


def validate_open_shift_payload(
    *,
    employee_id: str | None,
    outlet_id: str | None,
    starting_cash: Decimal | None,
) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    _require_non_empty(employee_id, "employee_id", issues)
    _require_non_empty(outlet_id, "outlet_id", issues)
    _require_non_negative(starting_cash, "starting_cash", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def validate_close_shift_payload(*, ending_cash: Decimal | None) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    _require_non_negative(ending_cash, "ending_cash", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def summarize(shift: Shift) -> ShiftSummary:
    expected = shift.starting_cash + shift.cash_sales_total
    difference = shift.ending_cash - expected if shift.ending_cash is not None else None
    return ShiftSummary(
        starting_cash=shift.starting_cash,
        cash_sales_total=shift.cash_sales_total,
        expected_cash=expected,
        ending_cash=shift.ending_cash,
        difference=difference,
    )


class ShiftManager:
    """Opens and closes cashier shifts and accumulates their cash sales.

    At most one shift per outlet is open at a time. The cash difference on
    close is reported as-is, it is never adjusted.
    """

    def __init__(
        self,
        repository: ShiftRepository,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.audit = audit or AuditTrail()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def current(self, outlet_id: str) -> Shift | None:
        return self.repository.find_open(outlet_id)

    def require_open(self, outlet_id: str) -> Shift:
        shift = self.current(outlet_id)
        if shift is None:
            raise ShiftNotOpen(f"no open shift at outlet {outlet_id}")
        return shift

    def open_shift(self, employee_id: str, outlet_id: str, starting_cash: Decimal | int | str) -> Shift:
        amount = to_decimal(starting_cash)
        result = validate_open_shift_payload(employee_id=employee_id, outlet_id=outlet_id, starting_cash=amount)
        if not result.ok:
            raise ShiftValidationError(result.issues)
        with self._lock:
            existing = self.repository.find_open(outlet_id)
            if existing is not None:
                raise ShiftAlreadyOpen(outlet_id, existing.id)
            shift = self.repository.add(
                Shift(
                    id=str(uuid.uuid4()),
                    employee_id=employee_id,
                    outlet_id=outlet_id,
                    starting_cash=amount,
                    opened_at=self.clock(),
                )
            )
        log_json(
            logger,
            {"event": "shift.opened", "shift_id": shift.id, "outlet_id": outlet_id, "starting_cash": amount},
        )
        self.audit.record(
            "shift.opened",
            "shift",
            entity_id=shift.id,
            outlet_id=outlet_id,
            actor_id=employee_id,
            metadata={"starting_cash": str(amount)},
        )
        return shift

    def record_cash_sale(self, shift_id: str, amount: Decimal) -> Shift:
        if amount <= 0:
            return self._require(shift_id)
        updated = self.repository.add_cash_sale(shift_id, amount)
        if updated is None:
            self._require(shift_id)
            raise ShiftNotOpen(f"shift {shift_id} is closed")
        return updated

    def close_shift(self, shift_id: str, ending_cash: Decimal | int | str, notes: str | None = None) -> Shift:
        amount = to_decimal(ending_cash)
        result = validate_close_shift_payload(ending_cash=amount)
        if not result.ok:
            raise ShiftValidationError(result.issues)
        with self._lock:
            shift = self._require(shift_id)
            if not shift.is_open:
                raise ShiftAlreadyClosed(f"shift {shift_id} is already closed")
            expected = shift.starting_cash + shift.cash_sales_total
            closed = self.repository.save(
                shift.model_copy(
                    update={
                        "status": "closed",
                        "ending_cash": amount,
                        "expected_cash": expected,
                        "difference": amount - expected,
                        "closed_at": self.clock(),
                        "notes": notes,
                    }
                )
            )
        log_json(
            logger,
            {
                "event": "shift.closed",
                "shift_id": closed.id,
                "outlet_id": closed.outlet_id,
                "starting_cash": closed.starting_cash,
                "cash_sales_total": closed.cash_sales_total,
                "expected_cash": closed.expected_cash,
                "ending_cash": closed.ending_cash,
                "difference": closed.difference,
            },
        )
        self.audit.record(
            "shift.closed",
            "shift",
            entity_id=closed.id,
            outlet_id=closed.outlet_id,
            actor_id=closed.employee_id,
            metadata={"expected_cash": str(expected), "difference": str(closed.difference)},
        )
        return closed

    def summary(self, shift_id: str) -> ShiftSummary:
        return summarize(self._require(shift_id))

    def _require(self, shift_id: str) -> Shift:
        shift = self.repository.get(shift_id)
        if shift is None:
            raise ShiftNotOpen(f"unknown shift {shift_id}")
        return shift
