from __future__ import annotations

from decimal import Decimal

import pytest

from sedia_pos.audit import AuditTrail, MemoryAuditSink
from sedia_pos.exceptions import ShiftAlreadyClosed, ShiftAlreadyOpen, ShiftNotOpen, ShiftValidationError
from sedia_pos.memory import InMemoryShiftRepository
from sedia_pos.shift import ShiftManager, validate_close_shift_payload, validate_open_shift_payload

from pos_helpers import FIXED_NOW, OUTLET


def _manager() -> tuple[ShiftManager, MemoryAuditSink]:
    sink = MemoryAuditSink()
    return ShiftManager(InMemoryShiftRepository(), AuditTrail(sink), clock=lambda: FIXED_NOW), sink


def test_one_open_shift_per_outlet() -> None:
    manager, _ = _manager()
    first = manager.open_shift("emp-1", OUTLET, "500000")
    with pytest.raises(ShiftAlreadyOpen) as excinfo:
        manager.open_shift("emp-2", OUTLET, "100000")
    assert excinfo.value.shift_id == first.id
    other = manager.open_shift("emp-2", "outlet-2", "100000")
    assert other.outlet_id == "outlet-2"
    assert manager.require_open(OUTLET).id == first.id


def test_require_open_without_shift() -> None:
    manager, _ = _manager()
    with pytest.raises(ShiftNotOpen):
        manager.require_open(OUTLET)


def test_open_payload_validation() -> None:
    result = validate_open_shift_payload(employee_id=" ", outlet_id=OUTLET, starting_cash=Decimal("-1"))
    assert result.ok is False
    assert {issue.field for issue in result.issues} == {"employee_id", "starting_cash"}
    assert validate_close_shift_payload(ending_cash=None).ok is False
    manager, _ = _manager()
    with pytest.raises(ShiftValidationError):
        manager.open_shift("emp-1", OUTLET, "-5")


def test_close_reports_expected_cash_and_difference() -> None:
    manager, sink = _manager()
    shift = manager.open_shift("emp-1", OUTLET, "500000")
    manager.record_cash_sale(shift.id, Decimal("36000"))
    manager.record_cash_sale(shift.id, Decimal("14000"))
    manager.record_cash_sale(shift.id, Decimal("0"))
    closed = manager.close_shift(shift.id, "545000", notes="kurang 5000")
    assert closed.status == "closed"
    assert closed.cash_sales_total == Decimal("50000")
    assert closed.expected_cash == Decimal("550000")
    assert closed.difference == Decimal("-5000")
    assert closed.closed_at == FIXED_NOW
    assert manager.current(OUTLET) is None
    assert sink.actions() == ["shift.opened", "shift.closed"]
    assert sink.events[1].metadata == {"expected_cash": "550000", "difference": "-5000"}


def test_summary_matches_close_figures() -> None:
    manager, _ = _manager()
    shift = manager.open_shift("emp-1", OUTLET, "100000")
    manager.record_cash_sale(shift.id, Decimal("25000"))
    summary = manager.summary(shift.id)
    assert summary.expected_cash == Decimal("125000")
    assert summary.difference is None


def test_closed_shift_cannot_close_again_or_take_sales() -> None:
    manager, _ = _manager()
    shift = manager.open_shift("emp-1", OUTLET, "0")
    manager.close_shift(shift.id, "0")
    with pytest.raises(ShiftAlreadyClosed):
        manager.close_shift(shift.id, "0")
    with pytest.raises(ShiftNotOpen):
        manager.record_cash_sale(shift.id, Decimal("1000"))


def test_new_shift_can_open_after_close() -> None:
    manager, _ = _manager()
    shift = manager.open_shift("emp-1", OUTLET, "0")
    manager.close_shift(shift.id, "0")
    reopened = manager.open_shift("emp-2", OUTLET, "200000")
    assert reopened.id != shift.id
