from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from ..exceptions import NotFoundError
from ..models import Shift
from .base import BaseClient, expect_list, expect_object, money_str


def _decimal(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def parse_shift(data: Mapping[str, Any]) -> Shift:
    starting = Decimal(str(data.get("startingCash") or "0"))
    expected = _decimal(data.get("expectedCash"))
    summary = data.get("summary") or {}
    if "cashSales" in summary:
        cash_sales = Decimal(str(summary["cashSales"]))
    elif expected is not None:
        cash_sales = expected - starting
    else:
        cash_sales = Decimal("0")
    return Shift(
        id=str(data["id"]),
        employee_id=str(data.get("employeeId") or ""),
        outlet_id=str(data.get("outletId") or ""),
        starting_cash=starting,
        opened_at=datetime.fromisoformat(str(data["startTime"]).replace("Z", "+00:00")),
        status="closed" if data.get("status") == "closed" else "open",
        cash_sales_total=cash_sales,
        ending_cash=_decimal(data.get("endingCash")),
        closed_at=datetime.fromisoformat(str(data["endTime"]).replace("Z", "+00:00")) if data.get("endTime") else None,
        expected_cash=expected,
        difference=_decimal(data.get("difference")),
        notes=data.get("notes"),
    )


@dataclass
class ShiftsClient(BaseClient):
    """Shift storage on the POS backend.

    The backend derives cash sales from recorded transactions, so saving an
    open shift sends nothing and closing returns the server's figures.
    """

    def find_open(self, outlet_id: str) -> Shift | None:
        data = self._request(
            "GET",
            "/api/shifts",
            params={"outletId": outlet_id, "status": "open"},
            operation="shifts.find_open",
        )
        rows = expect_list(data, "shifts")
        return parse_shift(rows[0]) if rows else None

    def get(self, shift_id: str) -> Shift | None:
        try:
            data = self._request("GET", f"/api/shifts/{shift_id}", operation="shifts.get")
        except NotFoundError:
            return None
        return parse_shift(expect_object(data, "shift"))

    def add(self, shift: Shift) -> Shift:
        data = self._request(
            "POST",
            "/api/shifts",
            json_body={
                "outletId": shift.outlet_id,
                "employeeId": shift.employee_id,
                "startingCash": money_str(shift.starting_cash),
            },
            operation="shifts.open",
        )
        return parse_shift(expect_object(data, "shift"))

    def save(self, shift: Shift) -> Shift:
        if shift.is_open:
            return shift
        data = self._request(
            "POST",
            f"/api/shifts/{shift.id}/close",
            json_body={"endingCash": money_str(shift.ending_cash), "notes": shift.notes},
            operation="shifts.close",
        )
        return parse_shift(expect_object(data, "shift"))

    def add_cash_sale(self, shift_id: str, amount: Decimal) -> Shift | None:
        # cash sales are summed server-side from the recorded transaction
        shift = self.get(shift_id)
        return shift if shift is not None and shift.is_open else None
