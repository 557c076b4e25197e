from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from ..exceptions import ApiError, GatewayUnavailable
from ..models import ChargeArtifact, GatewayKind
from .base import BaseClient, expect_object


def parse_charge(order_id: str, kind: GatewayKind, bank: str | None, data: Mapping[str, Any]) -> ChargeArtifact:
    qr_string = data.get("qr_string")
    if not qr_string:
        actions = data.get("actions") or []
        qr_string = next(
            (action.get("url") for action in actions if isinstance(action, dict) and action.get("name") == "generate-qr-code"),
            None,
        )
    va_numbers = data.get("va_numbers") or []
    va_number = None
    if va_numbers and isinstance(va_numbers[0], dict):
        va_number = va_numbers[0].get("va_number")
        bank = va_numbers[0].get("bank") or bank
    va_number = va_number or data.get("permata_va_number")
    return ChargeArtifact(
        order_id=str(data.get("order_id") or order_id),
        kind=kind,
        qr_string=qr_string,
        bank=bank,
        va_number=va_number,
        bill_key=data.get("bill_key"),
        biller_code=data.get("biller_code"),
        transaction_status=data.get("transaction_status"),
    )


@dataclass
class GatewayClient(BaseClient):
    """Creates QRIS / virtual-account charges through the POS backend's Midtrans routes."""

    default_bank: str = "bca"

    def charge(self, order_id: str, amount: Decimal, kind: GatewayKind, sub_method: str | None) -> ChargeArtifact:
        body: dict[str, Any] = {
            "orderId": order_id,
            # the gateway only takes whole rupiah
            "amount": int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "paymentType": "qris" if kind == "qris" else "bank_transfer",
        }
        bank = None
        if kind == "transfer":
            bank = (sub_method or self.default_bank).lower()
            body["bank"] = bank
        try:
            data = self._request(
                "POST",
                "/api/payment/midtrans/charge",
                json_body=body,
                operation="gateway.charge",
            )
        except ApiError as exc:
            raise GatewayUnavailable(f"charge for {order_id} failed: {exc.message}", order_id=order_id) from exc
        return parse_charge(order_id, kind, bank, expect_object(data, "charge"))

    def get_status(self, order_id: str) -> str | None:
        data = self._request("GET", f"/api/payment/midtrans/status/{order_id}", operation="gateway.status")
        return expect_object(data, "payment status").get("transaction_status")
