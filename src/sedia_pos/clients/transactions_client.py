from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..exceptions import ApiError, ConflictError, StockConflict, ValidationError
from ..models import PaymentAllocation, Transaction
from .base import BaseClient, expect_object, money_str


def _reference(payment: PaymentAllocation) -> str | None:
    return payment.gateway_ref or payment.manual_account_ref


def transaction_payload(transaction: Transaction) -> dict[str, Any]:
    return {
        "outletId": transaction.outlet_id,
        "invoiceNumber": transaction.invoice_number,
        "customerId": transaction.customer_id,
        "cashierId": transaction.cashier_id,
        "shiftId": transaction.shift_id,
        "subtotal": money_str(transaction.subtotal),
        "discount": money_str(transaction.discount),
        "tax": money_str(transaction.tax),
        "totalAmount": money_str(transaction.total_amount),
        "paymentMethod": transaction.payment_method_label,
        "paymentStatus": transaction.payment_status,
        "status": transaction.status,
        "notes": transaction.notes,
        "items": [
            {
                "productId": item.product_id,
                "variantId": item.variant_id,
                "productName": item.name,
                "quantity": item.quantity,
                "price": money_str(item.unit_price),
                "total": money_str(item.line_total),
            }
            for item in transaction.items
        ],
        "payments": [
            {
                "paymentMethod": payment.method_name or payment.method_id,
                "amount": money_str(payment.amount),
                "referenceNumber": _reference(payment),
            }
            for payment in transaction.payments
        ],
    }


def _stock_conflicts(exc: ApiError) -> list[str] | None:
    if isinstance(exc, ConflictError):
        return [str(item) for item in exc.details] if isinstance(exc.details, list) else [exc.message]
    # the backend answers a failed stock re-check with 400 {"error": "Stok tidak mencukupi", "details": [...]}
    if isinstance(exc, ValidationError) and isinstance(exc.details, list) and "stok" in exc.message.lower():
        return [str(item) for item in exc.details]
    return None


@dataclass
class TransactionsClient(BaseClient):
    def commit(self, transaction: Transaction) -> str:
        try:
            data = self._request(
                "POST",
                "/api/transactions",
                json_body=transaction_payload(transaction),
                headers={"Idempotency-Key": transaction.invoice_number},
                retry_mutation=True,
                operation="transactions.commit",
            )
        except ApiError as exc:
            conflicts = _stock_conflicts(exc)
            if conflicts is not None:
                raise StockConflict(transaction.invoice_number, conflicts) from exc
            raise
        return str(expect_object(data, "transaction").get("invoiceNumber") or transaction.invoice_number)
