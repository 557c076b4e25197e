from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class AuthError(ApiError):
    """Authentication failed or the access token is invalid."""


class PermissionError(ApiError):
    """The backend refused the action for this role or outlet."""


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class PosError(Exception):
    code = "POS_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class VariantRequired(PosError):
    code = "VARIANT_REQUIRED"

    def __init__(self, product_id: str, variant_ids: list[str]) -> None:
        super().__init__(f"product {product_id} requires a variant selection", variant_ids=variant_ids)
        self.product_id = product_id
        self.variant_ids = variant_ids


class InsufficientStock(PosError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, key: tuple[str, str | None], requested: int, ceiling: int) -> None:
        super().__init__(f"requested {requested} of {key[0]} but only {ceiling} available")
        self.key = key
        self.requested = requested
        self.ceiling = ceiling


class SupervisorAuthorizationRequired(PosError):
    code = "SUPERVISOR_AUTH_REQUIRED"

    def __init__(self, action: str) -> None:
        super().__init__(f"{action} requires supervisor authorization")
        self.action = action


class EmptyCart(PosError):
    code = "CART_EMPTY"


class CartNotEmpty(PosError):
    code = "CART_NOT_EMPTY"


class AllocationImbalance(PosError):
    code = "ALLOCATION_IMBALANCE"

    def __init__(self, remaining: Decimal) -> None:
        super().__init__(f"payments are off by {remaining}")
        self.remaining = remaining


class MissingSubSelection(PosError):
    code = "MISSING_SUB_SELECTION"

    def __init__(self, index: int, method_id: str, reason: str) -> None:
        super().__init__(f"payments[{index}] ({method_id}): {reason}")
        self.index = index
        self.method_id = method_id


class InvalidPaymentOperation(PosError):
    code = "INVALID_PAYMENT_OPERATION"


class ShiftNotOpen(PosError):
    code = "SHIFT_NOT_OPEN"


class ShiftAlreadyOpen(PosError):
    code = "SHIFT_ALREADY_OPEN"

    def __init__(self, outlet_id: str, shift_id: str) -> None:
        super().__init__(f"outlet {outlet_id} already has an open shift")
        self.outlet_id = outlet_id
        self.shift_id = shift_id


class ShiftAlreadyClosed(PosError):
    code = "SHIFT_ALREADY_CLOSED"


class HeldOrderNotFound(PosError):
    code = "HELD_ORDER_NOT_FOUND"


class GatewayUnavailable(PosError):
    """Charge could not be created. Retry with a new checkout."""

    code = "GATEWAY_UNAVAILABLE"


class SettlementNotConfirmed(PosError):
    code = "SETTLEMENT_NOT_CONFIRMED"


class StockConflict(PosError):
    code = "STOCK_CONFLICT"

    def __init__(self, invoice_number: str, conflicts: list[str]) -> None:
        super().__init__(f"stock changed before {invoice_number} could be recorded", conflicts=conflicts)
        self.invoice_number = invoice_number
        self.conflicts = conflicts


class CheckoutFailed(PosError):
    """Payment is settled but the sale was not recorded.

    The invoice number is kept so recording can be retried without
    charging the customer again.
    """

    code = "CHECKOUT_FAILED"

    def __init__(self, invoice_number: str, cause: Exception) -> None:
        super().__init__(f"sale {invoice_number} was paid but not recorded: {cause}")
        self.invoice_number = invoice_number
        self.cause = cause


class ShiftValidationError(PosError):
    code = "SHIFT_VALIDATION_ERROR"

    def __init__(self, issues: list) -> None:
        super().__init__("; ".join(f"{issue.field} {issue.reason}" for issue in issues))
        self.issues = issues
