from .audit import AuditTrail, JsonlAuditSink, MemoryAuditSink
from .cart import Cart, price_line
from .config import ConfigError, PosConfig, load_config
from .exceptions import (
    AllocationImbalance,
    ApiError,
    CartNotEmpty,
    CheckoutFailed,
    EmptyCart,
    GatewayUnavailable,
    HeldOrderNotFound,
    InsufficientStock,
    InvalidPaymentOperation,
    MissingSubSelection,
    PosError,
    SettlementNotConfirmed,
    ShiftAlreadyClosed,
    ShiftAlreadyOpen,
    ShiftNotOpen,
    StockConflict,
    SupervisorAuthorizationRequired,
    VariantRequired,
)
from .finalizer import CheckoutAttempt, TransactionFinalizer
from .gateway_session import GatewaySession, SessionPoller, SessionStatus
from .held_orders import HeldOrderStore
from .models import (
    Actor,
    ChargeArtifact,
    Customer,
    HeldOrder,
    LineItem,
    PaymentAllocation,
    PaymentMethod,
    Product,
    Shift,
    TaxPolicy,
    Transaction,
    Variant,
)
from .money import Totals, compute_totals, quantize_money
from .payment_ledger import PaymentLedger
from .session import ApiSession
from .shift import ShiftManager

__all__ = [
    "Actor",
    "AllocationImbalance",
    "ApiError",
    "ApiSession",
    "AuditTrail",
    "Cart",
    "CartNotEmpty",
    "ChargeArtifact",
    "CheckoutAttempt",
    "CheckoutFailed",
    "ConfigError",
    "Customer",
    "EmptyCart",
    "GatewaySession",
    "GatewayUnavailable",
    "HeldOrder",
    "HeldOrderNotFound",
    "HeldOrderStore",
    "InsufficientStock",
    "InvalidPaymentOperation",
    "JsonlAuditSink",
    "LineItem",
    "MemoryAuditSink",
    "MissingSubSelection",
    "PaymentAllocation",
    "PaymentLedger",
    "PaymentMethod",
    "PosConfig",
    "PosError",
    "Product",
    "SessionPoller",
    "SessionStatus",
    "SettlementNotConfirmed",
    "Shift",
    "ShiftAlreadyClosed",
    "ShiftAlreadyOpen",
    "ShiftManager",
    "ShiftNotOpen",
    "StockConflict",
    "SupervisorAuthorizationRequired",
    "TaxPolicy",
    "Totals",
    "Transaction",
    "TransactionFinalizer",
    "Variant",
    "VariantRequired",
    "compute_totals",
    "load_config",
    "price_line",
    "quantize_money",
]
