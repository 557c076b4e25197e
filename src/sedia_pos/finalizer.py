from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from .audit import AuditTrail
from .cart import Cart
from .collaborators import LoyaltyService, PaymentGateway, TransactionCommitter
from .config import PosConfig
from .exceptions import (
    CheckoutFailed,
    EmptyCart,
    GatewayUnavailable,
    InvalidPaymentOperation,
    SettlementNotConfirmed,
    StockConflict,
)
from .gateway_session import GatewaySession, SessionPoller, SessionStatus
from .held_orders import HeldOrderStore
from .invoice import gateway_order_id, new_invoice_number
from .logging import log_json
from .models import Actor, LineItem, PaymentAllocation, Shift, TaxPolicy, Transaction
from .money import Totals, quantize_money
from .payment_ledger import PaymentLedger
from .shift import ShiftManager

logger = logging.getLogger(__name__)

SETTLEMENT_KINDS = ("qris", "transfer")


def needs_settlement(allocation: PaymentAllocation) -> bool:
    return allocation.kind in SETTLEMENT_KINDS


@dataclass
class CheckoutAttempt:
    """Snapshot of the sale being paid for, owned by one finalizer."""

    invoice_number: str
    actor: Actor
    shift: Shift
    items: tuple[LineItem, ...]
    totals: Totals
    allocations: list[PaymentAllocation]
    created_at: datetime
    notes: str | None = None
    customer_id: str | None = None
    resumed_from: str | None = None
    session: GatewaySession | None = None
    session_index: int | None = None
    charges: int = 0
    transaction: Transaction | None = None

    def unsettled(self) -> list[int]:
        pending = [
            idx for idx, allocation in enumerate(self.allocations)
            if needs_settlement(allocation) and not allocation.gateway_ref
        ]
        # manual confirmations first, the gateway charge last
        return sorted(pending, key=lambda idx: self.allocations[idx].integrated)

    @property
    def is_settled(self) -> bool:
        return not self.unsettled()


class TransactionFinalizer:
    """Turns the cart and its payments into a recorded sale.

    ``begin_checkout`` checks preconditions and opens payment sessions,
    ``wait_for_settlement`` / ``confirm_manual`` drive them, ``complete``
    records the sale. ``checkout`` runs the whole sequence in the calling
    thread. Only one gateway poller is alive per finalizer.
    """

    def __init__(
        self,
        *,
        outlet_id: str,
        cart: Cart,
        ledger: PaymentLedger,
        shifts: ShiftManager,
        committer: TransactionCommitter,
        gateway: PaymentGateway | None = None,
        held_orders: HeldOrderStore | None = None,
        loyalty: LoyaltyService | None = None,
        tax_policy: TaxPolicy | None = None,
        config: PosConfig | None = None,
        audit: AuditTrail | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.outlet_id = outlet_id
        self.cart = cart
        self.ledger = ledger
        self.shifts = shifts
        self.committer = committer
        self.gateway = gateway
        self.held_orders = held_orders
        self.loyalty = loyalty
        self.tax_policy = tax_policy
        self.config = config or PosConfig()
        self.audit = audit or AuditTrail()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.rng = rng
        self._attempt: CheckoutAttempt | None = None
        self._poller: SessionPoller | None = None
        self._lock = threading.RLock()
        cart.subscribe(self._on_cart_changed)
        ledger.reprice(self.totals().total)

    @property
    def attempt(self) -> CheckoutAttempt | None:
        return self._attempt

    @property
    def session(self) -> GatewaySession | None:
        attempt = self._attempt
        return attempt.session if attempt else None

    def totals(self) -> Totals:
        return self.cart.totals(self.tax_policy)

    def set_tax_policy(self, policy: TaxPolicy | None) -> None:
        self.tax_policy = policy
        self._on_cart_changed(self.cart)

    def set_customer(self, customer_id: str | None) -> None:
        discount = Decimal("0")
        if customer_id and self.loyalty is not None:
            discount = self.loyalty.get_discount_percent(customer_id)
        self.cart.set_customer(customer_id, discount)

    def checkout(
        self,
        actor: Actor,
        *,
        notes: str | None = None,
        timeout: float | None = None,
        confirm_manual: bool = False,
    ) -> Transaction:
        """Run a checkout to the end in this thread.

        ``confirm_manual`` means the operator already verified every manual
        transfer/QRIS payment. Without it a manual payment stops the run with
        :class:`SettlementNotConfirmed` and the attempt stays open.
        """
        attempt = self.begin_checkout(actor, notes=notes)
        while attempt.session is not None:
            session = attempt.session
            if not session.integrated:
                if not confirm_manual:
                    raise SettlementNotConfirmed(
                        f"{session.order_id} is waiting for manual confirmation",
                        invoice_number=attempt.invoice_number,
                        status=session.status.value,
                    )
                self.confirm_manual()
                continue
            status = self._wait(attempt, timeout)
            if status != SessionStatus.SETTLED:
                raise SettlementNotConfirmed(
                    f"payment for {attempt.invoice_number} is {status.value}",
                    invoice_number=attempt.invoice_number,
                    status=status.value,
                )
        return self.complete()

    def begin_checkout(self, actor: Actor, *, notes: str | None = None) -> CheckoutAttempt:
        """Start a checkout, or hand back a paid sale that still has to be recorded."""
        unrecorded = self._attempt
        if unrecorded is not None and unrecorded.transaction is not None:
            logger.warning("Sale %s is paid but not recorded, recording it again", unrecorded.invoice_number)
            return unrecorded
        self.cancel()
        shift = self.shifts.require_open(self.outlet_id)
        if self.cart.is_empty:
            raise EmptyCart("add at least one item before checkout")
        totals = self.totals()
        if self.ledger.total != quantize_money(totals.total):
            self.ledger.reprice(totals.total)
        self.ledger.ensure_ready()

        attempt = CheckoutAttempt(
            invoice_number=new_invoice_number(self.clock(), self.rng),
            actor=actor,
            shift=shift,
            items=self.cart.items,
            totals=totals,
            allocations=list(self.ledger.allocations),
            created_at=self.clock(),
            notes=notes,
            customer_id=self.cart.customer_id,
            resumed_from=self.cart.resumed_from,
        )
        with self._lock:
            self._attempt = attempt
        log_json(
            logger,
            {
                "event": "checkout.started",
                "invoice_number": attempt.invoice_number,
                "outlet_id": self.outlet_id,
                "total": totals.total,
                "payments": [allocation.kind for allocation in attempt.allocations],
            },
        )
        self._advance(attempt)
        return attempt

    def wait_for_settlement(self, timeout: float | None = None) -> SessionStatus:
        """Block until the gateway settles, fails, is cancelled or ``timeout`` passes.

        Manual payments are not waited on, their pending status is returned.
        """
        return self._wait(self._require_attempt(), timeout)

    def confirm_manual(self) -> GatewaySession | None:
        """Operator asserts the current manual payment was received."""
        attempt = self._require_attempt()
        session = attempt.session
        if session is None or session.integrated:
            raise InvalidPaymentOperation("there is no manual payment waiting for confirmation")
        session.confirm_manual()
        self._settle(attempt, session)
        return attempt.session

    def complete(self) -> Transaction:
        attempt = self._require_attempt()
        session = attempt.session
        if session is not None and session.status == SessionStatus.SETTLED:
            self._settle(attempt, session)
        if not attempt.is_settled:
            raise SettlementNotConfirmed(
                f"payment for {attempt.invoice_number} is not settled",
                invoice_number=attempt.invoice_number,
            )
        return self._record(attempt)

    def retry_record(self) -> Transaction:
        """Record a paid sale again after :class:`CheckoutFailed`, same invoice, no new charge."""
        attempt = self._require_attempt()
        if attempt.transaction is None:
            raise InvalidPaymentOperation("nothing is waiting to be recorded")
        return self._record(attempt)

    def cancel(self, *, force: bool = False) -> bool:
        """Drop the current attempt and stop polling. Safe to call repeatedly.

        A paid but unrecorded sale is kept for :meth:`retry_record` unless
        ``force`` is set.
        """
        with self._lock:
            attempt = self._attempt
            if attempt is not None and attempt.transaction is not None and not force:
                logger.warning("Sale %s is paid but not recorded, keeping it", attempt.invoice_number)
                return False
            self._attempt = None
            poller, self._poller = self._poller, None
        if poller is not None:
            poller.stop()
        if attempt is None:
            return False
        changed = attempt.session.cancel() if attempt.session is not None else False
        if attempt.transaction is not None:
            logger.warning("Discarding paid but unrecorded sale %s", attempt.invoice_number)
        log_json(logger, {"event": "checkout.cancelled", "invoice_number": attempt.invoice_number})
        return changed

    def close(self) -> None:
        """Tear down with the checkout screen. A paid but unrecorded sale survives."""
        self.cancel()

    def _require_attempt(self) -> CheckoutAttempt:
        attempt = self._attempt
        if attempt is None:
            raise InvalidPaymentOperation("no checkout in progress")
        return attempt

    def _wait(self, attempt: CheckoutAttempt, timeout: float | None) -> SessionStatus:
        while True:
            session = attempt.session
            if session is None:
                return SessionStatus.SETTLED
            if not session.integrated:
                return session.status
            status = session.wait(timeout)
            if status == SessionStatus.SETTLED:
                self._settle(attempt, session)
                continue
            if status.is_terminal:
                self._discard(attempt)
            return status

    def _advance(self, attempt: CheckoutAttempt) -> None:
        pending = attempt.unsettled()
        if not pending:
            attempt.session = None
            attempt.session_index = None
            return
        index = pending[0]
        allocation = attempt.allocations[index]
        session = GatewaySession(
            gateway_order_id(attempt.invoice_number, attempt.charges),
            allocation.amount,
            "qris" if allocation.kind == "qris" else "transfer",
            gateway=self.gateway,
            sub_method=allocation.gateway_bank,
            integrated=allocation.integrated,
            now=self.clock(),
        )
        attempt.charges += 1
        attempt.session = session
        attempt.session_index = index
        if not allocation.integrated:
            session.open_manual()
            return
        try:
            if self.gateway is None:
                raise GatewayUnavailable("no payment gateway is configured")
            session.request()
        except GatewayUnavailable:
            self._discard(attempt)
            raise
        poller = SessionPoller(
            session,
            interval_seconds=self.config.poll_interval_seconds,
            max_polls=self.config.poll_limit,
            on_terminal=self._session_ended,
        )
        with self._lock:
            previous, self._poller = self._poller, poller
        if previous is not None:
            previous.stop()
        poller.start()

    def _settle(self, attempt: CheckoutAttempt, session: GatewaySession) -> None:
        with self._lock:
            if attempt.session is not session or attempt.session_index is None:
                return
            index = attempt.session_index
            attempt.allocations[index] = attempt.allocations[index].model_copy(
                update={"gateway_ref": session.order_id}
            )
            if self._poller is not None and self._poller.session is session:
                self._poller = None
        self._advance(attempt)

    def _session_ended(self, session: GatewaySession) -> None:
        log_json(
            logger,
            {"event": "checkout.payment_update", "order_id": session.order_id, "status": session.status.value},
        )

    def _discard(self, attempt: CheckoutAttempt) -> None:
        with self._lock:
            if self._attempt is attempt:
                self._attempt = None
                poller, self._poller = self._poller, None
            else:
                poller = None
        if poller is not None:
            poller.stop()

    def _build_transaction(self, attempt: CheckoutAttempt) -> Transaction:
        totals = attempt.totals.quantized()
        payments = tuple(attempt.allocations)
        if len(payments) > 1:
            label = "Split"
        else:
            label = payments[0].method_name or payments[0].method_id
        return Transaction(
            invoice_number=attempt.invoice_number,
            outlet_id=self.outlet_id,
            items=attempt.items,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            total_amount=totals.total,
            payments=payments,
            payment_method_label=label,
            created_at=attempt.created_at,
            shift_id=attempt.shift.id,
            shift_employee_id=attempt.shift.employee_id,
            cashier_id=attempt.actor.employee_id,
            customer_id=attempt.customer_id,
            notes=attempt.notes,
        )

    def _record(self, attempt: CheckoutAttempt) -> Transaction:
        transaction = attempt.transaction or self._build_transaction(attempt)
        attempt.transaction = transaction
        try:
            self.committer.commit(transaction)
        except StockConflict as exc:
            self._discard(attempt)
            self._report_failure(attempt, exc)
            raise
        except Exception as exc:
            logger.exception("Failed to record sale %s", transaction.invoice_number)
            self._report_failure(attempt, exc)
            raise CheckoutFailed(transaction.invoice_number, exc) from exc

        self._discard(attempt)
        points = self._award_points(transaction)
        if points:
            transaction = transaction.model_copy(update={"points_earned": points})
        self._accrue_cash(attempt.shift, transaction)
        if attempt.resumed_from and self.held_orders is not None:
            self.held_orders.complete(attempt.resumed_from)
        self.cart.reset()
        self.ledger.reset()
        log_json(
            logger,
            {
                "event": "checkout.completed",
                "invoice_number": transaction.invoice_number,
                "outlet_id": self.outlet_id,
                "total": transaction.total_amount,
                "payment_method": transaction.payment_method_label,
                "points_earned": transaction.points_earned,
            },
        )
        self.audit.record(
            "checkout.completed",
            "transaction",
            entity_id=transaction.invoice_number,
            outlet_id=self.outlet_id,
            actor_id=attempt.actor.employee_id,
            metadata={"total_amount": str(transaction.total_amount), "payment_method": transaction.payment_method_label},
        )
        return transaction

    def _report_failure(self, attempt: CheckoutAttempt, exc: Exception) -> None:
        log_json(
            logger,
            {
                "event": "checkout.failed",
                "invoice_number": attempt.invoice_number,
                "error": getattr(exc, "code", type(exc).__name__),
            },
            logging.ERROR,
        )
        self.audit.record(
            "checkout.failed",
            "transaction",
            entity_id=attempt.invoice_number,
            outlet_id=self.outlet_id,
            actor_id=attempt.actor.employee_id,
            result="error",
            metadata={"error": getattr(exc, "code", type(exc).__name__)},
        )

    def _award_points(self, transaction: Transaction) -> int:
        if not transaction.customer_id or self.loyalty is None:
            return 0
        try:
            return self.loyalty.award_points(transaction.customer_id, transaction.total_amount)
        except Exception:
            logger.exception("Failed to award loyalty points for %s", transaction.invoice_number)
            return 0

    def _accrue_cash(self, shift: Shift, transaction: Transaction) -> None:
        try:
            self.shifts.record_cash_sale(shift.id, transaction.cash_total)
        except Exception:
            # the sale is already recorded; the drawer total is fixed on close
            logger.exception("Failed to add cash from %s to shift %s", transaction.invoice_number, shift.id)
            self.audit.record(
                "shift.accrual_failed",
                "shift",
                entity_id=shift.id,
                outlet_id=self.outlet_id,
                result="error",
                metadata={"invoice_number": transaction.invoice_number, "cash": str(transaction.cash_total)},
            )

    def _on_cart_changed(self, cart: Cart) -> None:
        self.ledger.reprice(cart.totals(self.tax_policy).total)
        attempt = self._attempt
        if attempt is not None and attempt.transaction is None:
            logger.warning("Cart changed during checkout %s, cancelling it", attempt.invoice_number)
            self.cancel()
