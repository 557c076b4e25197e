from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable

from .collaborators import PaymentGateway
from .exceptions import GatewayUnavailable, InvalidPaymentOperation
from .logging import log_json
from .models import ChargeArtifact, GatewayKind

logger = logging.getLogger(__name__)

SETTLED_INDICATORS = frozenset({"settlement", "capture"})
FAILED_INDICATORS = frozenset({"deny", "cancel", "expire", "failure"})


class SessionStatus(str, Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.SETTLED, SessionStatus.FAILED, SessionStatus.CANCELLED})

_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {SessionStatus.REQUESTED, SessionStatus.PENDING, SessionStatus.CANCELLED},
    SessionStatus.REQUESTED: {SessionStatus.PENDING, SessionStatus.IDLE, SessionStatus.CANCELLED},
    SessionStatus.PENDING: {SessionStatus.SETTLED, SessionStatus.FAILED, SessionStatus.CANCELLED},
}


class GatewaySession:
    """Tracks one charge for one invoice from request to settlement.

    Sessions are single use. A new checkout always gets a new session and a
    new order id. Integrated sessions settle only through the gateway status
    endpoint, manual ones only through :meth:`confirm_manual`.
    """

    def __init__(
        self,
        order_id: str,
        amount: Decimal,
        kind: GatewayKind,
        *,
        gateway: PaymentGateway | None = None,
        sub_method: str | None = None,
        integrated: bool = True,
        now: datetime | None = None,
    ) -> None:
        if integrated and gateway is None:
            raise ValueError("integrated sessions need a payment gateway")
        self.order_id = order_id
        self.amount = amount
        self.kind = kind
        self.gateway = gateway
        self.sub_method = sub_method
        self.integrated = integrated
        self.created_at = now or datetime.now(timezone.utc)
        self.status = SessionStatus.IDLE
        self.artifact: ChargeArtifact | None = None
        self.last_indicator: str | None = None
        self.failure_reason: str | None = None
        self._lock = threading.Lock()
        self._terminal = threading.Event()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def request(self) -> ChargeArtifact:
        gateway = self._require_gateway()
        self._transition(SessionStatus.REQUESTED)
        try:
            artifact = gateway.charge(self.order_id, self.amount, self.kind, self.sub_method)
        except Exception as exc:
            self._transition(SessionStatus.IDLE)
            logger.warning("Gateway charge failed for %s: %s", self.order_id, exc)
            raise GatewayUnavailable(f"could not create a charge for {self.order_id}", order_id=self.order_id) from exc
        if not artifact.has_correlation:
            self._transition(SessionStatus.IDLE)
            raise GatewayUnavailable(f"gateway returned no payment code for {self.order_id}", order_id=self.order_id)
        self.artifact = artifact
        self._transition(SessionStatus.PENDING)
        return artifact

    def open_manual(self) -> None:
        if self.integrated:
            raise InvalidPaymentOperation("integrated payments must request a gateway charge")
        self._transition(SessionStatus.PENDING)

    def poll_once(self) -> SessionStatus:
        if self.status != SessionStatus.PENDING or not self.integrated:
            return self.status
        gateway = self._require_gateway()
        try:
            indicator = gateway.get_status(self.order_id)
        except Exception as exc:
            logger.warning("Status check failed for %s: %s", self.order_id, exc)
            return self.status
        self.last_indicator = indicator
        log_json(logger, {"event": "gateway.poll", "order_id": self.order_id, "indicator": indicator}, logging.DEBUG)
        normalized = (indicator or "").strip().lower()
        if normalized in SETTLED_INDICATORS:
            self._transition(SessionStatus.SETTLED)
        elif normalized in FAILED_INDICATORS:
            self.fail(f"gateway reported {normalized}")
        return self.status

    def confirm_manual(self) -> None:
        if self.integrated:
            raise InvalidPaymentOperation("integrated payments settle through the gateway only")
        if self.status != SessionStatus.PENDING:
            raise InvalidPaymentOperation(f"cannot confirm a {self.status.value} payment")
        self._transition(SessionStatus.SETTLED)

    def cancel(self) -> bool:
        """Cancel unless already terminal. Returns whether anything changed."""
        return self._transition(SessionStatus.CANCELLED, quiet=True)

    def fail(self, reason: str) -> bool:
        if self.status == SessionStatus.PENDING:
            self.failure_reason = reason
        return self._transition(SessionStatus.FAILED, quiet=True)

    def wait(self, timeout: float | None = None) -> SessionStatus:
        self._terminal.wait(timeout)
        return self.status

    def _transition(self, target: SessionStatus, quiet: bool = False) -> bool:
        with self._lock:
            current = self.status
            if target not in _TRANSITIONS.get(current, set()):
                if quiet:
                    return False
                raise InvalidPaymentOperation(f"payment session cannot go from {current.value} to {target.value}")
            self.status = target
        log_json(
            logger,
            {"event": "gateway.session", "order_id": self.order_id, "from": current.value, "to": target.value},
        )
        if target.is_terminal:
            self._terminal.set()
        return True

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise InvalidPaymentOperation(f"{self.order_id} is a manual payment and has no gateway")
        return self.gateway


class SessionPoller:
    """Polls a pending session on a fixed interval in a daemon thread.

    The loop ends when the session turns terminal, when :meth:`stop` is
    called, or after ``max_polls`` checks (the session is then failed).
    """

    def __init__(
        self,
        session: GatewaySession,
        interval_seconds: float = 3.0,
        max_polls: int | None = None,
        on_terminal: Callable[[GatewaySession], None] | None = None,
    ) -> None:
        self.session = session
        self.interval_seconds = interval_seconds
        self.max_polls = max_polls
        self.on_terminal = on_terminal
        self.polls = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("poller already started")
        self._thread = threading.Thread(
            target=self._run, name=f"gateway-poll-{self.session.order_id}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        session = self.session
        while not self._stop.wait(self.interval_seconds):
            if session.is_terminal:
                break
            self.polls += 1
            if session.poll_once().is_terminal:
                break
            if self.max_polls and self.polls >= self.max_polls:
                session.fail(f"no settlement after {self.polls} status checks")
                break
        if session.is_terminal and self.on_terminal is not None:
            self.on_terminal(session)
