from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..exceptions import AuthError, ValidationError
from ..models import PRIVILEGED_ROLES
from .base import BaseClient, expect_object

logger = logging.getLogger(__name__)

PinProvider = Callable[[str], Optional[str]]


@dataclass
class SupervisorClient(BaseClient):
    """Approves privileged cart actions with a supervisor's 6-digit PIN.

    ``pin_provider`` is asked for a PIN for each action (the UI prompt);
    returning None means the prompt was dismissed.
    """

    pin_provider: PinProvider | None = None

    def authorize(self, action: str) -> bool:
        pin = self.pin_provider(action) if self.pin_provider else None
        if not pin or len(pin) != 6 or not pin.isdigit():
            return False
        try:
            data = self._request(
                "POST",
                "/api/employees/verify-pin",
                json_body={"outletId": self.outlet_id, "pinCode": pin},
                operation="supervisor.verify_pin",
            )
        except (AuthError, ValidationError):
            logger.info("Supervisor PIN rejected for %s", action)
            return False
        employee = expect_object(data, "verify pin").get("employee") or {}
        role = str(employee.get("role") or "").lower()
        if role not in PRIVILEGED_ROLES:
            logger.info("Employee %s with role %r cannot approve %s", employee.get("id"), role, action)
            return False
        return True
