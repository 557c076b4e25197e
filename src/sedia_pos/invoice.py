from __future__ import annotations

import random
import re
import string
from datetime import datetime

_ALPHABET = string.digits + string.ascii_uppercase
_SYSTEM_RANDOM = random.SystemRandom()
INVOICE_PATTERN = re.compile(r"^INV-\d{8}-\d{6}-[0-9A-Z]{4}$")


def new_invoice_number(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """Return ``INV-<yyyymmdd>-<hhmmss>-<4 random base36 chars>``."""
    stamp = now or datetime.now()
    source = rng or _SYSTEM_RANDOM
    suffix = "".join(source.choice(_ALPHABET) for _ in range(4))
    return f"INV-{stamp:%Y%m%d}-{stamp:%H%M%S}-{suffix}"


def gateway_order_id(invoice_number: str, sequence: int) -> str:
    """Order id for the n-th gateway charge of one sale (0-based)."""
    if sequence == 0:
        return invoice_number
    return f"{invoice_number}-{sequence + 1}"
