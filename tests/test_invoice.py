from __future__ import annotations

import random

from sedia_pos.invoice import INVOICE_PATTERN, gateway_order_id, new_invoice_number

from pos_helpers import FIXED_NOW


def test_invoice_format() -> None:
    invoice = new_invoice_number(FIXED_NOW, random.Random(7))
    assert INVOICE_PATTERN.match(invoice)
    assert invoice.startswith("INV-20240517-103000-")


def test_invoice_suffix_comes_from_rng() -> None:
    first = new_invoice_number(FIXED_NOW, random.Random(1))
    again = new_invoice_number(FIXED_NOW, random.Random(1))
    assert first == again


def test_gateway_order_ids() -> None:
    assert gateway_order_id("INV-1", 0) == "INV-1"
    assert gateway_order_id("INV-1", 1) == "INV-1-2"
