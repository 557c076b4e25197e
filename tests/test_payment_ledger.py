from __future__ import annotations

from decimal import Decimal

import pytest

from sedia_pos.exceptions import AllocationImbalance, InvalidPaymentOperation, MissingSubSelection
from sedia_pos.payment_ledger import CASH_FALLBACK, PaymentLedger, missing_sub_selection

from pos_helpers import METHODS


def _ledger(total: str = "100000") -> PaymentLedger:
    return PaymentLedger(METHODS, Decimal(total))


def test_single_mode_pins_amount_to_total() -> None:
    ledger = _ledger()
    assert [a.method_id for a in ledger.allocations] == ["cash"]
    assert ledger.allocations[0].amount == Decimal("100000")
    ledger.reprice(Decimal("120000.004"))
    assert ledger.allocations[0].amount == Decimal("120000.00")
    assert ledger.remaining_balance() == Decimal("0")


def test_single_mode_add_payment_replaces_method() -> None:
    ledger = _ledger()
    allocation = ledger.add_payment("qris")
    assert len(ledger.allocations) == 1
    assert allocation.integrated is True
    assert allocation.amount == Decimal("100000")
    ledger.ensure_ready()


def test_cash_fallback_when_no_cash_method_is_configured() -> None:
    ledger = PaymentLedger([], Decimal("5000"))
    assert ledger.allocations[0].method_id == CASH_FALLBACK.id


def test_split_defaults_new_rows_to_remaining() -> None:
    ledger = _ledger()
    ledger.enable_split()
    assert ledger.allocations == ()
    ledger.add_payment("cash", Decimal("30000"))
    qris = ledger.add_payment("qris")
    assert qris.amount == Decimal("70000")
    assert ledger.remaining_balance() == Decimal("0")
    ledger.ensure_ready()


def test_split_rejects_rows_once_fully_allocated() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("cash")
    with pytest.raises(InvalidPaymentOperation):
        ledger.add_payment("card")


def test_only_one_gateway_payment_per_sale() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("cash", Decimal("20000"))
    ledger.add_payment("qris", Decimal("40000"))
    with pytest.raises(InvalidPaymentOperation, match="only one gateway payment"):
        ledger.add_payment("va")
    ledger.add_payment("bank")


def test_imbalance_blocks_checkout() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("cash", Decimal("60000"))
    ledger.add_payment("card", Decimal("30000"))
    with pytest.raises(AllocationImbalance) as excinfo:
        ledger.ensure_ready()
    assert excinfo.value.remaining == Decimal("10000")
    result = ledger.validate()
    assert result.ok is False
    assert result.remaining == Decimal("10000")
    assert result.issues[0].code == "ALLOCATION_IMBALANCE"


def test_over_allocation_is_also_an_imbalance() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("cash", Decimal("60000"))
    ledger.add_payment("card", Decimal("50000"))
    with pytest.raises(AllocationImbalance):
        ledger.ensure_ready()


def test_manual_transfer_needs_receiving_account() -> None:
    ledger = _ledger()
    ledger.add_payment("bank")
    with pytest.raises(MissingSubSelection) as excinfo:
        ledger.ensure_ready()
    assert excinfo.value.index == 0
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_sub_selection(0, manual_account_ref="acc-404")
    ledger.set_sub_selection(0, manual_account_ref="acc-1")
    ledger.ensure_ready()


def test_virtual_account_needs_supported_bank() -> None:
    ledger = _ledger()
    ledger.add_payment("va")
    assert missing_sub_selection(ledger.allocations[0]) is not None
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_sub_selection(0, gateway_bank="citibank")
    allocation = ledger.set_sub_selection(0, gateway_bank="BNI")
    assert allocation.gateway_bank == "bni"
    ledger.ensure_ready()


def test_static_qris_carries_its_payload() -> None:
    ledger = _ledger()
    allocation = ledger.add_payment("qris-static")
    assert allocation.integrated is False
    assert allocation.qris_payload
    ledger.ensure_ready()


def test_cash_tendered_and_change() -> None:
    ledger = _ledger("45000")
    allocation = ledger.set_tendered("50000")
    assert allocation.change_due == Decimal("5000")
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_tendered("40000")
    ledger.add_payment("card")
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_tendered("50000")


def test_reprice_in_split_mode_drops_allocations() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("cash", Decimal("100000"))
    ledger.reprice(Decimal("80000"))
    assert ledger.allocations == ()
    with pytest.raises(AllocationImbalance):
        ledger.ensure_ready()


def test_removing_last_split_row_returns_to_single_cash() -> None:
    ledger = _ledger()
    ledger.enable_split()
    ledger.add_payment("card")
    ledger.remove_payment(0)
    assert ledger.split is False
    assert ledger.allocations[0].method_id == "cash"
    assert ledger.allocations[0].amount == Decimal("100000")


def test_amount_edits_are_split_only_and_non_negative() -> None:
    ledger = _ledger()
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_amount(0, "10")
    ledger.enable_split()
    ledger.add_payment("cash")
    with pytest.raises(InvalidPaymentOperation):
        ledger.set_amount(0, "-1")
    assert ledger.set_amount(0, "99000").amount == Decimal("99000")


def test_unknown_method_is_rejected() -> None:
    with pytest.raises(InvalidPaymentOperation):
        _ledger().add_payment("bitcoin")


def test_fifty_thousand_split_example() -> None:
    ledger = _ledger("50000")
    ledger.enable_split()
    ledger.add_payment("cash", Decimal("30000"))
    ledger.add_payment("qris", Decimal("20000"))
    assert ledger.remaining_balance() == Decimal("0")
    ledger.ensure_ready()

    ledger.set_amount(1, Decimal("15000"))
    assert ledger.remaining_balance() == Decimal("5000")
    with pytest.raises(AllocationImbalance):
        ledger.ensure_ready()
