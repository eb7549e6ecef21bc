import pytest

from settleup.db.models import Debt
from settleup.errors import LedgerValidationError, UnderflowOnSettlement
from settleup.services.debts import apply_settlement, is_settled, outstanding_debts, set_paid_amount


def _debt(debt_cents=1000, paid_cents=0):
    return Debt(id=1, group_id=1, lender_id=1, debtor_id=2, debt_cents=debt_cents, paid_cents=paid_cents)


def test_apply_settlement_increases_paid_amount():
    debt = apply_settlement(_debt(), 400)
    assert debt.paid_cents == 400
    assert debt.outstanding_cents == 600
    assert not is_settled(debt)


def test_apply_settlement_to_full_amount_settles():
    debt = apply_settlement(_debt(paid_cents=600), 400)
    assert is_settled(debt)


def test_apply_settlement_beyond_debt_is_reported():
    with pytest.raises(UnderflowOnSettlement) as excinfo:
        apply_settlement(_debt(paid_cents=600), 500)
    assert excinfo.value.paid_cents == 1100
    assert "cannot exceed" in str(excinfo.value)


def test_apply_settlement_requires_positive_amount():
    with pytest.raises(LedgerValidationError):
        apply_settlement(_debt(), 0)


def test_set_paid_amount_rejects_negative():
    with pytest.raises(LedgerValidationError):
        set_paid_amount(_debt(), -1)


def test_set_paid_amount_can_lower_paid_amount():
    assert set_paid_amount(_debt(paid_cents=800), 300).paid_cents == 300


def test_set_paid_amount_within_tolerance():
    assert set_paid_amount(_debt(), 1001).paid_cents == 1001
    with pytest.raises(UnderflowOnSettlement):
        set_paid_amount(_debt(), 1001, tolerance_cents=0)


def test_outstanding_debts_excludes_settled_rows():
    open_debt = _debt(paid_cents=200)
    settled = Debt(id=2, group_id=1, lender_id=1, debtor_id=3, debt_cents=500, paid_cents=500)

    assert outstanding_debts([open_debt, settled]) == [open_debt]
