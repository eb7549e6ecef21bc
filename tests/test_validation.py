import pytest

from settleup.db.models import Expense, Payment, Split, SplitType
from settleup.errors import LedgerValidationError, WarningKind
from settleup.services.validation import validate_expense, validate_payment


def _expense(amount_cents=1000, payer_id=1, shares=None):
    shares = shares if shares is not None else {1: 500, 2: 500}
    return Expense(
        id=None,
        group_id=1,
        payer_id=payer_id,
        title="tickets",
        amount_cents=amount_cents,
        split_type=SplitType.AMOUNT,
        splits=tuple(Split(None, p, c) for p, c in shares.items()),
    )


def test_validate_expense_ok():
    assert validate_expense(_expense(), {1, 2}) == []


def test_validate_expense_reports_slip():
    warnings = validate_expense(_expense(shares={1: 500, 2: 480}), {1, 2})
    assert [w.kind for w in warnings] == [WarningKind.INPUT_INCONSISTENCY]


@pytest.mark.parametrize(
    "expense",
    [
        _expense(amount_cents=0),
        _expense(payer_id=9),
        _expense(shares={}),
        _expense(shares={1: 1500, 2: -500}),
        _expense(shares={1: 500, 3: 500}),
    ],
)
def test_validate_expense_rejects(expense):
    with pytest.raises(LedgerValidationError):
        validate_expense(expense, {1, 2})


def test_validate_expense_rejects_duplicate_lines():
    expense = Expense(
        id=None,
        group_id=1,
        payer_id=1,
        title="tickets",
        amount_cents=1000,
        splits=(Split(None, 2, 500), Split(None, 2, 500)),
    )
    with pytest.raises(LedgerValidationError):
        validate_expense(expense, {1, 2})


def test_validate_payment():
    validate_payment(Payment(id=None, group_id=1, payer_id=2, payee_id=1, amount_cents=100), {1, 2})

    with pytest.raises(LedgerValidationError):
        validate_payment(Payment(id=None, group_id=1, payer_id=2, payee_id=2, amount_cents=100), {1, 2})
    with pytest.raises(LedgerValidationError):
        validate_payment(Payment(id=None, group_id=1, payer_id=2, payee_id=1, amount_cents=0), {1, 2})
    with pytest.raises(LedgerValidationError):
        validate_payment(Payment(id=None, group_id=1, payer_id=3, payee_id=1, amount_cents=100), {1, 2})
