from settleup.config import SlipPolicy
from settleup.db.models import Expense, GroupLedger, Participant, Payment, Split, SplitType
from settleup.errors import WarningKind
from settleup.services.balances import calculate_balances


def _ledger(expenses=(), payments=(), ids=(1, 2, 3)):
    return GroupLedger(
        group_id=1,
        participants=tuple(Participant(id=i, group_id=1, name=f"p{i}") for i in ids),
        expenses=tuple(expenses),
        payments=tuple(payments),
    )


def _expense(expense_id, payer_id, amount_cents, shares):
    return Expense(
        id=expense_id,
        group_id=1,
        payer_id=payer_id,
        title="dinner",
        amount_cents=amount_cents,
        split_type=SplitType.AMOUNT,
        splits=tuple(Split(expense_id=expense_id, participant_id=p, owed_cents=c) for p, c in shares.items()),
    )


def test_calculate_balances_empty():
    sheet = calculate_balances(GroupLedger(group_id=1))
    assert sheet.balances == {}
    assert sheet.warnings == []


def test_idle_participants_have_zero_balance():
    sheet = calculate_balances(_ledger())
    assert sheet.balances == {1: 0, 2: 0, 3: 0}


def test_calculate_balances_mixed():
    ledger = _ledger(
        expenses=[
            _expense(1, 1, 3000, {1: 1000, 2: 1000, 3: 1000}),
            _expense(2, 2, 1500, {1: 350, 2: 750, 3: 400}),
        ],
    )

    sheet = calculate_balances(ledger)

    assert sheet.total_cents == 0
    assert sheet.balances == {1: 1650, 2: -250, 3: -1400}


def test_payments_reduce_what_the_payer_owes():
    ledger = _ledger(
        expenses=[_expense(1, 1, 3000, {1: 1000, 2: 1000, 3: 1000})],
        payments=[Payment(id=1, group_id=1, payer_id=2, payee_id=1, amount_cents=1000)],
    )

    sheet = calculate_balances(ledger)

    assert sheet.balances == {1: 1000, 2: 0, 3: -1000}


def test_payment_credits_payer_and_debits_payee():
    ledger = _ledger(payments=[Payment(id=1, group_id=1, payer_id=3, payee_id=2, amount_cents=250)])

    sheet = calculate_balances(ledger)

    assert sheet.balances == {1: 0, 2: -250, 3: 250}
    assert sheet.total_cents == 0


def test_slip_absorbed_into_last_split():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {1: 333, 2: 333, 3: 332})])

    sheet = calculate_balances(ledger)

    assert sheet.total_cents == 0
    assert sheet.balances == {1: 667, 2: -333, 3: -334}
    assert [w.kind for w in sheet.warnings] == [WarningKind.INPUT_INCONSISTENCY]
    assert sheet.warnings[0].context["slip_cents"] == 2


def test_slip_kept_as_recorded():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {1: 333, 2: 333, 3: 333})])

    sheet = calculate_balances(ledger, slip_policy=SlipPolicy.KEEP)

    assert sheet.balances == {1: 667, 2: -333, 3: -333}
    assert sheet.total_cents == 1


def test_overshooting_slip_credits_payer_with_split_total():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {2: 1050, 3: 20})])

    sheet = calculate_balances(ledger)

    assert sheet.balances == {1: 1070, 2: -1050, 3: -20}
    assert sheet.total_cents == 0


def test_slip_within_tolerance_is_not_reported():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {1: 333, 2: 333, 3: 333})])

    sheet = calculate_balances(ledger)

    assert sheet.warnings == []
    assert sheet.total_cents == 0


def test_expense_without_splits_is_skipped():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {})])

    sheet = calculate_balances(ledger)

    assert sheet.balances == {1: 0, 2: 0, 3: 0}
    assert sheet.warnings[0].kind is WarningKind.INPUT_INCONSISTENCY


def test_unknown_participant_is_booked_and_reported():
    ledger = _ledger(expenses=[_expense(1, 1, 1000, {1: 500, 9: 500})], ids=(1, 2))

    sheet = calculate_balances(ledger)

    assert sheet.balances == {1: 500, 2: 0, 9: -500}
    assert [w.kind for w in sheet.warnings] == [WarningKind.UNKNOWN_PARTICIPANT]
