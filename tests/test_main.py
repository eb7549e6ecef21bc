import pytest

from settleup.main import _parse_args


def test_settle_amount_is_parsed_to_cents():
    args = _parse_args(["settle", "1", "7", "12,50"])

    assert (args.command, args.group_id, args.debt_id, args.amount) == ("settle", 1, 7, 1250)


def test_recalc_takes_a_group():
    args = _parse_args(["recalc", "3"])

    assert (args.command, args.group_id) == ("recalc", 3)


def test_bad_amount_is_a_usage_error():
    with pytest.raises(SystemExit):
        _parse_args(["settle", "1", "7", "twelve"])
