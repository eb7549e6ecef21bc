from settleup.services.settlement import Transfer, residual_after, settle


def test_settle_balances():
    balances = {
        1: 500,
        2: -300,
        3: -200,
    }

    transfers = settle(balances)

    assert transfers == [
        Transfer(lender_id=1, debtor_id=2, amount_cents=300),
        Transfer(lender_id=1, debtor_id=3, amount_cents=200),
    ]

    total = sum(t.amount_cents for t in transfers)
    assert total == 500

    after = residual_after(balances, transfers)
    assert all(value == 0 for value in after.values())


def test_settle_equal_debtors_ordered_by_id():
    balances = {4: -1000, 1: 3000, 3: -1000, 2: -1000}

    transfers = settle(balances)

    assert transfers == [
        Transfer(lender_id=1, debtor_id=2, amount_cents=1000),
        Transfer(lender_id=1, debtor_id=3, amount_cents=1000),
        Transfer(lender_id=1, debtor_id=4, amount_cents=1000),
    ]


def test_settle_rematches_largest_remainder():
    # 1's remaining 100 is now smaller than 4's debt, so 4 is matched next
    balances = {5: 700, 6: 500, 1: -800, 4: -400}

    transfers = settle(balances)

    assert transfers[0] == Transfer(lender_id=5, debtor_id=1, amount_cents=700)
    assert transfers[1] == Transfer(lender_id=6, debtor_id=4, amount_cents=400)
    assert transfers[2] == Transfer(lender_id=6, debtor_id=1, amount_cents=100)
    assert all(value == 0 for value in residual_after(balances, transfers).values())


def test_settle_is_deterministic():
    balances = {1: 1234, 2: -234, 3: -500, 4: 100, 5: -600}
    assert settle(balances) == settle(dict(balances))
    assert settle(balances) == settle(dict(reversed(list(balances.items()))))


def test_settle_edges_are_valid():
    balances = {1: 10, 2: -3, 3: -3, 4: -4, 5: 0}

    transfers = settle(balances)

    assert len(transfers) == 3
    assert all(t.lender_id != t.debtor_id for t in transfers)
    assert all(t.amount_cents > 0 for t in transfers)
    assert 5 not in {t.lender_id for t in transfers} | {t.debtor_id for t in transfers}


def test_settle_degenerate_group():
    assert settle({}) == []
    assert settle({1: 0}) == []


def test_settle_ignores_amounts_within_tolerance():
    assert settle({1: 1, 2: -1}, tolerance_cents=1) == []
    assert settle({1: 0, 2: 0}) == []


def test_settle_unbalanced_leaves_residual():
    balances = {1: 500, 2: -300}

    transfers = settle(balances)

    assert transfers == [Transfer(lender_id=1, debtor_id=2, amount_cents=300)]
    assert residual_after(balances, transfers) == {1: 200, 2: 0}
