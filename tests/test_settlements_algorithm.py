from decimal import Decimal

from src.utils.balance import aggregate_balances, greedy_settle_up, optimize_settlements


def D(x):
    return Decimal(str(x))


def _apply(net, plan):
    left = {uid: D(v) for uid, v in net.items()}
    for t in plan:
        left[t["from_user_id"]] += t["amount"]
        left[t["to_user_id"]] -= t["amount"]
    return left


def test_one_creditor_two_debtors():
    plan = greedy_settle_up({1: D(200), 2: D(-100), 3: D(-100)})
    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in plan] == [
        (2, 1, D("100.00")),
        (3, 1, D("100.00")),
    ]


def test_largest_debtor_goes_first():
    plan = greedy_settle_up({1: D(150), 2: D(-50), 3: D(-80), 4: D(-20)})
    assert [(t["from_user_id"], t["amount"]) for t in plan] == [
        (3, D("80.00")),
        (2, D("50.00")),
        (4, D("20.00")),
    ]
    assert sum(t["amount"] for t in plan) == D(150)


def test_debtor_split_between_creditors():
    plan = greedy_settle_up({1: D(70), 2: D(30), 3: D(-100)})
    assert [(t["from_user_id"], t["to_user_id"], t["amount"]) for t in plan] == [
        (3, 1, D("70.00")),
        (3, 2, D("30.00")),
    ]


def test_ties_broken_by_user_id():
    net = {4: D(-10), 2: D(-10), 3: D(10), 1: D(10)}
    plan = greedy_settle_up(net)
    assert [(t["from_user_id"], t["to_user_id"]) for t in plan] == [(2, 1), (4, 3)]
    assert greedy_settle_up(dict(reversed(list(net.items())))) == plan


def test_empty_zero_and_single_user_give_empty_plan():
    assert greedy_settle_up({}) == []
    assert greedy_settle_up({1: D(0), 2: D(0)}) == []
    assert greedy_settle_up({1: D(0)}) == []


def test_sub_cent_residue_is_ignored():
    assert greedy_settle_up({1: D("0.005"), 2: D("-0.005")}) == []


def test_plan_clears_every_balance_with_at_most_n_minus_one_transfers():
    net = {1: D("45.17"), 2: D("-12.05"), 3: D("30.00"), 4: D("-50.12"), 5: D("-13.00")}
    plan = greedy_settle_up(net)

    assert len(plan) <= len(net) - 1
    assert all(t["amount"] > 0 for t in plan)
    assert all(abs(v) <= D("0.01") for v in _apply(net, plan).values())


def test_names_are_attached_when_known():
    rows = aggregate_balances(
        [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}, {"id": 3, "name": "Carol"}],
        {1: D(90)},
        {1: D(30), 2: D(30), 3: D(30)},
    )
    plan = optimize_settlements(rows)

    assert [(t["from_name"], t["to_name"], t["amount"]) for t in plan] == [
        ("Bob", "Alice", D("30.00")),
        ("Carol", "Alice", D("30.00")),
    ]


def test_members_without_activity_get_zero_rows():
    rows = aggregate_balances([{"id": 1, "name": "A"}, {"id": 2, "name": "B"}], {}, {})
    assert [(r["id"], r["paid"], r["owed"], r["balance"]) for r in rows] == [
        (1, D("0.00"), D("0.00"), D("0.00")),
        (2, D("0.00"), D("0.00"), D("0.00")),
    ]
