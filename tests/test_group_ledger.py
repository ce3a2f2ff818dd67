import threading
import time
from decimal import Decimal

import pytest

from balance_aggregator import AggregationOptions, Policy
from exceptions import ExpenseNotFoundError, GroupNotFoundError, UnknownMemberError
from expense_splitter import ExpenseSplitter, SplitRequest
from group_ledger import GroupLedger
from models import Expense, Group, Split, SplitStatus


@pytest.fixture
def ledger():
    return GroupLedger()


@pytest.fixture
def group(ledger):
    return ledger.add_group(Group(name="Roommates", members=["A", "B", "C"]))


def dinner(group_id, paid_by="A", amount="90", category="Food"):
    request = SplitRequest(paid_by=paid_by, amount=Decimal(amount), members=["A", "B", "C"])
    return ExpenseSplitter.build_expense(group_id, request, title="Dinner", category=category)


def test_new_group_has_zero_balances(ledger, group):
    balances = ledger.balances(group.id)

    assert set(balances) == {"A", "B", "C"}
    assert all(b.net_balance == 0 for b in balances.values())


def test_adding_an_expense_recomputes_balances(ledger, group):
    ledger.add_expense(dinner(group.id))

    balances = ledger.balances(group.id)
    assert balances["A"].net_balance == Decimal("60")
    assert balances["B"].net_balance == Decimal("-30")
    assert balances["C"].net_balance == Decimal("-30")


def test_deleting_an_expense_recomputes_balances(ledger, group):
    expense = ledger.add_expense(dinner(group.id))

    ledger.delete_expense(group.id, expense.id)

    assert all(b.net_balance == 0 for b in ledger.balances(group.id).values())
    assert ledger.list_expenses(group.id) == []


def test_confirming_a_split_clears_that_debt(ledger, group):
    expense = ledger.add_expense(dinner(group.id))
    confirmed = expense.model_copy(deep=True)
    for split in confirmed.splits:
        if split.member_id == "B":
            split.status = SplitStatus.CONFIRMED

    ledger.update_expense(group.id, confirmed)

    balances = ledger.balances(group.id)
    assert balances["B"].net_balance == 0
    assert balances["A"].net_balance == Decimal("30")


def test_balances_snapshot_is_replaced_not_patched(ledger, group):
    before = ledger.balances(group.id)

    ledger.add_expense(dinner(group.id))

    assert before["A"].net_balance == 0
    assert ledger.balances(group.id)["A"].net_balance == Decimal("60")


def test_new_member_gets_a_balance(ledger, group):
    ledger.add_member(group.id, "D")

    assert ledger.balances(group.id)["D"].net_balance == 0


def test_suggest_settlements(ledger, group):
    ledger.add_expense(dinner(group.id))

    plan = ledger.suggest_settlements(group.id)

    assert plan.is_balanced
    assert sorted((s.from_member_id, s.to_member_id, s.amount) for s in plan.settlements) == [
        ("B", "A", Decimal("30")),
        ("C", "A", Decimal("30")),
    ]


def test_spending_by_category(ledger, group):
    ledger.add_expense(dinner(group.id, amount="90"))
    ledger.add_expense(dinner(group.id, amount="15", category="Transport"))
    ledger.add_expense(dinner(group.id, amount="10"))

    assert ledger.spending_by_category(group.id) == {
        "Food": Decimal("100"),
        "Transport": Decimal("15"),
    }


def test_unknown_group_raises(ledger):
    with pytest.raises(GroupNotFoundError):
        ledger.balances("missing")
    with pytest.raises(GroupNotFoundError):
        ledger.add_expense(dinner("missing"))


def test_unknown_expense_raises(ledger, group):
    with pytest.raises(ExpenseNotFoundError):
        ledger.delete_expense(group.id, "missing")


def test_deleted_group_is_gone(ledger, group):
    ledger.delete_group(group.id)

    with pytest.raises(GroupNotFoundError):
        ledger.get_group(group.id)


def test_concurrent_expenses_keep_balances_consistent(ledger, group):
    def add_many():
        for _ in range(20):
            ledger.add_expense(dinner(group.id, amount="3"))

    threads = [threading.Thread(target=add_many) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    balances = ledger.balances(group.id)
    assert len(ledger.list_expenses(group.id)) == 80
    assert balances["A"].net_balance == Decimal("160")
    assert sum(b.net_balance for b in balances.values()) == 0


@pytest.fixture
def strict_ledger():
    return GroupLedger(AggregationOptions(unknown_members=Policy.STRICT))


def outsider_expense(group_id):
    return Expense(
        group_id=group_id,
        paid_by="A",
        splits=[Split(member_id="Z", amount=Decimal("40"))],
    )


def test_rejected_expense_is_not_stored(strict_ledger):
    group = strict_ledger.add_group(Group(name="Strict", members=["A", "B", "C"]))
    kept = strict_ledger.add_expense(dinner(group.id))

    with pytest.raises(UnknownMemberError):
        strict_ledger.add_expense(outsider_expense(group.id))

    assert strict_ledger.list_expenses(group.id) == [kept]
    assert strict_ledger.balances(group.id)["A"].net_balance == Decimal("60")
    assert strict_ledger.recompute(group.id)["A"].net_balance == Decimal("60")


def test_rejected_update_keeps_previous_expense(strict_ledger):
    group = strict_ledger.add_group(Group(name="Strict", members=["A", "B", "C"]))
    expense = strict_ledger.add_expense(dinner(group.id))
    before = strict_ledger.balances(group.id)

    changed = outsider_expense(group.id).model_copy(update={"id": expense.id})
    with pytest.raises(UnknownMemberError):
        strict_ledger.update_expense(group.id, changed)

    assert strict_ledger.get_expense(group.id, expense.id) == expense
    assert strict_ledger.balances(group.id)["A"].net_balance == before["A"].net_balance == Decimal("60")


def test_waiting_on_a_deleted_group_raises_not_found(ledger, group):
    errors = []

    def add_late():
        try:
            ledger.add_expense(dinner(group.id))
        except GroupNotFoundError as e:
            errors.append(e)

    lock = ledger._locks[group.id]
    lock.acquire()
    worker = threading.Thread(target=add_late)
    worker.start()
    time.sleep(0.2)
    # Remove the group the way delete_group does while the worker waits
    with ledger._registry_lock:
        del ledger._groups[group.id]
        del ledger._expenses[group.id]
        ledger._balances.pop(group.id, None)
        ledger._locks.pop(group.id, None)
    lock.release()
    worker.join()

    assert len(errors) == 1
