"""
In-memory group ledger.

Holds groups, their expenses and the latest balances. Every expense mutation
explicitly recomputes the group's balances and replaces them as a whole while
the group's lock is held, so readers never see a mix of old and new balances.
"""
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, List, Optional

from balance_aggregator import AggregationOptions, compute_balances
from exceptions import ExpenseNotFoundError, GroupNotFoundError
from models import Balance, Expense, Group, SettlementPlan
from settlement_optimizer import plan_settlements

logger = logging.getLogger(__name__)


class GroupLedger:
    def __init__(self, options: Optional[AggregationOptions] = None):
        self.options = options or AggregationOptions()
        self._groups: Dict[str, Group] = {}
        self._expenses: Dict[str, Dict[str, Expense]] = {}
        self._balances: Dict[str, Dict[str, Balance]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _group_lock(self, group_id: str):
        with self._registry_lock:
            if group_id not in self._groups:
                raise GroupNotFoundError(group_id)
            lock = self._locks[group_id]
        with lock:
            # The group may have been deleted while we waited
            if group_id not in self._groups:
                raise GroupNotFoundError(group_id)
            yield

    # ===== GROUPS =====
    def add_group(self, group: Group) -> Group:
        with self._registry_lock:
            self._groups[group.id] = group
            self._expenses[group.id] = {}
            self._locks[group.id] = threading.Lock()
        self.recompute(group.id)
        logger.info(f"Created group {group.id} with {len(group.members)} members")
        return group

    def get_group(self, group_id: str) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def list_groups(self) -> List[Group]:
        return list(self._groups.values())

    def add_member(self, group_id: str, member_id: str) -> Group:
        with self._group_lock(group_id):
            group = self._groups[group_id]
            if member_id not in group.members:
                self._commit(group_id, members=group.members + [member_id])
                group.members.append(member_id)
        return group

    def delete_group(self, group_id: str):
        with self._group_lock(group_id):
            with self._registry_lock:
                del self._groups[group_id]
                del self._expenses[group_id]
                self._balances.pop(group_id, None)
                self._locks.pop(group_id, None)
        logger.info(f"Deleted group {group_id}")

    # ===== EXPENSES =====
    def add_expense(self, expense: Expense) -> Expense:
        with self._group_lock(expense.group_id):
            expenses = dict(self._expenses[expense.group_id])
            expenses[expense.id] = expense
            self._commit(expense.group_id, expenses=expenses)
        return expense

    def update_expense(self, group_id: str, expense: Expense) -> Expense:
        with self._group_lock(group_id):
            if expense.id not in self._expenses[group_id]:
                raise ExpenseNotFoundError(expense.id)
            expenses = dict(self._expenses[group_id])
            expenses[expense.id] = expense.model_copy(update={"group_id": group_id})
            self._commit(group_id, expenses=expenses)
            return expenses[expense.id]

    def delete_expense(self, group_id: str, expense_id: str):
        with self._group_lock(group_id):
            if expense_id not in self._expenses[group_id]:
                raise ExpenseNotFoundError(expense_id)
            expenses = dict(self._expenses[group_id])
            del expenses[expense_id]
            self._commit(group_id, expenses=expenses)

    def get_expense(self, group_id: str, expense_id: str) -> Expense:
        expenses = self._expenses.get(group_id)
        if expenses is None:
            raise GroupNotFoundError(group_id)
        if expense_id not in expenses:
            raise ExpenseNotFoundError(expense_id)
        return expenses[expense_id]

    def list_expenses(self, group_id: str) -> List[Expense]:
        self.get_group(group_id)
        return list(self._expenses[group_id].values())

    # ===== BALANCES & SETTLEMENTS =====
    def _commit(
        self,
        group_id: str,
        expenses: Optional[Dict[str, Expense]] = None,
        members: Optional[List[str]] = None,
    ):
        """
        Aggregate the candidate state and store it only if aggregation
        succeeds, so a rejected change leaves expenses and balances as they were.
        Must be called with the group's lock held.
        """
        if expenses is None:
            expenses = self._expenses[group_id]
        if members is None:
            members = self._groups[group_id].members
        balances = compute_balances(group_id, members, list(expenses.values()), self.options)
        self._expenses[group_id] = expenses
        self._balances[group_id] = balances

    def recompute(self, group_id: str) -> Dict[str, Balance]:
        """Recompute and replace the group's balances"""
        with self._group_lock(group_id):
            self._commit(group_id)
            return self._balances[group_id]

    def balances(self, group_id: str) -> Dict[str, Balance]:
        with self._group_lock(group_id):
            return dict(self._balances.get(group_id, {}))

    def suggest_settlements(self, group_id: str) -> SettlementPlan:
        """Optimize the current balances; never run automatically"""
        balances = self.balances(group_id)
        return plan_settlements(group_id, list(balances.values()))

    def spending_by_category(self, group_id: str) -> Dict[str, Decimal]:
        spending: Dict[str, Decimal] = {}
        for expense in self.list_expenses(group_id):
            amount = expense.total_amount
            if amount is None:
                amount = sum((s.amount for s in expense.splits), Decimal("0"))
            spending[expense.category] = spending.get(expense.category, Decimal("0")) + amount
        return spending
