"""
Balance aggregation: walks a group's expense ledger and produces, for every
member, what they owe, what they are owed, and their net balance.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence

from pydantic import BaseModel

import config
from exceptions import NegativeAmountError, SplitTotalMismatchError, UnknownMemberError
from models import Balance, Expense, SplitStatus

logger = logging.getLogger(__name__)


class Policy(str, Enum):
    IGNORE = "ignore"
    WARN = "warn"
    STRICT = "strict"


class AggregationOptions(BaseModel):
    unknown_members: Policy = Policy(config.UNKNOWN_MEMBER_POLICY)
    split_total_mismatch: Policy = Policy(config.SPLIT_TOTAL_POLICY)
    negative_amounts: Policy = Policy(config.NEGATIVE_AMOUNT_POLICY)


def _enforce(policy: Policy, error: Exception):
    if policy == Policy.STRICT:
        raise error
    if policy == Policy.WARN:
        logger.warning(str(error))


def _check_expense(expense: Expense, known: set, group_id: str, options: AggregationOptions):
    """Apply the configured policies to one expense before it is aggregated"""
    participants = [expense.paid_by] + [s.member_id for s in expense.splits]
    for member_id in dict.fromkeys(participants):
        if member_id not in known:
            _enforce(options.unknown_members, UnknownMemberError(member_id, group_id, expense.id))

    for split in expense.splits:
        if split.amount < 0:
            _enforce(
                options.negative_amounts,
                NegativeAmountError(expense.id, split.member_id, split.amount),
            )

    if expense.total_amount is not None:
        split_total = sum((s.amount for s in expense.splits), Decimal("0"))
        if abs(split_total - expense.total_amount) > config.SETTLEMENT_EPSILON:
            _enforce(
                options.split_total_mismatch,
                SplitTotalMismatchError(expense.id, split_total, expense.total_amount),
            )


def compute_balances(
    group_id: str,
    members: Iterable[str],
    expenses: Sequence[Expense],
    options: Optional[AggregationOptions] = None,
) -> Dict[str, Balance]:
    """
    Compute a fresh Balance for every member of a group.

    Every member in ``members`` gets an entry, even with no expenses. Splits
    paid by their own payer and confirmed splits are skipped. Participants
    outside ``members`` are accumulated but left out of the result; the
    ``unknown_members`` policy decides whether that is tolerated.

    Args:
        group_id: Group whose expenses are aggregated; others are ignored
        members: Member ids of the group
        expenses: Expense ledger, possibly spanning several groups
        options: Validation policies, defaults come from config

    Returns:
        Mapping of member id to Balance
    """
    options = options or AggregationOptions()
    known = set(members)

    # Working table also holds participants outside the member set
    balances: Dict[str, Balance] = {
        member_id: Balance(member_id=member_id, group_id=group_id) for member_id in known
    }

    def balance_for(member_id: str) -> Balance:
        if member_id not in balances:
            balances[member_id] = Balance(member_id=member_id, group_id=group_id)
        return balances[member_id]

    counted = 0
    for expense in expenses:
        if expense.group_id != group_id:
            continue
        _check_expense(expense, known, group_id, options)

        payer = expense.paid_by
        for split in expense.splits:
            if split.member_id == payer:
                continue
            if split.status == SplitStatus.CONFIRMED:
                continue

            debtor = balance_for(split.member_id)
            creditor = balance_for(payer)
            debtor.owes[payer] = debtor.owes.get(payer, Decimal("0")) + split.amount
            creditor.owed_by[split.member_id] = (
                creditor.owed_by.get(split.member_id, Decimal("0")) + split.amount
            )
        counted += 1

    for balance in balances.values():
        total_owed = sum(balance.owed_by.values(), Decimal("0"))
        total_owes = sum(balance.owes.values(), Decimal("0"))
        balance.net_balance = total_owed - total_owes

    logger.debug(f"Aggregated {counted} expenses for group {group_id} across {len(known)} members")
    return {member_id: balances[member_id] for member_id in known}


def total_net_balance(balances: Iterable[Balance]) -> Decimal:
    """Sum of net balances; zero for a consistent ledger"""
    return sum((b.net_balance for b in balances), Decimal("0"))
