from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, List, Optional
import logging

from pydantic import BaseModel, Field

import config
from exceptions import InvalidSplitError
from models import Expense, ExpenseItem, ExpenseStatus, Split, SplitMethod, SplitStatus

logger = logging.getLogger(__name__)


class SplitRequest(BaseModel):
    method: SplitMethod = SplitMethod.EQUAL
    paid_by: str
    amount: Decimal = Decimal("0")
    members: List[str] = Field(default_factory=list)
    tax: Decimal = Decimal("0")
    tip: Decimal = Decimal("0")
    custom_amounts: Dict[str, Decimal] = Field(default_factory=dict)
    percentages: Dict[str, Decimal] = Field(default_factory=dict)
    items: List[ExpenseItem] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.amount + self.tax + self.tip


class ExpenseSplitter:
    """Turns the amounts entered for an expense into per-member splits"""

    @staticmethod
    def distribute(total: Decimal, weights: Dict[str, Decimal]) -> Dict[str, Decimal]:
        """
        Divide total proportionally to weights, rounded to the money quantum.
        Leftover units go one at a time, in order, to members with a positive
        weight, so the shares always add up to total.
        """
        quantum = config.MONEY_QUANTUM
        weight_sum = sum(weights.values(), Decimal("0"))
        if weight_sum <= 0:
            raise InvalidSplitError("Cannot distribute over zero total weight")

        shares = {
            member_id: (total * weight / weight_sum).quantize(quantum, rounding=ROUND_HALF_EVEN)
            for member_id, weight in weights.items()
        }

        remainder = total.quantize(quantum) - sum(shares.values(), Decimal("0"))
        step = quantum if remainder > 0 else -quantum
        idx = 0
        while remainder != 0:
            # Zero-weight members keep a zero share; no share drops below zero
            eligible = [
                m for m in shares
                if weights[m] > 0 and (step > 0 or shares[m] > 0)
            ]
            member_id = eligible[idx % len(eligible)]
            shares[member_id] += step
            remainder -= step
            idx += 1
        return shares

    @staticmethod
    def equal_shares(request: SplitRequest) -> Dict[str, Decimal]:
        if not request.members:
            raise InvalidSplitError("An equal split needs at least one member")
        members = list(dict.fromkeys(request.members))
        return ExpenseSplitter.distribute(request.total, {m: Decimal("1") for m in members})

    @staticmethod
    def custom_shares(request: SplitRequest) -> Dict[str, Decimal]:
        if not request.members:
            raise InvalidSplitError("A custom split needs at least one member")
        shares = {}
        for member_id in request.members:
            amount = request.custom_amounts.get(member_id, Decimal("0"))
            if amount < 0:
                raise InvalidSplitError(f"Custom amount for {member_id} is negative")
            shares[member_id] = amount
        return shares

    @staticmethod
    def percentage_shares(request: SplitRequest) -> Dict[str, Decimal]:
        if not request.members:
            raise InvalidSplitError("A percentage split needs at least one member")
        weights = {m: request.percentages.get(m, Decimal("0")) for m in request.members}
        if any(p < 0 for p in weights.values()):
            raise InvalidSplitError("Percentages cannot be negative")
        if sum(weights.values(), Decimal("0")) != Decimal("100"):
            raise InvalidSplitError("Percentages must add up to 100")
        return ExpenseSplitter.distribute(request.total, weights)

    @staticmethod
    def itemized_shares(request: SplitRequest) -> Dict[str, Decimal]:
        """Items are shared equally by their assignees; tax and tip follow each member's item subtotal"""
        if not request.items:
            raise InvalidSplitError("An itemized split needs at least one item")

        subtotals: Dict[str, Decimal] = {}
        for item in request.items:
            if not item.assigned_to:
                raise InvalidSplitError(f"Item '{item.name}' is not assigned to anyone")
            if item.amount < 0:
                raise InvalidSplitError(f"Item '{item.name}' has a negative amount")
            assignees = list(dict.fromkeys(item.assigned_to))
            item_shares = ExpenseSplitter.distribute(item.amount, {m: Decimal("1") for m in assignees})
            for member_id, share in item_shares.items():
                subtotals[member_id] = subtotals.get(member_id, Decimal("0")) + share

        extra = request.tax + request.tip
        if extra == 0:
            return subtotals
        if sum(subtotals.values(), Decimal("0")) <= 0:
            raise InvalidSplitError("Cannot spread tax and tip over items that total zero")

        extra_shares = ExpenseSplitter.distribute(extra, subtotals)
        return {m: subtotals[m] + extra_shares[m] for m in subtotals}

    @staticmethod
    def calculate_splits(request: SplitRequest) -> List[Split]:
        """
        Calculate the splits of one expense.

        The payer's own split starts out confirmed, every other split pending.
        """
        if request.amount < 0 or request.tax < 0 or request.tip < 0:
            raise InvalidSplitError("Amount, tax and tip cannot be negative")

        handlers = {
            SplitMethod.EQUAL: ExpenseSplitter.equal_shares,
            SplitMethod.CUSTOM: ExpenseSplitter.custom_shares,
            SplitMethod.PERCENTAGE: ExpenseSplitter.percentage_shares,
            SplitMethod.ITEMIZED: ExpenseSplitter.itemized_shares,
        }
        handler = handlers.get(request.method)
        if handler is None:
            raise InvalidSplitError(f"Unknown split method: {request.method}")

        shares = handler(request)
        splits = []
        for member_id, amount in shares.items():
            status = SplitStatus.CONFIRMED if member_id == request.paid_by else SplitStatus.PENDING
            percentage = request.percentages.get(member_id) if request.method == SplitMethod.PERCENTAGE else None
            splits.append(Split(member_id=member_id, amount=amount, status=status, percentage=percentage))

        logger.debug(f"Split {request.total} {request.method.value} across {len(splits)} members")
        return splits

    @staticmethod
    def build_expense(
        group_id: str,
        request: SplitRequest,
        title: str = "",
        category: str = "Other",
        expense_id: Optional[str] = None,
    ) -> Expense:
        """Create an Expense whose splits come from the request"""
        fields = dict(
            group_id=group_id,
            paid_by=request.paid_by,
            splits=ExpenseSplitter.calculate_splits(request),
            title=title,
            category=category,
            total_amount=request.total,
            tax=request.tax,
            tip=request.tip,
            split_method=request.method,
            items=request.items if request.method == SplitMethod.ITEMIZED else [],
        )
        if expense_id is not None:
            fields["id"] = expense_id
        return Expense(**fields)


def derive_expense_status(expense: Expense) -> ExpenseStatus:
    """Settled once every split owed to the payer is confirmed"""
    owed = [s for s in expense.splits if s.member_id != expense.paid_by]
    confirmed = [s for s in owed if s.status == SplitStatus.CONFIRMED]
    if len(confirmed) == len(owed):
        return ExpenseStatus.SETTLED
    if confirmed:
        return ExpenseStatus.PARTIALLY_SETTLED
    return ExpenseStatus.PENDING
