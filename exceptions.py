"""
Errors raised by the SettleUp engine
"""


class SettleUpError(Exception):
    """Base class for all engine errors"""


class GroupNotFoundError(SettleUpError):
    def __init__(self, group_id: str):
        super().__init__(f"Group {group_id} not found")
        self.group_id = group_id


class ExpenseNotFoundError(SettleUpError):
    def __init__(self, expense_id: str):
        super().__init__(f"Expense {expense_id} not found")
        self.expense_id = expense_id


class InvalidSplitError(SettleUpError):
    """Split input cannot produce a valid set of splits"""


class LedgerValidationError(SettleUpError):
    """Expense data violates an aggregation policy set to strict"""


class UnknownMemberError(LedgerValidationError):
    def __init__(self, member_id: str, group_id: str, expense_id: str = None):
        super().__init__(
            f"Member {member_id} in expense {expense_id} is not part of group {group_id}"
        )
        self.member_id = member_id
        self.group_id = group_id
        self.expense_id = expense_id


class SplitTotalMismatchError(LedgerValidationError):
    def __init__(self, expense_id: str, split_total, expected_total):
        super().__init__(
            f"Splits of expense {expense_id} sum to {split_total}, expected {expected_total}"
        )
        self.expense_id = expense_id
        self.split_total = split_total
        self.expected_total = expected_total


class NegativeAmountError(LedgerValidationError):
    def __init__(self, expense_id: str, member_id: str, amount):
        super().__init__(
            f"Split for {member_id} in expense {expense_id} has negative amount {amount}"
        )
        self.expense_id = expense_id
        self.member_id = member_id
        self.amount = amount
