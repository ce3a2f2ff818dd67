from pydantic import BaseModel, Field
from typing import List, Optional, Dict
from decimal import Decimal
from datetime import datetime
from enum import Enum
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


class SplitStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CONFIRMED = "confirmed"


class SplitMethod(str, Enum):
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"
    ITEMIZED = "itemized"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_SETTLED = "partially_settled"
    SETTLED = "settled"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    RECEIVED = "received"
    CONFIRMED = "confirmed"


class Split(BaseModel):
    member_id: str
    amount: Decimal
    status: SplitStatus = SplitStatus.PENDING
    percentage: Optional[Decimal] = None


class ExpenseItem(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    amount: Decimal
    category: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)


class Expense(BaseModel):
    id: str = Field(default_factory=new_id)
    group_id: str
    paid_by: str
    splits: List[Split] = Field(default_factory=list)
    title: str = ""
    category: str = "Other"
    # Tax and tip inclusive; None means the split total is not checked
    total_amount: Optional[Decimal] = None
    tax: Decimal = Decimal("0")
    tip: Decimal = Decimal("0")
    split_method: SplitMethod = SplitMethod.EQUAL
    items: List[ExpenseItem] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class Group(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    members: List[str] = Field(default_factory=list)
    currency: str = "USD"
    created_at: datetime = Field(default_factory=datetime.now)


class Balance(BaseModel):
    member_id: str
    group_id: str
    # member_id owes owes[x] to x
    owes: Dict[str, Decimal] = Field(default_factory=dict)
    # owed_by[x] is what x owes member_id
    owed_by: Dict[str, Decimal] = Field(default_factory=dict)
    net_balance: Decimal = Decimal("0")


class Settlement(BaseModel):
    id: str = Field(default_factory=new_id)
    from_member_id: str
    to_member_id: str
    amount: Decimal
    group_id: str
    status: SettlementStatus = SettlementStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)


class SettlementPlan(BaseModel):
    group_id: str
    settlements: List[Settlement]
    # Left over when credits and debts do not cancel out
    unsettled_credit: Decimal = Decimal("0")
    unsettled_debt: Decimal = Decimal("0")

    @property
    def is_balanced(self) -> bool:
        return self.unsettled_credit == 0 and self.unsettled_debt == 0
