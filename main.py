from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import List, Optional, Dict
from decimal import Decimal
import logging

import config
from balance_aggregator import AggregationOptions, compute_balances
from exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    InvalidSplitError,
    LedgerValidationError,
    SettleUpError,
)
from expense_splitter import ExpenseSplitter, SplitRequest, derive_expense_status
from group_ledger import GroupLedger
from models import Balance, Expense, ExpenseStatus, Group, Split, SettlementPlan
from settlement_optimizer import plan_settlements

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SettleUp API",
    description="Balance aggregation and settlement optimization for groups",
    version="1.0.0"
)

# CORS middleware to allow frontend connections
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory ledger; balances are recomputed on every expense change
ledger = GroupLedger()

# ===== DATA MODELS =====
class ComputeBalancesRequest(BaseModel):
    group_id: str = Field(..., description="Group whose expenses are aggregated")
    members: List[str] = Field(..., description="Member IDs of the group")
    expenses: List[Expense] = Field(default_factory=list, description="Expense ledger")
    options: Optional[AggregationOptions] = Field(None, description="Validation policies")

class OptimizeRequest(BaseModel):
    group_id: str = Field(..., description="Group being settled")
    balances: List[Balance] = Field(..., description="Balances produced by the aggregator")

class GroupCreate(BaseModel):
    name: str = Field(..., description="Name of the group")
    members: List[str] = Field(default_factory=list, description="Member IDs in the group")
    currency: str = Field("USD", description="Currency all amounts are expressed in")

class MemberAdd(BaseModel):
    member_id: str = Field(..., description="ID of the member to add")

class ExpenseCreate(BaseModel):
    title: str = Field("", description="Short description of the expense")
    category: str = Field("Other", description="Category of the expense")
    split: SplitRequest = Field(..., description="How the expense is divided")

class ExpenseResponse(BaseModel):
    expense: Expense
    status: ExpenseStatus

class SpendingResponse(BaseModel):
    group_id: str
    spending_by_category: Dict[str, Decimal]
    total_spent: Decimal


def to_http_error(error: SettleUpError) -> HTTPException:
    if isinstance(error, (GroupNotFoundError, ExpenseNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidSplitError, LedgerValidationError)):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Unhandled engine error: {error}")
    return HTTPException(status_code=500, detail=str(error))


def require_members(group: Group, participants):
    """Reject expenses that involve anyone outside the group"""
    outsiders = set(participants) - set(group.members)
    if outsiders:
        raise HTTPException(status_code=400, detail=f"Not members of group {group.id}: {sorted(outsiders)}")


# ===== API ENDPOINTS =====
@app.get("/")
async def root():
    return {"message": "SettleUp API"}

@app.post("/balances/compute", response_model=Dict[str, Balance])
async def compute_balances_endpoint(request: ComputeBalancesRequest):
    """Aggregate an expense ledger into per-member balances"""
    try:
        return compute_balances(request.group_id, request.members, request.expenses, request.options)
    except SettleUpError as e:
        raise to_http_error(e)

@app.post("/settlements/optimize", response_model=SettlementPlan)
async def optimize_endpoint(request: OptimizeRequest):
    """Propose settlements that clear the given balances"""
    return plan_settlements(request.group_id, request.balances)

@app.post("/splits/calculate", response_model=List[Split])
async def calculate_splits(request: SplitRequest):
    """Calculate per-member splits for an expense"""
    try:
        return ExpenseSplitter.calculate_splits(request)
    except SettleUpError as e:
        raise to_http_error(e)

@app.post("/groups/", response_model=Group)
async def create_group(group: GroupCreate):
    """Create a new group"""
    return ledger.add_group(Group(**group.model_dump()))

@app.get("/groups/", response_model=List[Group])
async def list_groups():
    """List all groups"""
    return ledger.list_groups()

@app.get("/groups/{group_id}", response_model=Group)
async def get_group(group_id: str):
    """Get group details"""
    try:
        return ledger.get_group(group_id)
    except SettleUpError as e:
        raise to_http_error(e)

@app.delete("/groups/{group_id}")
async def delete_group(group_id: str):
    """Delete a group and its expenses"""
    try:
        ledger.delete_group(group_id)
    except SettleUpError as e:
        raise to_http_error(e)
    return {"deleted": group_id}

@app.post("/groups/{group_id}/members", response_model=Group)
async def add_member(group_id: str, member: MemberAdd):
    """Add a member to a group"""
    try:
        return ledger.add_member(group_id, member.member_id)
    except SettleUpError as e:
        raise to_http_error(e)

@app.post("/groups/{group_id}/expenses", response_model=ExpenseResponse)
async def create_expense(group_id: str, expense: ExpenseCreate):
    """Create a new expense and recompute the group's balances"""
    try:
        group = ledger.get_group(group_id)
        participants = {expense.split.paid_by, *expense.split.members}
        for item in expense.split.items:
            participants.update(item.assigned_to)
        require_members(group, participants)
        created = ledger.add_expense(
            ExpenseSplitter.build_expense(group_id, expense.split, expense.title, expense.category)
        )
    except SettleUpError as e:
        raise to_http_error(e)
    return {"expense": created, "status": derive_expense_status(created)}

@app.get("/groups/{group_id}/expenses", response_model=List[ExpenseResponse])
async def list_expenses(group_id: str):
    """List the expenses of a group"""
    try:
        expenses = ledger.list_expenses(group_id)
    except SettleUpError as e:
        raise to_http_error(e)
    return [{"expense": e, "status": derive_expense_status(e)} for e in expenses]

@app.put("/groups/{group_id}/expenses/{expense_id}", response_model=ExpenseResponse)
async def update_expense(group_id: str, expense_id: str, expense: Expense):
    """Replace an expense, e.g. after a split was confirmed"""
    try:
        group = ledger.get_group(group_id)
        require_members(group, [expense.paid_by] + [s.member_id for s in expense.splits])
        updated = ledger.update_expense(group_id, expense.model_copy(update={"id": expense_id}))
    except SettleUpError as e:
        raise to_http_error(e)
    return {"expense": updated, "status": derive_expense_status(updated)}

@app.delete("/groups/{group_id}/expenses/{expense_id}")
async def delete_expense(group_id: str, expense_id: str):
    """Delete an expense and recompute the group's balances"""
    try:
        ledger.delete_expense(group_id, expense_id)
    except SettleUpError as e:
        raise to_http_error(e)
    return {"deleted": expense_id}

@app.get("/groups/{group_id}/balances", response_model=Dict[str, Balance])
async def get_balances(group_id: str):
    """Current balances of a group"""
    try:
        return ledger.balances(group_id)
    except SettleUpError as e:
        raise to_http_error(e)

@app.post("/groups/{group_id}/settlements", response_model=SettlementPlan)
async def suggest_settlements(group_id: str):
    """Suggest settlements for a group"""
    try:
        return ledger.suggest_settlements(group_id)
    except SettleUpError as e:
        raise to_http_error(e)

@app.get("/groups/{group_id}/spending", response_model=SpendingResponse)
async def get_group_spending(group_id: str):
    """Get spending breakdown by category for a specific group"""
    try:
        spending = ledger.spending_by_category(group_id)
    except SettleUpError as e:
        raise to_http_error(e)
    return {
        "group_id": group_id,
        "spending_by_category": spending,
        "total_spent": sum(spending.values(), Decimal("0"))
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
