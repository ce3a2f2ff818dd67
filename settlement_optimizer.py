import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Sequence

import config
from models import Balance, Settlement, SettlementPlan

logger = logging.getLogger(__name__)


class SettlementOptimizer:
    @staticmethod
    def net_balances(group_id: str, balances: Sequence[Balance]) -> Dict[str, Decimal]:
        """Collect net balances of one group, keyed by member"""
        nets = {}
        for balance in balances:
            if balance.group_id != group_id:
                logger.debug(f"Skipping balance of {balance.member_id} from group {balance.group_id}")
                continue
            nets[balance.member_id] = nets.get(balance.member_id, Decimal("0")) + balance.net_balance
        return nets

    @staticmethod
    def minimize_transactions(group_id: str, nets: Dict[str, Decimal]) -> SettlementPlan:
        """
        Greedy two-pointer debt simplification.

        The largest remaining credit is matched against the largest remaining
        debt until either side runs out. Transfers at or below the epsilon are
        not emitted. Whatever is left once a side is exhausted is reported on
        the plan instead of being dropped.
        """
        epsilon = config.SETTLEMENT_EPSILON

        # Local copies, the caller's balances are never touched
        creditors = [[member_id, net] for member_id, net in nets.items() if net > 0]
        debtors = [[member_id, net] for member_id, net in nets.items() if net < 0]

        creditors.sort(key=lambda x: x[1], reverse=True)
        debtors.sort(key=lambda x: x[1])

        settlements = []
        now = datetime.now()
        i = j = 0
        while i < len(creditors) and j < len(debtors):
            creditor = creditors[i]
            debtor = debtors[j]

            amount = min(creditor[1], abs(debtor[1]))
            if amount > epsilon:
                settlements.append(Settlement(
                    from_member_id=debtor[0],
                    to_member_id=creditor[0],
                    amount=amount,
                    group_id=group_id,
                    created_at=now,
                ))

            creditor[1] -= amount
            debtor[1] += amount

            if creditor[1] < epsilon:
                i += 1
            if abs(debtor[1]) < epsilon:
                j += 1

        unsettled_credit = sum((c[1] for c in creditors[i:]), Decimal("0"))
        unsettled_debt = sum((abs(d[1]) for d in debtors[j:]), Decimal("0"))
        if unsettled_credit <= epsilon:
            unsettled_credit = Decimal("0")
        if unsettled_debt <= epsilon:
            unsettled_debt = Decimal("0")

        if unsettled_credit or unsettled_debt:
            logger.warning(
                f"Group {group_id} balances do not cancel out: "
                f"{unsettled_credit} credit and {unsettled_debt} debt left unsettled"
            )

        return SettlementPlan(
            group_id=group_id,
            settlements=settlements,
            unsettled_credit=unsettled_credit,
            unsettled_debt=unsettled_debt,
        )

    @staticmethod
    def plan_settlements(group_id: str, balances: Sequence[Balance]) -> SettlementPlan:
        """Optimize settlements and report any residual imbalance"""
        nets = SettlementOptimizer.net_balances(group_id, balances)
        plan = SettlementOptimizer.minimize_transactions(group_id, nets)
        logger.info(f"Proposed {len(plan.settlements)} settlements for group {group_id}")
        return plan

    @staticmethod
    def optimize(group_id: str, balances: Sequence[Balance]) -> List[Settlement]:
        """Main method to calculate optimal settlements"""
        return SettlementOptimizer.plan_settlements(group_id, balances).settlements

    @staticmethod
    def apply_settlements(balances: Sequence[Balance], settlements: Sequence[Settlement]) -> List[Balance]:
        """
        Return copies of the balances as if every settlement had been paid.
        Only net balances move; the pairwise maps still describe the ledger.
        """
        updated = [b.model_copy(deep=True) for b in balances]
        by_key = {(b.group_id, b.member_id): b for b in updated}
        for settlement in settlements:
            payer = by_key.get((settlement.group_id, settlement.from_member_id))
            payee = by_key.get((settlement.group_id, settlement.to_member_id))
            if payer is not None:
                payer.net_balance += settlement.amount
            if payee is not None:
                payee.net_balance -= settlement.amount
        return updated


optimize = SettlementOptimizer.optimize
plan_settlements = SettlementOptimizer.plan_settlements
apply_settlements = SettlementOptimizer.apply_settlements
