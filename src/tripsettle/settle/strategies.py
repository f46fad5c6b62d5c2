"""Settlement strategies: turn trip expenses into payment instructions.

Two interchangeable strategies share the same input (expenses plus the
member roster) and output (``SettlementResult``):

- ``NetBalanceGreedy`` collapses everything into one net balance per member
  and repeatedly matches the largest debtor with the largest creditor.
  It yields at most N-1 transfers for N members with a nonzero balance,
  but is not guaranteed to find the minimum number of transfers (that
  problem is NP-hard).
- ``DirectPairwiseNetting`` keeps track of who owes whom per expense and
  only cancels reciprocal debts between two members, so every transfer
  maps back to expenses the two people actually shared. It can produce
  more transfers than the greedy strategy.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from ..exceptions import UnknownStrategyError
from ..models import Expense, Settlement, SettlementResult
from .balances import (
    BalanceSheet,
    check_conservation,
    compute_member_totals,
    validate_inputs,
)
from .money import TOLERANCE_SUBUNITS, compute_shares, from_subunits
from .verify import apply_settlements, replay_balances, verify_settlements

logger = logging.getLogger(__name__)

ExpenseInput = Iterable[Expense | Mapping[str, Any]]


class SettlementStrategy(Protocol):
    """A way of settling a trip's expenses."""

    name: str

    def settle(
        self, expenses: ExpenseInput, all_members: Iterable[str]
    ) -> SettlementResult: ...


def _make_settlement(debtor: str, creditor: str, subunits: int) -> Settlement:
    return Settlement(
        from_member=debtor,
        to_member=creditor,
        amount=from_subunits(subunits),
        amount_subunits=subunits,
    )


def _build_result(
    strategy: str,
    sheet: BalanceSheet,
    net: Mapping[str, int],
    settlements: list[Settlement],
) -> SettlementResult:
    return SettlementResult(
        strategy=strategy,
        net_balances={member: from_subunits(balance) for member, balance in net.items()},
        settlements=settlements,
        member_totals=sheet.member_totals(),
        total_expenses=from_subunits(sheet.total_paid),
        skipped_expenses=sheet.skipped,
    )


# ============================================================================
# Strategy A: net-balance greedy matching
# ============================================================================


def _greedy_match(
    balances: Mapping[str, int], tolerance: int
) -> list[tuple[str, str, int]]:
    """
    Match the largest debtor against the largest creditor until one side runs out.

    Members whose balance is within ``tolerance`` are treated as settled.
    Ties keep input order (sorts are stable).

    Returns:
        List of (debtor, creditor, subunits) transfers
    """
    creditors = [[m, bal] for m, bal in balances.items() if bal > tolerance]
    debtors = [[m, -bal] for m, bal in balances.items() if bal < -tolerance]
    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)

    transfers: list[tuple[str, str, int]] = []
    debt_idx = 0
    cred_idx = 0

    while debt_idx < len(debtors) and cred_idx < len(creditors):
        debtor = debtors[debt_idx]
        creditor = creditors[cred_idx]

        amount = min(debtor[1], creditor[1])
        transfers.append((debtor[0], creditor[0], amount))

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] <= tolerance:
            debt_idx += 1
        if creditor[1] <= tolerance:
            cred_idx += 1

    return transfers


def compute_net_balance_settlement(
    expenses: ExpenseInput, all_members: Iterable[str]
) -> SettlementResult:
    """
    Settle a trip by greedy matching on net balances.

    Args:
        expenses: Expenses already scoped to one trip
        all_members: Every member taking part, including those with no expenses

    Returns:
        Validated settlement result

    Raises:
        InvalidExpenseError: If the input is malformed
        SettlementInvariantViolation: If balances or settlements fail to zero out
    """
    validated, roster = validate_inputs(expenses, all_members)
    sheet = compute_member_totals(validated, roster)
    net = sheet.net
    check_conservation(net)

    transfers = _greedy_match(net, TOLERANCE_SUBUNITS)

    # Members inside the tolerance band may have absorbed the amounts a
    # remaining balance needs; settle those leftovers exactly.
    residuals = apply_settlements(net, [_make_settlement(*t) for t in transfers])
    if any(abs(r) > TOLERANCE_SUBUNITS for r in residuals.values()):
        logger.debug(f"Sweeping residual balances: {residuals}")
        for debtor, creditor, amount in _greedy_match(residuals, 0):
            for i, (d, c, existing) in enumerate(transfers):
                if (d, c) == (debtor, creditor):
                    transfers[i] = (d, c, existing + amount)
                    break
            else:
                transfers.append((debtor, creditor, amount))

    settlements = [_make_settlement(*t) for t in transfers]
    verify_settlements(net, settlements)

    logger.debug(
        f"Greedy settlement: {len(settlements)} transfer(s) for "
        f"{sum(1 for b in net.values() if b)} member(s) with a balance"
    )
    return _build_result(NetBalanceGreedy.name, sheet, net, settlements)


# ============================================================================
# Strategy B: direct pairwise debt netting
# ============================================================================


def _net_reciprocal_debts(
    debts: dict[str, dict[str, int]], roster: Sequence[str]
) -> None:
    """Cancel A-owes-B against B-owes-A once per unordered pair, in place."""
    for i, member_a in enumerate(roster):
        for member_b in roster[i + 1 :]:
            a_owes_b = debts[member_a][member_b]
            b_owes_a = debts[member_b][member_a]
            if a_owes_b > 0 and b_owes_a > 0:
                if a_owes_b > b_owes_a:
                    debtor, creditor = member_a, member_b
                else:
                    debtor, creditor = member_b, member_a
                net_amount = abs(a_owes_b - b_owes_a)

                logger.debug(
                    f"Netting {member_a} <-> {member_b}: {a_owes_b} vs {b_owes_a} "
                    f"= {debtor} owes {creditor} {net_amount}"
                )

                debts[member_a][member_b] = 0
                debts[member_b][member_a] = 0
                debts[debtor][creditor] = net_amount


def compute_direct_debt_settlement(
    expenses: ExpenseInput, all_members: Iterable[str]
) -> SettlementResult:
    """
    Settle a trip by tracking who owes whom per expense and netting pairs.

    Only reciprocal debts between the same two members are cancelled; no
    netting happens across three or more members.

    Args:
        expenses: Expenses already scoped to one trip
        all_members: Every member taking part, including those with no expenses

    Returns:
        Validated settlement result whose net balances are replayed from
        the settlements

    Raises:
        InvalidExpenseError: If the input is malformed
        SettlementInvariantViolation: If the settlements disagree with the
            balances computed from the expenses
    """
    validated, roster = validate_inputs(expenses, all_members)
    sheet = compute_member_totals(validated, roster)
    check_conservation(sheet.net)

    # debts[A][B] = subunits A owes B
    debts = {debtor: {creditor: 0 for creditor in roster} for debtor in roster}

    for index, expense in enumerate(validated):
        if not expense.members:
            continue
        payer = expense.paid_by
        for beneficiary, share in compute_shares(expense, index).items():
            if beneficiary == payer:
                continue
            debts[beneficiary][payer] += share

    _net_reciprocal_debts(debts, roster)

    settlements = [
        _make_settlement(debtor, creditor, amount)
        for debtor in roster
        for creditor in roster
        if (amount := debts[debtor][creditor]) > 0
    ]
    verify_settlements(sheet.net, settlements)

    logger.debug(f"Direct settlement: {len(settlements)} transfer(s)")
    return _build_result(
        DirectPairwiseNetting.name,
        sheet,
        replay_balances(roster, settlements),
        settlements,
    )


# ============================================================================
# Strategy registry
# ============================================================================


class NetBalanceGreedy:
    """Greedy largest-debtor / largest-creditor matching on net balances."""

    name = "net_balance_greedy"

    def settle(
        self, expenses: ExpenseInput, all_members: Iterable[str]
    ) -> SettlementResult:
        return compute_net_balance_settlement(expenses, all_members)


class DirectPairwiseNetting:
    """Per-expense debts with reciprocal pairwise netting."""

    name = "direct_pairwise"

    def settle(
        self, expenses: ExpenseInput, all_members: Iterable[str]
    ) -> SettlementResult:
        return compute_direct_debt_settlement(expenses, all_members)


STRATEGIES: dict[str, SettlementStrategy] = {
    strategy.name: strategy for strategy in (NetBalanceGreedy(), DirectPairwiseNetting())
}


def get_strategy(name: str) -> SettlementStrategy:
    """Look up a registered strategy by name."""
    try:
        return STRATEGIES[name]
    except KeyError:
        raise UnknownStrategyError(name, list(STRATEGIES)) from None


def compute_settlement(
    expenses: ExpenseInput,
    all_members: Iterable[str],
    strategy: str = NetBalanceGreedy.name,
) -> SettlementResult:
    """Settle expenses with the named strategy."""
    return get_strategy(strategy).settle(expenses, all_members)
