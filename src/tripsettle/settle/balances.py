"""Input validation and per-member balance computation shared by all strategies."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ..exceptions import (
    InvalidExpenseError,
    SettlementInvariantViolation,
    UnknownMemberError,
)
from ..models import Expense, MemberTotals
from .money import TOLERANCE_SUBUNITS, compute_shares, from_subunits, to_subunits

logger = logging.getLogger(__name__)


@dataclass
class BalanceSheet:
    """Per-member totals in subunits, keyed in roster order."""

    paid: dict[str, int]
    share: dict[str, int]
    skipped: list[int] = field(default_factory=list)

    @property
    def net(self) -> dict[str, int]:
        """Net balance per member: positive is owed money, negative owes money."""
        return {member: self.paid[member] - self.share[member] for member in self.paid}

    @property
    def total_paid(self) -> int:
        return sum(self.paid.values())

    def member_totals(self) -> list[MemberTotals]:
        net = self.net
        return [
            MemberTotals(
                member_id=member,
                paid=from_subunits(self.paid[member]),
                share=from_subunits(self.share[member]),
                net=from_subunits(net[member]),
            )
            for member in self.paid
        ]


def validate_inputs(
    expenses: Iterable[Expense | Mapping[str, Any]],
    all_members: Iterable[str],
) -> tuple[list[Expense], list[str]]:
    """
    Coerce and validate engine input.

    Plain mappings (e.g. decoded JSON) are parsed into ``Expense`` models.

    Args:
        expenses: Expenses already scoped to one trip
        all_members: Member ids taking part in the computation

    Returns:
        Tuple of (validated expenses, de-duplicated roster in input order)

    Raises:
        InvalidExpenseError: If an expense is malformed, has a negative or
            non-numeric amount, or lists a beneficiary twice
        UnknownMemberError: If an expense references an id outside the roster
    """
    roster = list(dict.fromkeys(all_members))
    known = set(roster)

    validated: list[Expense] = []
    for index, raw in enumerate(expenses):
        if isinstance(raw, Expense):
            expense = raw
        else:
            try:
                expense = Expense.model_validate(raw)
            except ValidationError as e:
                error = e.errors()[0]
                location = ".".join(str(part) for part in error["loc"])
                raise InvalidExpenseError(
                    f"malformed expense ({location}): {error['msg']}", index
                ) from e

        if expense.amount < 0:
            raise InvalidExpenseError(
                f"amount must not be negative (got {expense.amount})", index
            )
        if expense.paid_by not in known:
            raise UnknownMemberError(expense.paid_by, index)
        for member in expense.members:
            if member not in known:
                raise UnknownMemberError(member, index)
        if len(set(expense.members)) != len(expense.members):
            raise InvalidExpenseError("beneficiaries must be listed once each", index)

        validated.append(expense)

    return validated, roster


def compute_member_totals(
    expenses: Sequence[Expense], roster: Sequence[str]
) -> BalanceSheet:
    """
    Accumulate what each member paid and owes across all expenses.

    Expenses with no beneficiaries are skipped entirely; they neither
    credit the payer nor charge anyone.
    """
    sheet = BalanceSheet(
        paid={member: 0 for member in roster},
        share={member: 0 for member in roster},
    )

    for index, expense in enumerate(expenses):
        if not expense.members:
            logger.warning(
                f"Skipping expense {expense.label(index)} - no beneficiaries"
            )
            sheet.skipped.append(index)
            continue

        shares = compute_shares(expense, index)
        sheet.paid[expense.paid_by] += to_subunits(expense.amount)
        for member, share in shares.items():
            sheet.share[member] += share

    return sheet


def check_conservation(net: Mapping[str, int]) -> None:
    """
    Verify that net balances sum to zero within the rounding tolerance.

    Raises:
        SettlementInvariantViolation: If money was created or lost
    """
    total = sum(net.values())
    if abs(total) > TOLERANCE_SUBUNITS:
        raise SettlementInvariantViolation(
            f"Net balances sum to {total} subunits instead of 0. "
            f"This indicates a data integrity issue.",
            residuals=dict(net),
        )
