"""Spending breakdowns for a trip: total, per category and per payer."""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..models import Expense, TripSummary
from .balances import validate_inputs
from .money import from_subunits, to_subunits

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"


def normalize_category(category: str | None) -> str:
    """Lower-case a category label; missing or blank labels become ``other``."""
    if category is None or not category.strip():
        return DEFAULT_CATEGORY
    return category.strip().lower()


def summarize_spending(
    trip_id: str,
    expenses: Iterable[Expense | Mapping[str, Any]],
    all_members: Iterable[str],
) -> TripSummary:
    """
    Total up what was spent on a trip.

    Every expense counts towards spending, including those without
    beneficiaries that settlement skips. Sums are taken in subunits.

    Args:
        trip_id: Trip the expenses belong to
        expenses: Expenses already scoped to one trip
        all_members: Member ids taking part in the trip

    Returns:
        ``TripSummary`` with categories ordered by amount (largest first)
        and payers in roster order

    Raises:
        InvalidExpenseError: If the input is malformed
    """
    validated, roster = validate_inputs(expenses, all_members)

    total = 0
    by_category: dict[str, int] = {}
    by_payer: dict[str, int] = {}
    for expense in validated:
        amount = to_subunits(expense.amount)
        category = normalize_category(expense.category)
        total += amount
        by_category[category] = by_category.get(category, 0) + amount
        by_payer[expense.paid_by] = by_payer.get(expense.paid_by, 0) + amount

    logger.debug(
        f"Trip {trip_id}: {len(validated)} expense(s), {total} subunits "
        f"across {len(by_category)} category(ies)"
    )

    # sorted() is stable, so equal amounts keep first-seen order
    categories = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
    return TripSummary(
        trip_id=trip_id,
        total_spent=from_subunits(total),
        expense_count=len(validated),
        by_category={name: from_subunits(amount) for name, amount in categories},
        by_payer={
            member: from_subunits(by_payer[member])
            for member in roster
            if member in by_payer
        },
    )
