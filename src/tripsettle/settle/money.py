"""Exact integer-subunit arithmetic for splitting expenses.

Every amount entering the engine is converted to integer subunits
(cents, paise) up front; shares, balances and settlements are all
computed on integers and only converted back to Decimal at the output
boundary.
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction

from ..exceptions import InvalidExpenseError
from ..models import Expense, SplitType

logger = logging.getLogger(__name__)

SUBUNITS_PER_UNIT = 100
TOLERANCE_SUBUNITS = 1  # rounding slack allowed by every balance check
PERCENT_TOTAL = Decimal("100")
PERCENT_TOLERANCE = Decimal("0.01")


def to_subunits(amount: Decimal | int | float | str) -> int:
    """
    Convert a decimal currency amount to integer subunits.

    Uses ROUND_HALF_UP, so 10.005 becomes 1001.

    Args:
        amount: Amount in currency units

    Returns:
        Amount in subunits (integer)

    Raises:
        InvalidExpenseError: If the amount is not a finite number
    """
    if isinstance(amount, bool):
        raise InvalidExpenseError(f"amount {amount!r} is not numeric")
    if isinstance(amount, float):
        # repr-based conversion keeps 0.1 as 0.1 instead of its binary expansion
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidExpenseError(f"amount {amount!r} is not numeric") from e
    if not value.is_finite():
        raise InvalidExpenseError(f"amount {amount!r} is not finite")

    subunits = value * SUBUNITS_PER_UNIT
    return int(subunits.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_subunits(subunits: int) -> Decimal:
    """Convert integer subunits back to a 2dp Decimal."""
    return (Decimal(subunits) / SUBUNITS_PER_UNIT).quantize(Decimal("0.01"))


def split_evenly(amount_subunits: int, count: int) -> list[int]:
    """
    Split an amount into ``count`` near-equal integer shares.

    The first ``amount % count`` shares carry one extra subunit, so the
    shares always sum to the amount and differ by at most one subunit.
    A count of zero yields no shares.
    """
    if count <= 0:
        return []
    base, remainder = divmod(amount_subunits, count)
    return [base + (1 if i < remainder else 0) for i in range(count)]


def split_weighted(amount_subunits: int, weights: list[Fraction]) -> list[int]:
    """
    Split an amount proportionally to ``weights``.

    Each share is floored exactly; the leftover subunits go one at a time
    to positive-weight positions in list order.
    """
    total_weight = sum(weights, Fraction(0))
    if total_weight <= 0:
        return [0] * len(weights)

    shares = [
        math.floor(amount_subunits * weight / total_weight) for weight in weights
    ]
    leftover = amount_subunits - sum(shares)
    for i, weight in enumerate(weights):
        if leftover <= 0:
            break
        if weight > 0:
            shares[i] += 1
            leftover -= 1
    return shares


def compute_shares(expense: Expense, index: int | None = None) -> dict[str, int]:
    """
    Compute every beneficiary's share of one expense in subunits.

    Args:
        expense: The expense to split
        index: Position of the expense in its list, for error messages

    Returns:
        Mapping of member id to share, in ``expense.members`` order.
        Values sum exactly to the expense amount. Empty when the expense
        has no beneficiaries.

    Raises:
        InvalidExpenseError: If the split details are inconsistent
    """
    members = expense.members
    if not members:
        return {}

    amount = to_subunits(expense.amount)

    if expense.split_type == SplitType.EQUALLY:
        shares = split_evenly(amount, len(members))

    elif expense.split_type == SplitType.UNEQUALLY:
        _check_detail_keys(expense.split_amounts, members, "splitAmounts", index)
        shares = [
            to_subunits(expense.split_amounts.get(member, Decimal("0")))
            for member in members
        ]
        if any(share < 0 for share in shares):
            raise InvalidExpenseError("split amounts must not be negative", index)
        residual = amount - sum(shares)
        if abs(residual) > TOLERANCE_SUBUNITS:
            raise InvalidExpenseError(
                f"split amounts total {from_subunits(sum(shares))} "
                f"but the expense amount is {from_subunits(amount)}",
                index,
            )
        if residual != 0:
            # Largest share absorbs the rounding residual
            largest = max(range(len(shares)), key=lambda i: shares[i])
            shares[largest] += residual
            logger.debug(
                f"Applied rounding adjustment of {residual} subunit(s) "
                f"to {members[largest]}"
            )

    elif expense.split_type == SplitType.PERCENTAGE:
        _check_detail_keys(expense.split_percentages, members, "splitPercentages", index)
        percentages = [
            expense.split_percentages.get(member, Decimal("0")) for member in members
        ]
        if any(p < 0 for p in percentages):
            raise InvalidExpenseError("split percentages must not be negative", index)
        total = sum(percentages, Decimal("0"))
        if abs(total - PERCENT_TOTAL) > PERCENT_TOLERANCE:
            raise InvalidExpenseError(
                f"split percentages total {total}%, expected 100%", index
            )
        shares = split_weighted(amount, [Fraction(p) for p in percentages])

    elif expense.split_type == SplitType.SHARES:
        _check_detail_keys(expense.split_shares, members, "splitShares", index)
        weights = [expense.split_shares.get(member, Decimal("0")) for member in members]
        if any(w < 0 for w in weights):
            raise InvalidExpenseError("split shares must not be negative", index)
        if sum(weights, Decimal("0")) <= 0:
            raise InvalidExpenseError("split shares must have a positive total", index)
        shares = split_weighted(amount, [Fraction(w) for w in weights])

    else:  # pragma: no cover - enum is exhaustive
        raise InvalidExpenseError(f"unsupported split type {expense.split_type}", index)

    return dict(zip(members, shares, strict=True))


def _check_detail_keys(
    details: dict[str, Decimal],
    members: list[str],
    field_name: str,
    index: int | None,
) -> None:
    """Reject split details that name someone who is not a beneficiary."""
    for member_id in details:
        if member_id not in members:
            raise InvalidExpenseError(
                f"{field_name} names '{member_id}' who is not a beneficiary", index
            )
