"""Post-computation checks that every strategy runs before returning."""

from collections.abc import Mapping, Sequence

from ..exceptions import SettlementInvariantViolation
from ..models import Settlement
from .money import TOLERANCE_SUBUNITS


def apply_settlements(
    net: Mapping[str, int], settlements: Sequence[Settlement]
) -> dict[str, int]:
    """
    Replay settlements against net balances.

    A payment raises the payer's (negative) balance and lowers the
    receiver's (positive) balance by the same amount.

    Returns:
        Residual balance per member in subunits; all zero when settled
    """
    residuals = dict(net)
    for settlement in settlements:
        residuals[settlement.from_member] = (
            residuals.get(settlement.from_member, 0) + settlement.amount_subunits
        )
        residuals[settlement.to_member] = (
            residuals.get(settlement.to_member, 0) - settlement.amount_subunits
        )
    return residuals


def replay_balances(
    members: Sequence[str], settlements: Sequence[Settlement]
) -> dict[str, int]:
    """Net balances implied by a list of settlements (received minus paid)."""
    balances = {member: 0 for member in members}
    for settlement in settlements:
        balances[settlement.from_member] -= settlement.amount_subunits
        balances[settlement.to_member] += settlement.amount_subunits
    return balances


def verify_settlements(
    net: Mapping[str, int], settlements: Sequence[Settlement]
) -> None:
    """
    Check that settlements are well formed and zero out every balance.

    Raises:
        SettlementInvariantViolation: On a self-settlement, a non-positive
            amount, or any residual beyond the rounding tolerance
    """
    for settlement in settlements:
        if settlement.from_member == settlement.to_member:
            raise SettlementInvariantViolation(
                f"Settlement from {settlement.from_member} to themselves"
            )
        if settlement.amount_subunits <= 0:
            raise SettlementInvariantViolation(
                f"Settlement {settlement.from_member} -> {settlement.to_member} "
                f"has non-positive amount {settlement.amount}"
            )

    residuals = apply_settlements(net, settlements)
    unsettled = {
        member: residual
        for member, residual in residuals.items()
        if abs(residual) > TOLERANCE_SUBUNITS
    }
    if unsettled:
        raise SettlementInvariantViolation(
            f"Settlements leave {len(unsettled)} member(s) unsettled: "
            + ", ".join(f"{m}={r:+d}" for m, r in unsettled.items()),
            residuals=unsettled,
        )
