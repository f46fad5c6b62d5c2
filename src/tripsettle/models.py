"""Pydantic domain models for tripsettle."""

from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Engine input
# ============================================================================


class SplitType(str, Enum):
    """How an expense is divided between its beneficiaries."""

    EQUALLY = "equally"
    UNEQUALLY = "unequally"  # explicit amount per beneficiary
    PERCENTAGE = "percentage"
    SHARES = "shares"  # integer or fractional weights


class Expense(BaseModel):
    """A single trip expense as consumed by the settlement engine.

    ``members`` is ordered: the first beneficiaries in the list absorb the
    leftover subunits when the amount does not divide evenly.
    """

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    paid_by: str = Field(alias="paidBy")
    members: list[str] = Field(default_factory=list)
    title: str | None = None
    category: str | None = None
    split_type: SplitType = Field(default=SplitType.EQUALLY, alias="splitType")
    split_amounts: dict[str, Decimal] = Field(
        default_factory=dict, alias="splitAmounts"
    )
    split_percentages: dict[str, Decimal] = Field(
        default_factory=dict, alias="splitPercentages"
    )
    split_shares: dict[str, Decimal] = Field(default_factory=dict, alias="splitShares")

    def label(self, index: int) -> str:
        """Human readable label for log lines."""
        return f'"{self.title}"' if self.title else f"#{index}"


# ============================================================================
# Engine output
# ============================================================================


class Settlement(BaseModel):
    """One instruction: ``from_member`` pays ``to_member`` ``amount``.

    Amounts are not range-checked here; ``verify_settlements`` rejects
    non-positive transfers as an invariant violation.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_member: str = Field(alias="from")
    to_member: str = Field(alias="to")
    amount: Decimal
    amount_subunits: int = Field(exclude=True)


class MemberTotals(BaseModel):
    """What a member paid, what they owe, and the difference."""

    member_id: str
    paid: Decimal
    share: Decimal
    net: Decimal  # positive = is owed money


class SettlementResult(BaseModel):
    """Validated output of a settlement strategy."""

    strategy: str
    net_balances: dict[str, Decimal]
    settlements: list[Settlement]
    member_totals: list[MemberTotals] = Field(default_factory=list)
    total_expenses: Decimal = Decimal("0.00")
    skipped_expenses: list[int] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        """Return the ``{netBalances, settlements}`` JSON shape."""
        return {
            "strategy": self.strategy,
            "netBalances": {
                member: float(balance) for member, balance in self.net_balances.items()
            },
            "settlements": [
                {
                    "from": s.from_member,
                    "to": s.to_member,
                    "amount": float(s.amount),
                }
                for s in self.settlements
            ],
        }


class StrategyComparison(BaseModel):
    """Both strategies run over the same trip, for diagnostics."""

    trip_id: str
    greedy: SettlementResult
    direct: SettlementResult
    balances_agree: bool


class TripSummary(BaseModel):
    """Where a trip's money went."""

    trip_id: str
    total_spent: Decimal
    expense_count: int
    by_category: dict[str, Decimal]  # largest first
    by_payer: dict[str, Decimal]  # roster order

    def to_wire(self) -> dict[str, Any]:
        """Return the ``{totalSpent, byCategory, byPayer}`` JSON shape."""
        return {
            "tripId": self.trip_id,
            "totalSpent": float(self.total_spent),
            "expenseCount": self.expense_count,
            "byCategory": {k: float(v) for k, v in self.by_category.items()},
            "byPayer": {k: float(v) for k, v in self.by_payer.items()},
        }


# ============================================================================
# Trip data (produced by the storage layer)
# ============================================================================


class TripMember(BaseModel):
    """A user attached to a trip."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    name: str | None = None
    email: str | None = None
    status: Literal["joined", "invited", "declined"] = "joined"


class Trip(BaseModel):
    """A trip export: roster plus the expenses recorded against it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    created_by: str | None = Field(default=None, alias="createdBy")
    created_by_name: str | None = Field(default=None, alias="createdByName")
    currency: str = "INR"
    members: list[TripMember] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)

    def roster(self) -> list[str]:
        """Member ids taking part in settlement: creator, then joined members."""
        roster: list[str] = []
        if self.created_by:
            roster.append(self.created_by)
        for member in self.members:
            if member.status == "joined" and member.user_id not in roster:
                roster.append(member.user_id)
        return roster

    def display_name(self, member_id: str) -> str:
        """Resolve a member id to a name for presentation.

        The creator need not appear in ``members``; ``created_by_name`` names
        them in that case. Unknown ids are returned unchanged.
        """
        for member in self.members:
            if member.user_id == member_id and (member.name or member.email):
                return member.name or member.email
        if member_id == self.created_by and self.created_by_name:
            return self.created_by_name
        return member_id
