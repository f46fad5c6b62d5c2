"""Tests for the two settlement strategies and their shared validation."""

import random
from decimal import Decimal

import pytest

from tripsettle.exceptions import (
    InvalidExpenseError,
    SettlementInvariantViolation,
    UnknownMemberError,
    UnknownStrategyError,
)
from tripsettle.models import Expense, Settlement, SplitType
from tripsettle.settle import strategies
from tripsettle.settle.balances import check_conservation
from tripsettle.settle.strategies import (
    DirectPairwiseNetting,
    NetBalanceGreedy,
    compute_direct_debt_settlement,
    compute_net_balance_settlement,
    compute_settlement,
    get_strategy,
)
from tripsettle.settle.verify import apply_settlements, verify_settlements

STRATEGY_FUNCS = [compute_net_balance_settlement, compute_direct_debt_settlement]


def expense(amount, paid_by: str, members: list[str], **kwargs) -> dict:
    """Plain expense data, the way a route handler would pass it."""
    return {"amount": amount, "paidBy": paid_by, "members": members, **kwargs}


def as_tuples(result) -> list[tuple[str, str, Decimal]]:
    return [(s.from_member, s.to_member, s.amount) for s in result.settlements]


def random_trip(seed: int) -> tuple[list[dict], list[str]]:
    """Deterministic pseudo-random trip with awkward, non-dividing amounts."""
    rng = random.Random(seed)
    roster = [f"m{i}" for i in range(rng.randint(2, 8))]
    expenses = []
    for _ in range(rng.randint(1, 15)):
        members = rng.sample(roster, rng.randint(1, len(roster)))
        amount = Decimal(rng.randint(1, 500_000)) / 100
        expenses.append(expense(amount, rng.choice(roster), members))
    return expenses, roster


# ============================================================================
# Strategy A: net-balance greedy matching
# ============================================================================


class TestNetBalanceGreedy:
    """Greedy largest-debtor / largest-creditor matching."""

    def test_single_expense_three_members(self):
        """A pays 300 for A, B, C: B and C each pay A 100."""
        result = compute_net_balance_settlement(
            [expense(300, "A", ["A", "B", "C"])], ["A", "B", "C"]
        )

        assert result.net_balances == {
            "A": Decimal("200.00"),
            "B": Decimal("-100.00"),
            "C": Decimal("-100.00"),
        }
        assert as_tuples(result) == [
            ("B", "A", Decimal("100.00")),
            ("C", "A", Decimal("100.00")),
        ]
        totals = {t.member_id: t for t in result.member_totals}
        assert totals["B"].share == Decimal("100.00")
        assert totals["A"].paid == Decimal("300.00")

    def test_multiple_expenses_largest_debtor_first(self):
        """A pays 300 for A,B,C and B pays 150 for B,C."""
        result = compute_net_balance_settlement(
            [
                expense(300, "A", ["A", "B", "C"]),
                expense(150, "B", ["B", "C"]),
            ],
            ["A", "B", "C"],
        )

        assert result.net_balances == {
            "A": Decimal("200"),
            "B": Decimal("-25"),
            "C": Decimal("-175"),
        }
        assert as_tuples(result) == [
            ("C", "A", Decimal("175.00")),
            ("B", "A", Decimal("25.00")),
        ]
        assert result.total_expenses == Decimal("450.00")

    def test_everyone_already_settled(self):
        result = compute_net_balance_settlement(
            [
                expense(100, "A", ["A", "B"]),
                expense(100, "B", ["B", "C"]),
                expense(100, "C", ["A", "C"]),
            ],
            ["A", "B", "C"],
        )

        assert all(balance == 0 for balance in result.net_balances.values())
        assert result.settlements == []

    def test_one_debtor_many_creditors(self):
        """Mohil owes both Arjun and Jagjeet; the larger creditor is paid first."""
        result = compute_net_balance_settlement(
            [
                expense(100, "Arjun", ["Arjun", "Mohil"]),
                expense(90, "Jagjeet", ["Jagjeet", "Arjun"]),
            ],
            ["Arjun", "Mohil", "Jagjeet"],
        )

        assert as_tuples(result) == [
            ("Mohil", "Jagjeet", Decimal("45.00")),
            ("Mohil", "Arjun", Decimal("5.00")),
        ]

    def test_member_without_expenses_has_zero_balance(self):
        result = compute_net_balance_settlement(
            [expense(60, "A", ["A", "B"])], ["A", "B", "Z"]
        )

        assert result.net_balances["Z"] == Decimal("0.00")
        assert list(result.net_balances) == ["A", "B", "Z"]

    def test_tiny_balances_inside_tolerance_band_still_settle(self):
        """A 0.02 expense split two ways leaves each beneficiary owing 0.01."""
        result = compute_net_balance_settlement(
            [expense("0.02", "D", ["A", "B"])], ["A", "B", "D"]
        )

        assert as_tuples(result) == [
            ("A", "D", Decimal("0.01")),
            ("B", "D", Decimal("0.01")),
        ]

    def test_remainder_subunit_stays_with_first_beneficiary(self):
        """100.00 split three ways: the first listed member carries 33.34."""
        result = compute_net_balance_settlement(
            [expense(100, "A", ["B", "C", "A"])], ["A", "B", "C"]
        )

        assert result.net_balances == {
            "A": Decimal("66.67"),
            "B": Decimal("-33.34"),
            "C": Decimal("-33.33"),
        }
        assert sum(result.net_balances.values()) == 0

    def test_strategy_object(self):
        result = NetBalanceGreedy().settle(
            [expense(40, "A", ["A", "B"])], ["A", "B"]
        )
        assert result.strategy == "net_balance_greedy"
        assert as_tuples(result) == [("B", "A", Decimal("20.00"))]


# ============================================================================
# Strategy B: direct pairwise debt netting
# ============================================================================


class TestDirectPairwiseNetting:
    """Per-expense debts with reciprocal pairwise netting."""

    def test_reciprocal_debts_net_to_one_transfer(self):
        """B owes A 50, A owes B 30: only B pays A 20."""
        result = compute_direct_debt_settlement(
            [
                expense(100, "A", ["A", "B"]),
                expense(60, "B", ["A", "B"]),
            ],
            ["A", "B"],
        )

        assert as_tuples(result) == [("B", "A", Decimal("20.00"))]
        assert result.net_balances == {"A": Decimal("20.00"), "B": Decimal("-20.00")}

    def test_debts_follow_shared_expenses(self):
        """Mohil pays Arjun for lunch, Arjun pays Jagjeet for dinner."""
        result = compute_direct_debt_settlement(
            [
                expense(100, "Arjun", ["Arjun", "Mohil"], title="Lunch"),
                expense(90, "Jagjeet", ["Jagjeet", "Arjun"], title="Dinner"),
            ],
            ["Arjun", "Mohil", "Jagjeet"],
        )

        assert as_tuples(result) == [
            ("Arjun", "Jagjeet", Decimal("45.00")),
            ("Mohil", "Arjun", Decimal("50.00")),
        ]

    def test_no_transitive_netting(self):
        """A cycle of equal debts is kept: netting is pairwise only."""
        result = compute_direct_debt_settlement(
            [
                expense(100, "A", ["A", "B"]),
                expense(100, "B", ["B", "C"]),
                expense(100, "C", ["A", "C"]),
            ],
            ["A", "B", "C"],
        )

        assert as_tuples(result) == [
            ("A", "C", Decimal("50.00")),
            ("B", "A", Decimal("50.00")),
            ("C", "B", Decimal("50.00")),
        ]
        assert all(balance == 0 for balance in result.net_balances.values())

    def test_equal_reciprocal_debts_cancel(self):
        result = compute_direct_debt_settlement(
            [
                expense(50, "A", ["A", "B"]),
                expense(50, "B", ["A", "B"]),
            ],
            ["A", "B"],
        )

        assert result.settlements == []

    def test_payer_never_owes_themselves(self):
        result = compute_direct_debt_settlement(
            [expense(90, "A", ["A", "B", "C"])], ["A", "B", "C"]
        )

        assert all(s.from_member != s.to_member for s in result.settlements)
        assert as_tuples(result) == [
            ("B", "A", Decimal("30.00")),
            ("C", "A", Decimal("30.00")),
        ]

    def test_custom_split_amounts(self):
        result = compute_direct_debt_settlement(
            [
                expense(
                    100,
                    "A",
                    ["A", "B"],
                    splitType="unequally",
                    splitAmounts={"A": 70, "B": 30},
                )
            ],
            ["A", "B"],
        )

        assert as_tuples(result) == [("B", "A", Decimal("30.00"))]

    def test_strategy_object(self):
        result = DirectPairwiseNetting().settle(
            [expense(40, "A", ["A", "B"])], ["A", "B"]
        )
        assert result.strategy == "direct_pairwise"


# ============================================================================
# Shared properties
# ============================================================================


class TestSettlementProperties:
    """Properties every strategy must hold for any input."""

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    @pytest.mark.parametrize("seed", range(25))
    def test_conservation_and_correctness(self, settle, seed):
        expenses, roster = random_trip(seed)
        result = settle(expenses, roster)

        # Net balances sum to zero within one subunit
        assert abs(sum(result.net_balances.values())) <= Decimal("0.01")

        # No self-settlement, strictly positive amounts
        for s in result.settlements:
            assert s.from_member != s.to_member
            assert s.amount > 0

        # Applying settlements zeroes every balance within one subunit
        net = {m: int(b * 100) for m, b in result.net_balances.items()}
        residuals = apply_settlements(net, result.settlements)
        assert all(abs(r) <= 1 for r in residuals.values())

    @pytest.mark.parametrize("seed", range(25))
    def test_strategies_agree_on_net_balances(self, seed):
        expenses, roster = random_trip(seed)

        greedy = compute_net_balance_settlement(expenses, roster)
        direct = compute_direct_debt_settlement(expenses, roster)

        assert greedy.net_balances == direct.net_balances

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    @pytest.mark.parametrize("seed", range(10))
    def test_roster_order_does_not_change_balances(self, settle, seed):
        expenses, roster = random_trip(seed)

        forward = settle(expenses, roster)
        backward = settle(expenses, list(reversed(roster)))

        assert forward.net_balances == backward.net_balances

    @pytest.mark.parametrize("seed", range(25))
    def test_greedy_uses_at_most_n_minus_one_transfers(self, seed):
        """Amounts that divide evenly keep every balance outside the tolerance band."""
        rng = random.Random(seed)
        roster = [f"m{i}" for i in range(rng.randint(2, 6))]
        expenses = [
            expense(
                60 * rng.randint(1, 50),
                rng.choice(roster),
                rng.sample(roster, rng.randint(1, len(roster))),
            )
            for _ in range(rng.randint(1, 12))
        ]

        result = compute_net_balance_settlement(expenses, roster)

        nonzero = sum(1 for b in result.net_balances.values() if b != 0)
        assert len(result.settlements) <= max(nonzero - 1, 0)

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_greedy_tie_break_is_deterministic(self, settle):
        expenses = [expense(300, "A", ["A", "B", "C"])]
        first = settle(expenses, ["A", "B", "C"])
        second = settle(expenses, ["A", "B", "C"])
        assert as_tuples(first) == as_tuples(second)

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_zero_beneficiary_expense_is_skipped(self, settle):
        with_empty = settle(
            [
                expense(300, "A", ["A", "B", "C"]),
                expense(999, "B", []),
            ],
            ["A", "B", "C"],
        )
        without = settle([expense(300, "A", ["A", "B", "C"])], ["A", "B", "C"])

        assert with_empty.net_balances == without.net_balances
        assert as_tuples(with_empty) == as_tuples(without)
        assert with_empty.skipped_expenses == [1]
        assert with_empty.total_expenses == Decimal("300.00")

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_no_expenses(self, settle):
        result = settle([], ["A", "B"])
        assert result.settlements == []
        assert result.net_balances == {"A": Decimal("0"), "B": Decimal("0")}

    def test_to_wire_shape(self):
        result = compute_net_balance_settlement(
            [expense(300, "A", ["A", "B", "C"])], ["A", "B", "C"]
        )

        wire = result.to_wire()

        assert wire["netBalances"] == {"A": 200.0, "B": -100.0, "C": -100.0}
        assert wire["settlements"][0] == {"from": "B", "to": "A", "amount": 100.0}

    def test_settlement_serializes_by_alias(self):
        result = compute_net_balance_settlement(
            [expense(10, "A", ["A", "B"])], ["A", "B"]
        )
        dumped = result.settlements[0].model_dump(by_alias=True)
        assert dumped == {"from": "B", "to": "A", "amount": Decimal("5.00")}


# ============================================================================
# Input validation
# ============================================================================


class TestInputValidation:
    """Malformed input is rejected, never silently computed."""

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_negative_amount(self, settle):
        with pytest.raises(InvalidExpenseError, match="must not be negative"):
            settle([expense(-5, "A", ["A", "B"])], ["A", "B"])

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    @pytest.mark.parametrize("amount", ["-0.004", "-0.001", Decimal("-0.0049")])
    def test_negative_amount_that_rounds_to_zero(self, settle, amount):
        """Sign is checked before rounding to subunits."""
        with pytest.raises(InvalidExpenseError, match="must not be negative"):
            settle([expense(amount, "A", ["A", "B"])], ["A", "B"])

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_non_numeric_amount(self, settle):
        with pytest.raises(InvalidExpenseError) as exc_info:
            settle([expense("lots", "A", ["A", "B"])], ["A", "B"])
        assert exc_info.value.expense_index == 0

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_payer_outside_roster(self, settle):
        with pytest.raises(UnknownMemberError) as exc_info:
            settle(
                [expense(10, "A", ["A"]), expense(10, "X", ["A", "B"])],
                ["A", "B"],
            )
        assert exc_info.value.member_id == "X"
        assert exc_info.value.expense_index == 1

    @pytest.mark.parametrize("settle", STRATEGY_FUNCS)
    def test_beneficiary_outside_roster(self, settle):
        with pytest.raises(UnknownMemberError, match="'Q'"):
            settle([expense(10, "A", ["A", "Q"])], ["A", "B"])

    def test_unknown_member_is_an_input_error(self):
        with pytest.raises(InvalidExpenseError):
            compute_net_balance_settlement([expense(10, "A", ["Q"])], ["A"])

    def test_duplicate_beneficiary(self):
        with pytest.raises(InvalidExpenseError, match="listed once"):
            compute_net_balance_settlement(
                [expense(10, "A", ["A", "B", "B"])], ["A", "B"]
            )

    def test_missing_payer_field(self):
        with pytest.raises(InvalidExpenseError, match="paidBy"):
            compute_net_balance_settlement([{"amount": 10, "members": ["A"]}], ["A"])

    def test_accepts_expense_models(self):
        result = compute_net_balance_settlement(
            [
                Expense(
                    amount=Decimal("90"),
                    paid_by="A",
                    members=["A", "B", "C"],
                    split_type=SplitType.SHARES,
                    split_shares={"A": Decimal("1"), "B": Decimal("1"), "C": Decimal("1")},
                )
            ],
            ["A", "B", "C"],
        )
        assert result.net_balances["A"] == Decimal("60.00")

    def test_duplicate_roster_entries_are_collapsed(self):
        result = compute_net_balance_settlement(
            [expense(10, "A", ["A", "B"])], ["A", "B", "A"]
        )
        assert list(result.net_balances) == ["A", "B"]


# ============================================================================
# Internal consistency failures
# ============================================================================


class TestInvariantViolations:
    """Engine defects surface as SettlementInvariantViolation, not as results."""

    def test_conservation_check(self):
        with pytest.raises(SettlementInvariantViolation) as exc_info:
            check_conservation({"A": 500, "B": -300})
        assert exc_info.value.residuals == {"A": 500, "B": -300}

    def test_conservation_allows_one_subunit(self):
        check_conservation({"A": 1, "B": 0})

    def test_verify_detects_unsettled_residual(self):
        settlements = [
            Settlement(
                from_member="B", to_member="A", amount=Decimal("1.00"), amount_subunits=100
            )
        ]
        with pytest.raises(SettlementInvariantViolation) as exc_info:
            verify_settlements({"A": 500, "B": -500}, settlements)
        assert exc_info.value.residuals == {"A": 400, "B": -400}

    def test_verify_detects_self_settlement(self):
        settlements = [
            Settlement(
                from_member="A", to_member="A", amount=Decimal("1.00"), amount_subunits=100
            )
        ]
        with pytest.raises(SettlementInvariantViolation, match="themselves"):
            verify_settlements({"A": 0}, settlements)

    @pytest.mark.parametrize("subunits", [0, -100])
    def test_verify_detects_non_positive_transfer(self, subunits):
        settlements = [strategies._make_settlement("B", "A", subunits)]

        with pytest.raises(SettlementInvariantViolation, match="non-positive"):
            verify_settlements({"A": 0, "B": 0}, settlements)

    def test_greedy_refuses_zero_transfer(self, monkeypatch):
        monkeypatch.setattr(
            strategies,
            "_greedy_match",
            lambda balances, tolerance: [("B", "A", 0)] if tolerance else [],
        )

        with pytest.raises(SettlementInvariantViolation):
            compute_net_balance_settlement([expense(10, "A", ["A", "B"])], ["A", "B"])

    def test_greedy_refuses_incomplete_matching(self, monkeypatch):
        monkeypatch.setattr(strategies, "_greedy_match", lambda balances, tolerance: [])

        with pytest.raises(SettlementInvariantViolation):
            compute_net_balance_settlement(
                [expense(300, "A", ["A", "B", "C"])], ["A", "B", "C"]
            )

    def test_direct_refuses_debts_that_disagree_with_balances(self, monkeypatch):
        monkeypatch.setattr(
            strategies,
            "compute_shares",
            lambda expense, index=None: {member: 1 for member in expense.members},
        )

        with pytest.raises(SettlementInvariantViolation):
            compute_direct_debt_settlement(
                [expense(300, "A", ["A", "B", "C"])], ["A", "B", "C"]
            )


class TestStrategyRegistry:
    """Strategy lookup by name."""

    def test_get_strategy(self):
        assert isinstance(get_strategy("net_balance_greedy"), NetBalanceGreedy)
        assert isinstance(get_strategy("direct_pairwise"), DirectPairwiseNetting)

    def test_unknown_strategy(self):
        with pytest.raises(UnknownStrategyError, match="direct_pairwise"):
            get_strategy("optimal")

    def test_compute_settlement_defaults_to_greedy(self):
        result = compute_settlement([expense(10, "A", ["A", "B"])], ["A", "B"])
        assert result.strategy == "net_balance_greedy"

    def test_compute_settlement_by_name(self):
        result = compute_settlement(
            [expense(10, "A", ["A", "B"])], ["A", "B"], strategy="direct_pairwise"
        )
        assert result.strategy == "direct_pairwise"
