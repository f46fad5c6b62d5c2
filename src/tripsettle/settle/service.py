"""Service layer that connects a trip data source to the settlement engine.

The engine itself is a set of pure functions; this service owns the
injected ``TripStore`` and the configured defaults.
"""

import logging

from ..config import Settings
from ..models import SettlementResult, StrategyComparison, Trip, TripSummary
from ..store import TripStore
from .analytics import summarize_spending
from .strategies import DirectPairwiseNetting, NetBalanceGreedy, get_strategy

logger = logging.getLogger(__name__)


class SettlementService:
    """Computes settlements for trips loaded from a ``TripStore``."""

    def __init__(self, settings: Settings, store: TripStore):
        """Initialize the settlement service."""
        self.settings = settings
        self.store = store

    def list_trips(self) -> list[Trip]:
        """Return every trip the store knows about."""
        return self.store.list_trips()

    def get_trip(self, trip_id: str) -> Trip:
        """Load a single trip."""
        return self.store.get_trip(trip_id)

    def settle_trip(
        self, trip_id: str, strategy: str | None = None
    ) -> SettlementResult:
        """
        Compute the settlement for one trip.

        Args:
            trip_id: Trip identifier in the store
            strategy: Strategy name; defaults to ``settings.default_strategy``

        Returns:
            Validated ``SettlementResult``
        """
        strategy_impl = get_strategy(strategy or self.settings.default_strategy)
        trip = self.store.get_trip(trip_id)
        roster = trip.roster()

        logger.info(
            f"Settling trip {trip_id} with {strategy_impl.name}: "
            f"{len(roster)} member(s), {len(trip.expenses)} expense(s)"
        )

        result = strategy_impl.settle(trip.expenses, roster)

        logger.info(
            f"Trip {trip_id}: {len(result.settlements)} settlement(s), "
            f"total expenses {result.total_expenses}"
        )
        return result

    def compare_strategies(self, trip_id: str) -> StrategyComparison:
        """
        Run both strategies over the same trip.

        The two strategies must agree on every member's net balance; a
        mismatch is reported through ``balances_agree`` and logged.
        """
        trip = self.store.get_trip(trip_id)
        roster = trip.roster()

        greedy = NetBalanceGreedy().settle(trip.expenses, roster)
        direct = DirectPairwiseNetting().settle(trip.expenses, roster)

        balances_agree = greedy.net_balances == direct.net_balances
        if not balances_agree:
            logger.warning(
                f"Trip {trip_id}: strategies disagree on net balances "
                f"(greedy={greedy.net_balances}, direct={direct.net_balances})"
            )

        return StrategyComparison(
            trip_id=trip_id,
            greedy=greedy,
            direct=direct,
            balances_agree=balances_agree,
        )

    def summarize_trip(self, trip_id: str) -> TripSummary:
        """Break down a trip's spending by category and by payer."""
        trip = self.store.get_trip(trip_id)
        summary = summarize_spending(trip.id, trip.expenses, trip.roster())
        logger.info(
            f"Trip {trip_id}: total spent {summary.total_spent} "
            f"over {summary.expense_count} expense(s)"
        )
        return summary
