"""tripsettle - Settle shared trip expenses with exact integer arithmetic."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .models import (
    Expense,
    Settlement,
    SettlementResult,
    SplitType,
    Trip,
    TripSummary,
)
from .settle.analytics import summarize_spending
from .settle.service import SettlementService
from .settle.strategies import (
    DirectPairwiseNetting,
    NetBalanceGreedy,
    SettlementStrategy,
    compute_direct_debt_settlement,
    compute_net_balance_settlement,
    compute_settlement,
    get_strategy,
)
from .store import InMemoryTripStore, JsonTripStore, TripStore

__all__ = [
    "Settings",
    "load_settings",
    "Expense",
    "Settlement",
    "SettlementResult",
    "SplitType",
    "Trip",
    "TripSummary",
    "SettlementService",
    "DirectPairwiseNetting",
    "NetBalanceGreedy",
    "SettlementStrategy",
    "compute_direct_debt_settlement",
    "compute_net_balance_settlement",
    "compute_settlement",
    "get_strategy",
    "summarize_spending",
    "InMemoryTripStore",
    "JsonTripStore",
    "TripStore",
]
