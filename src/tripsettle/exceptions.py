"""Custom exceptions for tripsettle."""


class TripSettleError(Exception):
    """Base exception for all tripsettle errors."""

    pass


class ConfigurationError(TripSettleError):
    """Raised when configuration is invalid or missing."""

    pass


class InvalidExpenseError(TripSettleError):
    """Raised when expense input is malformed and cannot be settled."""

    def __init__(self, message: str, expense_index: int | None = None):
        self.expense_index = expense_index
        if expense_index is not None:
            message = f"Expense #{expense_index}: {message}"
        super().__init__(message)


class UnknownMemberError(InvalidExpenseError):
    """Raised when an expense references a member outside the trip roster."""

    def __init__(self, member_id: str, expense_index: int | None = None):
        self.member_id = member_id
        super().__init__(
            f"member '{member_id}' is not part of the trip roster", expense_index
        )


class SettlementInvariantViolation(TripSettleError):
    """Raised when computed balances or settlements fail to zero out.

    This signals a defect in the settlement engine (or corrupted upstream
    data), never a bad caller input.
    """

    def __init__(self, message: str, residuals: dict[str, int] | None = None):
        self.residuals = residuals or {}
        super().__init__(message)


class UnknownStrategyError(TripSettleError):
    """Raised when a settlement strategy name is not registered."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        super().__init__(
            f"Unknown settlement strategy '{name}'. "
            f"Available: {', '.join(available)}"
        )


class TripNotFoundError(TripSettleError):
    """Raised when the trip data source has no trip with the given id."""

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip '{trip_id}' not found")
