"""Trip data sources consumed by the settlement service."""

import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .exceptions import InvalidExpenseError, TripNotFoundError
from .models import Trip

logger = logging.getLogger(__name__)


class TripStore(Protocol):
    """Read access to trips, each already scoped with its members and expenses."""

    def get_trip(self, trip_id: str) -> Trip: ...

    def list_trips(self) -> list[Trip]: ...


class JsonTripStore:
    """Trip exports stored as ``<trip_id>.json`` files in one directory."""

    def __init__(self, directory: Path):
        """Initialize the store; the directory is created if missing."""
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, trip_id: str) -> Path:
        # Trip ids are opaque; keep them from escaping the directory
        if not trip_id or "/" in trip_id or "\\" in trip_id or trip_id.startswith("."):
            raise TripNotFoundError(trip_id)
        return self.directory / f"{trip_id}.json"

    def _load(self, path: Path) -> Trip:
        try:
            return Trip.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise InvalidExpenseError(f"Malformed trip file {path.name}: {e}") from e

    def get_trip(self, trip_id: str) -> Trip:
        """Load a trip by id."""
        path = self._path_for(trip_id)
        if not path.exists():
            raise TripNotFoundError(trip_id)
        trip = self._load(path)
        logger.debug(f"Loaded trip {trip_id} from {path}")
        return trip

    def list_trips(self) -> list[Trip]:
        """Load every trip file, sorted by file name."""
        return [self._load(path) for path in sorted(self.directory.glob("*.json"))]

    def save_trip(self, trip: Trip) -> Path:
        """Write a trip export, replacing any existing file."""
        path = self._path_for(trip.id)
        path.write_text(
            trip.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
        )
        return path


class InMemoryTripStore:
    """Trips held in a dict, for tests and embedding callers."""

    def __init__(self, trips: list[Trip] | None = None):
        self.trips = {trip.id: trip for trip in trips or []}

    def get_trip(self, trip_id: str) -> Trip:
        try:
            return self.trips[trip_id]
        except KeyError:
            raise TripNotFoundError(trip_id) from None

    def list_trips(self) -> list[Trip]:
        return list(self.trips.values())
