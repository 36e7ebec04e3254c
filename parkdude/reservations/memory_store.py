"""
In-memory repository with the same contract as DatabasePersistence.
To run the app without Postgres, create one instance and set REPOSITORY_FACTORY to a callable
returning it, e.g. `lambda: store`. The factory runs once per request.
"""
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID
import logging
import threading
from .allocator import MutationSet, verify_mutations
from .availability import load_spot_state
from .entities import DayRelease, DayReservation, ParkingSpot, User
from .error_utils import ConflictError

logger = logging.getLogger(__name__)


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    return (start is None or day >= start) and (end is None or day <= end)


class InMemoryPersistence:

    def __init__(self):
        # Re-entrant so a service transaction can call apply_mutations, which opens its own
        self._lock = threading.RLock()
        self._users: Dict[UUID, User] = {}
        self._spots: Dict[UUID, ParkingSpot] = {}
        # Rows are stored by id so listings always reflect the current spot and user
        self._reservations: Dict[Tuple[UUID, date], UUID] = {}
        self._releases: Set[Tuple[UUID, date]] = set()
        self._last_sequence = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            yield self

    # Users

    def add_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
        return user

    def get_user(self, user_id) -> Optional[User]:
        return self._users.get(_as_uuid(user_id))

    def find_user_by_email(self, email: str) -> Optional[User]:
        return next((user for user in self._users.values() if user.email == email), None)

    # Parking spots

    def list_spots(self) -> List[ParkingSpot]:
        return sorted((self._current_spot(spot) for spot in self._spots.values()), key=lambda spot: spot.sequence)

    def get_spot(self, spot_id) -> Optional[ParkingSpot]:
        spot = self._spots.get(_as_uuid(spot_id))
        return self._current_spot(spot) if spot else None

    def create_spot(self, name: str, owner: Optional[User] = None) -> ParkingSpot:
        with self._lock:
            self._last_sequence += 1
            spot = ParkingSpot(name=name, sequence=self._last_sequence, owner=owner)
            self._spots[spot.id] = spot
        logger.info("Created parking spot %s", spot.name)
        return spot

    def update_spot(self, spot_id, name: str, owner: Optional[User]) -> Optional[ParkingSpot]:
        with self._lock:
            spot = self._spots.get(_as_uuid(spot_id))
            if spot is None:
                return None
            spot = replace(spot, name=name, owner=owner, updated=datetime.now(timezone.utc))
            self._spots[spot.id] = spot
        return spot

    def delete_spot(self, spot_id) -> bool:
        spot_id = _as_uuid(spot_id)
        with self._lock:
            if self._spots.pop(spot_id, None) is None:
                return False
            self._reservations = {key: user_id for key, user_id in self._reservations.items() if key[0] != spot_id}
            self._releases = {key for key in self._releases if key[0] != spot_id}
        return True

    # Reservations and releases

    def list_reservations(self, start=None, end=None, spot_id=None, user_id=None) -> List[DayReservation]:
        rows = []
        for (row_spot_id, day), row_user_id in self._reservations.items():
            if not _in_range(day, start, end):
                continue
            if spot_id is not None and str(row_spot_id) != str(spot_id):
                continue
            if user_id is not None and str(row_user_id) != str(user_id):
                continue
            rows.append(DayReservation(date=day, spot=self.get_spot(row_spot_id), user=self._users[row_user_id]))
        return sorted(rows, key=lambda row: (row.date, row.spot.sequence))

    def list_releases(self, start=None, end=None, spot_id=None, owner_id=None) -> List[DayRelease]:
        rows = []
        for row_spot_id, day in self._releases:
            spot = self.get_spot(row_spot_id)
            if not _in_range(day, start, end):
                continue
            if spot_id is not None and str(row_spot_id) != str(spot_id):
                continue
            if owner_id is not None and str(spot.owner_id) != str(owner_id):
                continue
            rows.append(DayRelease(date=day, spot=spot))
        return sorted(rows, key=lambda row: (row.date, row.spot.sequence))

    def count_reservations_by_spot(self) -> Dict[UUID, int]:
        return dict(Counter(spot_id for spot_id, _ in self._reservations))

    def add_reservation(self, day: date, spot: ParkingSpot, user: User) -> DayReservation:
        """Raw insert honouring the (spot, date) uniqueness, without availability rules."""
        with self._lock:
            if (spot.id, day) in self._reservations:
                raise ConflictError([day])
            self._reservations[(spot.id, day)] = user.id
        return DayReservation(date=day, spot=spot, user=user)

    def add_release(self, day: date, spot: ParkingSpot) -> DayRelease:
        with self._lock:
            if (spot.id, day) in self._releases:
                raise ConflictError([day])
            self._releases.add((spot.id, day))
        return DayRelease(date=day, spot=spot)

    def apply_mutations(self, mutations: MutationSet):
        """
        Writes a mutation set atomically. The set is re-checked against the current rows first and
        nothing is written when any of it conflicts.

        Raises ConflictError with the conflicting dates.
        """
        if mutations.is_empty():
            return
        dates = mutations.dates
        with self.transaction():
            state = load_spot_state(self, dates[0], dates[-1])
            conflicts = verify_mutations(mutations, state)
            if conflicts:
                logger.error("Mutation conflicts on dates %s", conflicts)
                raise ConflictError(conflicts)
            for reservation in mutations.reservations_to_delete:
                del self._reservations[reservation.key]
            for day_release in mutations.releases_to_delete:
                self._releases.discard(day_release.key)
            for reservation in mutations.reservations_to_create:
                self._reservations[reservation.key] = reservation.user.id
            for day_release in mutations.releases_to_create:
                self._releases.add(day_release.key)

    def _current_spot(self, spot: ParkingSpot) -> ParkingSpot:
        # The owner may have been replaced since the spot was stored
        if spot.owner is not None and spot.owner.id in self._users and self._users[spot.owner.id] != spot.owner:
            return replace(spot, owner=self._users[spot.owner.id])
        return spot


def _as_uuid(value) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
