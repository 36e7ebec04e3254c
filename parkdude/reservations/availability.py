"""
Availability of parking spots per day.

A spot's state on a day is never stored as a flag. It is derived from three facts:
  1. whether a reservation exists for (spot, date)
  2. whether the owner released the spot for that date
  3. who owns the spot, if anyone

SpotState holds a snapshot of those facts as loaded by a repository. AvailabilityOracle
answers questions against one snapshot and never mutates it.
"""
from collections import Counter
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID
from .entities import DayRelease, DayReservation, ParkingSpot, User
from .reservation_utils import iterate_days


class SpotState:

    def __init__(self, spots: Iterable[ParkingSpot], reservations: Iterable[DayReservation] = (),
                 releases: Iterable[DayRelease] = (), reservation_counts: Optional[Dict[UUID, int]] = None):
        self.spots = sorted(spots, key=lambda spot: spot.sequence)
        self._spots_by_id = {spot.id: spot for spot in self.spots}
        self._reservations = {reservation.key: reservation for reservation in reservations}
        self._releases = {release.key: release for release in releases}
        # Counts over every reservation in the system, not only the loaded range
        if reservation_counts is None:
            reservation_counts = Counter(spot_id for spot_id, _ in self._reservations)
        self.reservation_counts = dict(reservation_counts)

    def get_spot(self, spot_id) -> Optional[ParkingSpot]:
        return self._spots_by_id.get(spot_id)

    def reservation_for(self, spot: ParkingSpot, day: date) -> Optional[DayReservation]:
        return self._reservations.get((spot.id, day))

    def release_for(self, spot: ParkingSpot, day: date) -> Optional[DayRelease]:
        return self._releases.get((spot.id, day))

    def is_released(self, spot: ParkingSpot, day: date) -> bool:
        return (spot.id, day) in self._releases

    def reservation_count(self, spot: ParkingSpot) -> int:
        return self.reservation_counts.get(spot.id, 0)

    def owned_spots(self, user: User) -> List[ParkingSpot]:
        return [spot for spot in self.spots if spot.is_owned_by(user)]

    @property
    def reservations(self) -> List[DayReservation]:
        return list(self._reservations.values())

    @property
    def releases(self) -> List[DayRelease]:
        return list(self._releases.values())


def load_spot_state(repository, start: Optional[date] = None, end: Optional[date] = None) -> SpotState:
    """
    Snapshot of every spot plus the reservations and releases between start and end (both optional).
    Call inside repository.transaction() when the snapshot is used to decide a write.
    """
    return SpotState(repository.list_spots(),
                     repository.list_reservations(start=start, end=end),
                     repository.list_releases(start=start, end=end),
                     repository.count_reservations_by_spot())


class AvailabilityOracle:

    def __init__(self, state: SpotState):
        self.state = state

    def is_available(self, spot: ParkingSpot, day: date, acting_user: User) -> bool:
        """
        Whether acting_user may reserve spot on day.

        A reserved day is unavailable to everyone, the holder included. A pool spot is
        otherwise free. An owned spot is only reservable on released days, by the owner
        (reclaiming the day) as well as by anyone else.
        """
        if self.state.reservation_for(spot, day) is not None:
            return False
        if spot.owner is None:
            return True
        # The owner never reserves a day that was never released: it is already theirs.
        return self.state.is_released(spot, day)

    def is_occupied_by_owner(self, spot: ParkingSpot, day: date) -> bool:
        if spot.owner is None or self.state.is_released(spot, day):
            return False
        reservation = self.state.reservation_for(spot, day)
        return reservation is None or reservation.user.id == spot.owner.id

    def is_free(self, spot: ParkingSpot, day: date) -> bool:
        """
        Availability as seen by someone who owns nothing: used to count free spots in the calendar.
        """
        if self.state.reservation_for(spot, day) is not None:
            return False
        return spot.owner is None or self.state.is_released(spot, day)

    def is_reserved_by(self, spot: ParkingSpot, day: date, user: User) -> bool:
        reservation = self.state.reservation_for(spot, day)
        return reservation is not None and reservation.user.id == user.id

    def available_days(self, spot: ParkingSpot, start: date, end: date, acting_user: User) -> List[Tuple[date, bool]]:
        return [(day, self.is_available(spot, day, acting_user)) for day in iterate_days(start, end)]
