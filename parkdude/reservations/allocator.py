"""
Spot allocation for reserve and release requests.

Problem:

Given the days a user asks for, and optionally the spot they want, pick a spot for each day.
Either every day gets a spot or nothing is written at all.

Algorithm (reserve):
1. Candidates are the pinned spot, or every spot.
2. Order candidates by how many reservations they hold in the whole system, fewest first.
   Ties keep the spot creation order.
3. For each day pick the first candidate available to the user on that day.
4. Any day without a spot fails the whole request.
5. An owner taking back a day they released deletes the release instead of creating a reservation.

The functions here only compute. Repositories apply the returned MutationSet inside one transaction
and use verify_mutations() to re-check it against fresh rows before writing.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple
from .availability import AvailabilityOracle, SpotState
from .date_ranges import render_release_message, render_reservation_message
from .entities import DayRelease, DayReservation, ParkingSpot, User
from .error_utils import ReleaseFailed, ReservationFailed

logger = logging.getLogger(__name__)


@dataclass
class MutationSet:
    reservations_to_create: List[DayReservation] = field(default_factory=list)
    reservations_to_delete: List[DayReservation] = field(default_factory=list)
    releases_to_create: List[DayRelease] = field(default_factory=list)
    releases_to_delete: List[DayRelease] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.reservations_to_create or self.reservations_to_delete
                    or self.releases_to_create or self.releases_to_delete)

    @property
    def spot_ids(self):
        rows = (self.reservations_to_create + self.reservations_to_delete
                + self.releases_to_create + self.releases_to_delete)
        return sorted({row.spot.id for row in rows}, key=str)

    @property
    def dates(self):
        rows = (self.reservations_to_create + self.reservations_to_delete
                + self.releases_to_create + self.releases_to_delete)
        return sorted({row.date for row in rows})


@dataclass
class ReservationResult:
    assignments: List[Tuple[date, ParkingSpot]]
    mutations: MutationSet
    messages: List[str]

    def to_data(self):
        return [{"date": day.isoformat(), "parkingSpot": spot.to_basic_parking_spot_data()}
                for day, spot in self.assignments]


@dataclass
class ReleaseResult:
    spot: ParkingSpot
    dates: List[date]
    mutations: MutationSet
    messages: List[str]


def preference_order(candidates: Iterable[ParkingSpot], state: SpotState) -> List[ParkingSpot]:
    # sorted() is stable, and candidates arrive in sequence order
    return sorted(sorted(candidates, key=lambda spot: spot.sequence), key=state.reservation_count)


def reserve(dates: Iterable[date], acting_user: User, state: SpotState,
            pinned_spot: Optional[ParkingSpot] = None) -> ReservationResult:
    """
    Assigns a spot to every requested date for acting_user.

    Returns: ReservationResult with the (date, spot) assignments in date order, the rows to write and
    the notification message.
    Raises ReservationFailed carrying every date that had no available spot.
    """
    oracle = AvailabilityOracle(state)
    candidates = [pinned_spot] if pinned_spot is not None else state.spots
    ordered = preference_order(candidates, state)

    assignments = []
    failed_dates = []
    for day in sorted(set(dates)):
        spot = next((spot for spot in ordered if oracle.is_available(spot, day, acting_user)), None)
        if spot is None:
            failed_dates.append(day)
        else:
            assignments.append((day, spot))

    if failed_dates:
        logger.info("Reservation failed for %s on dates %s", acting_user.email, failed_dates)
        raise ReservationFailed(failed_dates)

    mutations = MutationSet()
    for day, spot in assignments:
        release = state.release_for(spot, day)
        if spot.is_owned_by(acting_user) and release is not None:
            mutations.releases_to_delete.append(release)
        else:
            # A release consumed by someone else stays as provenance
            mutations.reservations_to_create.append(DayReservation(date=day, spot=spot, user=acting_user))

    message = render_reservation_message(acting_user.name, assignments)
    return ReservationResult(assignments=assignments, mutations=mutations, messages=[message])


def release(dates: Iterable[date], spot: ParkingSpot, acting_user: User, state: SpotState,
            may_act_for_others: bool = False) -> ReleaseResult:
    """
    Gives up spot on the requested dates.

    For each date, one of:
      1. the reservation held on that day is deleted, if it is the acting user's or the caller may act for others
      2. an owned spot without reservation gets a release, if the acting user owns it or may act for others
      3. otherwise the date fails

    Raises ReleaseFailed carrying every failed date.
    """
    requested = sorted(set(dates))
    mutations = MutationSet()
    failed_dates = []
    for day in requested:
        reservation = state.reservation_for(spot, day)
        if reservation is not None:
            if reservation.user.id == acting_user.id or may_act_for_others:
                mutations.reservations_to_delete.append(reservation)
            else:
                failed_dates.append(day)
        elif spot.owner is not None and (spot.is_owned_by(acting_user) or may_act_for_others) \
                and not state.is_released(spot, day):
            mutations.releases_to_create.append(DayRelease(date=day, spot=spot))
        else:
            failed_dates.append(day)

    if failed_dates:
        logger.info("Release of %s failed for %s on dates %s", spot.name, acting_user.email, failed_dates)
        raise ReleaseFailed(failed_dates)

    message = render_release_message(spot.name, requested)
    return ReleaseResult(spot=spot, dates=requested, mutations=mutations, messages=[message])


def verify_mutations(mutations: MutationSet, state: SpotState) -> List[date]:
    """
    Re-checks a mutation set against freshly loaded rows, right before writing.

    Returns: the dates whose preconditions no longer hold. Empty list means the set can be written.
    """
    conflicts = set()
    for reservation in mutations.reservations_to_create:
        spot = state.get_spot(reservation.spot.id)
        if spot is None or not AvailabilityOracle(state).is_available(spot, reservation.date, reservation.user):
            conflicts.add(reservation.date)
    for reservation in mutations.reservations_to_delete:
        current = state.reservation_for(reservation.spot, reservation.date)
        if current is None or current.user.id != reservation.user.id:
            conflicts.add(reservation.date)
    for day_release in mutations.releases_to_create:
        if state.is_released(day_release.spot, day_release.date) \
                or state.reservation_for(day_release.spot, day_release.date) is not None:
            conflicts.add(day_release.date)
    for day_release in mutations.releases_to_delete:
        if not state.is_released(day_release.spot, day_release.date) \
                or state.reservation_for(day_release.spot, day_release.date) is not None:
            conflicts.add(day_release.date)
    return sorted(conflicts)
