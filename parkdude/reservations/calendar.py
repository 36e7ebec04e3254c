"""
Calendar and listing views over parking spot reservations.

Calendar:
Input: date range, the user looking at it, optionally a single spot
Output: for each day the spots the user holds that day and how many spots are still free

Listings:
Input: date range (start defaults to today, end is optional), and whose reservations to list
Output: reservations and releases ordered by date
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from .availability import AvailabilityOracle, SpotState
from .entities import DayRelease, DayReservation, ParkingSpot, User
from .reservation_utils import iterate_days, resolve_listing_range, validate_calendar_range


@dataclass
class CalendarDay:
    date: date
    spaces_reserved_by_user: List[ParkingSpot]
    available_spaces: int

    def to_data(self):
        return {
            "date": self.date.isoformat(),
            "spacesReservedByUser": [spot.to_basic_parking_spot_data() for spot in self.spaces_reserved_by_user],
            "availableSpaces": self.available_spaces,
        }


@dataclass
class Calendar:
    calendar: List[CalendarDay]
    owned_spots: List[ParkingSpot]

    def to_data(self):
        return {
            "calendar": [day.to_data() for day in self.calendar],
            "ownedSpots": [spot.to_basic_parking_spot_data() for spot in self.owned_spots],
        }


@dataclass
class ReleaseEntry:
    release: DayRelease
    # Reservation that consumed the released day, if any
    reservation: Optional[DayReservation]

    def to_data(self):
        return {
            "date": self.release.date.isoformat(),
            "parkingSpot": self.release.spot.to_basic_parking_spot_data(),
            "reservation": {"user": self.reservation.user.to_user_data()} if self.reservation else None,
        }


@dataclass
class ReservationListing:
    reservations: List[DayReservation]
    releases: List[ReleaseEntry]
    owned_spots: Optional[List[ParkingSpot]] = None
    include_users: bool = False

    def to_data(self):
        reservations = []
        for reservation in self.reservations:
            data = {"date": reservation.date.isoformat(), "parkingSpot": reservation.spot.to_basic_parking_spot_data()}
            if self.include_users:
                data["user"] = reservation.user.to_user_data()
            reservations.append(data)
        data = {"reservations": reservations, "releases": [entry.to_data() for entry in self.releases]}
        if self.owned_spots is not None:
            data["ownedSpots"] = [spot.to_basic_parking_spot_data() for spot in self.owned_spots]
        return data


def build_calendar(raw_start, raw_end, acting_user: User, state: SpotState,
                   spot_filter: Optional[ParkingSpot] = None) -> Calendar:
    """
    Builds the availability calendar for acting_user.

    spacesReservedByUser covers every spot: the user's permanent spots they occupy that day, and
    spots they reserved. The spot filter only narrows the availableSpaces count.

    Raises MissingDateRange, InvalidDate, RangeInverted or RangeTooLong for a bad range.
    """
    start, end = validate_calendar_range(raw_start, raw_end)
    oracle = AvailabilityOracle(state)
    candidates = [spot_filter] if spot_filter is not None else state.spots

    days = []
    for day in iterate_days(start, end):
        reserved_by_user = [
            spot for spot in state.spots
            if (spot.is_owned_by(acting_user) and oracle.is_occupied_by_owner(spot, day))
            or oracle.is_reserved_by(spot, day, acting_user)
        ]
        available = sum(1 for spot in candidates if oracle.is_free(spot, day))
        days.append(CalendarDay(date=day, spaces_reserved_by_user=reserved_by_user, available_spaces=available))
    return Calendar(calendar=days, owned_spots=state.owned_spots(acting_user))


def _in_range(day: date, start: date, end: Optional[date]) -> bool:
    return day >= start and (end is None or day <= end)


def _by_date(row):
    return (row.date, row.spot.sequence)


def _release_entries(releases: List[DayRelease], state: SpotState) -> List[ReleaseEntry]:
    return [ReleaseEntry(release=release, reservation=state.reservation_for(release.spot, release.date))
            for release in sorted(releases, key=_by_date)]


def my_reservations(raw_start, raw_end, acting_user: User, state: SpotState,
                    today: Optional[date] = None) -> ReservationListing:
    start, end = resolve_listing_range(raw_start, raw_end, today)
    reservations = sorted(
        (reservation for reservation in state.reservations
         if reservation.user.id == acting_user.id and _in_range(reservation.date, start, end)),
        key=_by_date)
    releases = [release for release in state.releases
                if release.spot.is_owned_by(acting_user) and _in_range(release.date, start, end)]
    return ReservationListing(reservations=reservations, releases=_release_entries(releases, state),
                              owned_spots=state.owned_spots(acting_user))


def all_reservations(raw_start, raw_end, state: SpotState, spot_filter: Optional[ParkingSpot] = None,
                     user_filter: Optional[User] = None, today: Optional[date] = None) -> ReservationListing:
    """
    Administrative listing across all users.

    With user_filter the result is what that user sees as their own reservations, owned spots
    included. spot_filter narrows the reservations and releases in both views.
    """
    start, end = resolve_listing_range(raw_start, raw_end, today)
    if user_filter is not None:
        listing = my_reservations(start, end, user_filter, state)
        if spot_filter is not None:
            listing.reservations = [reservation for reservation in listing.reservations
                                    if reservation.spot.id == spot_filter.id]
            listing.releases = [entry for entry in listing.releases if entry.release.spot.id == spot_filter.id]
        return listing

    reservations = [reservation for reservation in state.reservations if _in_range(reservation.date, start, end)]
    releases = [release for release in state.releases if _in_range(release.date, start, end)]
    if spot_filter is not None:
        reservations = [reservation for reservation in reservations if reservation.spot.id == spot_filter.id]
        releases = [release for release in releases if release.spot.id == spot_filter.id]
    return ReservationListing(reservations=sorted(reservations, key=_by_date),
                              releases=_release_entries(releases, state), include_users=True)
