"""
Runs the reservation engine against a repository and hands the results to a notifier.

Every write call follows the same steps:
1. validate input and resolve spot / user (before any transaction writes)
2. open one repository transaction, load the spot state, compute the mutations, apply them
3. after commit, send the notification messages; failing to notify does not undo the write
"""
from datetime import date
from typing import Callable
import logging
from . import allocator
from .availability import load_spot_state
from .calendar import Calendar, ReservationListing, all_reservations, build_calendar, my_reservations
from .entities import ParkingSpot, User
from .error_utils import (ConflictError, PermissionDeniedError, ReleaseFailed, ReservationFailed,
                          SpotNotFound, UserNotFound)
from .reservation_utils import parse_reservation_dates, resolve_listing_range, validate_calendar_range

logger = logging.getLogger(__name__)


class ReservationService:

    def __init__(self, repository, notifier, today: Callable[[], date] = date.today):
        self.repository = repository
        self.notifier = notifier
        self.today = today

    # Reads

    def get_calendar(self, raw_start, raw_end, acting_user: User, spot_id=None) -> Calendar:
        start, end = validate_calendar_range(raw_start, raw_end)
        with self.repository.transaction():
            spot = self._find_spot(spot_id) if spot_id is not None else None
            state = load_spot_state(self.repository, start, end)
        return build_calendar(start, end, acting_user, state, spot_filter=spot)

    def get_my_reservations(self, raw_start, raw_end, acting_user: User) -> ReservationListing:
        start, end = resolve_listing_range(raw_start, raw_end, self.today())
        with self.repository.transaction():
            state = load_spot_state(self.repository, start, end)
        return my_reservations(start, end, acting_user, state)

    def get_all_reservations(self, raw_start, raw_end, spot_id=None, user_id=None) -> ReservationListing:
        start, end = resolve_listing_range(raw_start, raw_end, self.today())
        with self.repository.transaction():
            spot = self._find_spot(spot_id) if spot_id is not None else None
            user = self._find_user(user_id) if user_id is not None else None
            state = load_spot_state(self.repository, start, end)
        return all_reservations(start, end, state, spot_filter=spot, user_filter=user)

    # Writes

    def reserve_spots(self, raw_dates, acting_user: User, spot_id=None, user_id=None) -> allocator.ReservationResult:
        """
        Reserves a spot for every date, for acting_user or, when user_id is given, for that user.
        Reserving for someone else requires the admin role.

        Raises MissingDates, InvalidDateFormat, PermissionDeniedError, SpotNotFound, UserNotFound or ReservationFailed.
        """
        dates = parse_reservation_dates(raw_dates)
        with self.repository.transaction():
            target_user = self._resolve_target_user(acting_user, user_id)
            pinned_spot = self._find_spot(spot_id) if spot_id is not None else None
            state = load_spot_state(self.repository, dates[0], dates[-1])
            if pinned_spot is not None:
                pinned_spot = state.get_spot(pinned_spot.id)
            result = allocator.reserve(dates, target_user, state, pinned_spot=pinned_spot)
            try:
                self.repository.apply_mutations(result.mutations)
            except ConflictError as e:
                logger.error("Reservation for %s lost a race on %s", target_user.email, e.error_dates)
                raise ReservationFailed(e.error_dates)
        logger.info("Reserved %s for %s", [(day.isoformat(), spot.name) for day, spot in result.assignments], target_user.email)
        self._notify(result.messages)
        return result

    def release_spots(self, spot_id, raw_dates, acting_user: User) -> allocator.ReleaseResult:
        """
        Releases spot on every date: deletes the reservation held that day, or frees an owned spot.
        Admins may release on behalf of anyone.

        Raises MissingDates, InvalidDateFormat, SpotNotFound or ReleaseFailed.
        """
        dates = parse_reservation_dates(raw_dates)
        with self.repository.transaction():
            spot = self._find_spot(spot_id)
            state = load_spot_state(self.repository, dates[0], dates[-1])
            result = allocator.release(dates, state.get_spot(spot.id), acting_user, state,
                                       may_act_for_others=acting_user.is_admin)
            try:
                self.repository.apply_mutations(result.mutations)
            except ConflictError as e:
                logger.error("Release of %s lost a race on %s", spot.name, e.error_dates)
                raise ReleaseFailed(e.error_dates)
        logger.info("Released %s on %s by %s", spot.name, [day.isoformat() for day in dates], acting_user.email)
        self._notify(result.messages)
        return result

    # Helpers

    def _resolve_target_user(self, acting_user: User, user_id) -> User:
        if user_id is None or str(user_id) == str(acting_user.id):
            return acting_user
        if not acting_user.is_admin:
            raise PermissionDeniedError()
        return self._find_user(user_id)

    def _find_spot(self, spot_id) -> ParkingSpot:
        spot = self.repository.get_spot(spot_id)
        if spot is None:
            raise SpotNotFound()
        return spot

    def _find_user(self, user_id) -> User:
        user = self.repository.get_user(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _notify(self, messages):
        for message in messages:
            try:
                self.notifier.send(message)
            except Exception as e:
                # Committed writes stay committed
                logger.error(f"Notification failed: {e.args}")
