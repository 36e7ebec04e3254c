# Custom exceptions to be used throughout the project.
from datetime import date
from typing import Iterable, List


class ParkdudeError(Exception):
    """
    Base class for every reported failure of a reservation call.
    None of these are fatal: the HTTP layer renders them with status_code and to_data().
    """
    status_code = 400
    message = "Request failed."

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_data(self):
        return {"message": self.message}


class ValidationError(ParkdudeError):
    status_code = 400


class MissingDateRange(ValidationError):
    message = "startDate and endDate are required."


class InvalidDate(ValidationError):
    message = "Date must be valid."


class RangeInverted(ValidationError):
    # The wording is what clients already match against.
    message = "Start date must be after end date."


class RangeTooLong(ValidationError):
    message = "Date range is too long (over 500 days)."


class MissingDates(ValidationError):
    message = "dates is required."


class InvalidDateFormat(ValidationError):
    message = "Dates must be in format YYYY-MM-DD."


class SpotValidationError(ValidationError):
    """
    Raised when the input for creating or updating a parking spot is invalid.
    Carries every failed rule so the client can display them all at once.
    """
    def __init__(self, error_messages: List[str]):
        self.error_messages = list(error_messages)
        super().__init__("Validation failed:\n" + "\n".join(self.error_messages))

    def to_data(self):
        return {"message": self.message, "errorMessages": self.error_messages}


class NotFoundError(ParkdudeError):
    status_code = 404
    message = "Not found."


class SpotNotFound(NotFoundError):
    message = "Parking spot does not exist. It might have been removed."


class UserNotFound(NotFoundError):
    message = "User does not exist."


class PermissionDeniedError(ParkdudeError):
    status_code = 403
    message = "Permission denied."


class AllocationFailure(ParkdudeError):
    """
    Some of the requested days could not be satisfied. Nothing was written for any of the days.
    """
    status_code = 400

    def __init__(self, error_dates: Iterable[date], message=None):
        self.error_dates = sorted(set(error_dates))
        super().__init__(message)

    def to_data(self):
        return {"message": self.message, "errorDates": [day.isoformat() for day in self.error_dates]}


class ReservationFailed(AllocationFailure):
    message = "Reservation failed. There weren't available spots for some of the days."


class ReleaseFailed(AllocationFailure):
    message = "Parking spot does not have reservation, and cannot be released."


class ConflictError(Exception):
    """
    To be raised by a repository when a write raced past the availability check, either because
    the re-check inside the transaction failed or because a unique constraint was violated.
    The service converts it into the matching AllocationFailure.
    """
    def __init__(self, error_dates: Iterable[date]):
        self.error_dates = sorted(set(error_dates))
        super().__init__(f"Conflicting writes for dates: {', '.join(d.isoformat() for d in self.error_dates)}")
