# Compression of date sets into readable ranges for notification messages
from datetime import date, timedelta
from typing import Iterable, List, Sequence, Tuple

DISPLAY_FORMAT = '%d.%m.%Y'


def format_display_date(day: date) -> str:
    return day.strftime(DISPLAY_FORMAT)


def consecutive_runs(dates: Iterable[date]) -> List[List[date]]:
    """
    Splits the dates into runs of calendar-consecutive days, in ascending order.
    """
    runs = []
    for day in sorted(set(dates)):
        if runs and day - runs[-1][-1] == timedelta(days=1):
            runs[-1].append(day)
        else:
            runs.append([day])
    return runs


def compress_dates(dates: Iterable[date]) -> List[str]:
    """
    Collapses a set of distinct dates into display ranges.

    Example: {1.11, 2.11, 3.11, 5.11} -> ['01.11.2019 - 03.11.2019', '05.11.2019']
    A run of two days is still shown as a range.
    """
    ranges = []
    for run in consecutive_runs(dates):
        if len(run) == 1:
            ranges.append(format_display_date(run[0]))
        else:
            ranges.append(f"{format_display_date(run[0])} - {format_display_date(run[-1])}")
    return ranges


def render_reservation_message(user_name: str, assignments: Sequence[Tuple[date, object]]) -> str:
    """
    Message sent after a successful reservation.

    Assignments are walked in date order; a new line starts whenever the spot changes, so
    a spot used on separate stretches appears once per stretch.
    """
    lines = [f"Reservations made by {user_name}:"]
    segments = []
    for day, spot in sorted(assignments, key=lambda assignment: assignment[0]):
        if segments and segments[-1][0].id == spot.id:
            segments[-1][1].append(day)
        else:
            segments.append((spot, [day]))
    for spot, days in segments:
        for date_range in compress_dates(days):
            lines.append(f"• Parking spot {spot.name}: {date_range}")
    return "\n".join(lines)


def render_release_message(spot_name: str, dates: Iterable[date]) -> str:
    lines = [f"Parking spot {spot_name} released for reservation:"]
    lines.extend(f"• {date_range}" for date_range in compress_dates(dates))
    return "\n".join(lines)
