"""
Medication Scheduler Tool
Turns a dosing frequency into the ordered set of daily reminder times
"""

from typing import List, Union
from dataclasses import dataclass, field
from datetime import datetime, time

from config import scheduling_config
from exceptions import ScheduleValidationError


HOURS_PER_DAY = 24
CLOCK_FORMAT = "%H:%M"


@dataclass(frozen=True)
class DoseSchedule:
    """Daily schedule derived from a first dose time and a frequency"""
    first_dose_time: time
    frequency_count: int
    interval_hours: int
    reminder_times: List[time] = field(default_factory=list)

    @property
    def reminder_time_strings(self) -> List[str]:
        return format_reminder_times(self.reminder_times)


def validate_frequency(frequency_count: int) -> int:
    """Reject frequencies outside the supported doses-per-day range"""
    if isinstance(frequency_count, bool) or not isinstance(frequency_count, int):
        raise ScheduleValidationError(f"Frequency must be an integer, got {frequency_count!r}")
    if not scheduling_config.MIN_FREQUENCY <= frequency_count <= scheduling_config.MAX_FREQUENCY:
        raise ScheduleValidationError(
            f"Frequency must be between {scheduling_config.MIN_FREQUENCY} and "
            f"{scheduling_config.MAX_FREQUENCY} doses per day, got {frequency_count}"
        )
    return frequency_count


def parse_clock_time(value: Union[str, time]) -> time:
    """
    Parse a wall-clock time.

    Accepts a time object or a string like 'HH:MM' or 'HH:MM:SS'. Seconds
    and sub-second parts are dropped since doses are scheduled per minute.
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, str):
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                return datetime.strptime(value.strip(), fmt).time().replace(second=0)
            except ValueError:
                continue
    raise ScheduleValidationError(f"Cannot parse clock time: {value!r}")


def calculate_interval_hours(frequency_count: int) -> int:
    """Whole hours between doses; the remainder of 24 / n is dropped"""
    return HOURS_PER_DAY // frequency_count


def generate_reminder_times(first_dose_time: time, frequency_count: int) -> List[time]:
    """
    Generate the daily reminder times for a medication.

    Starts at first_dose_time and adds interval_hours, wrapping at midnight,
    until frequency_count times have been produced. Minutes always carry over
    from first_dose_time, so doses are not evenly spaced when 24 is not a
    multiple of frequency_count.

    Args:
        first_dose_time: Clock time of the first dose of the day
        frequency_count: Doses per day (1-24)

    Returns:
        Ordered list of frequency_count clock times
    """
    interval = calculate_interval_hours(frequency_count)
    hour = first_dose_time.hour
    minute = first_dose_time.minute

    times = []
    for _ in range(frequency_count):
        times.append(time(hour, minute))
        hour = (hour + interval) % HOURS_PER_DAY

    return times


def format_reminder_times(times: List[time]) -> List[str]:
    """Render clock times as HH:MM strings"""
    return [t.strftime(CLOCK_FORMAT) for t in times]


def build_dose_schedule(first_dose_time: Union[str, time], frequency_count: int) -> DoseSchedule:
    """Build the full derived schedule for a medication"""
    first = parse_clock_time(first_dose_time)
    return DoseSchedule(
        first_dose_time=first,
        frequency_count=frequency_count,
        interval_hours=calculate_interval_hours(frequency_count),
        reminder_times=generate_reminder_times(first, frequency_count)
    )
