from collections import namedtuple
from datetime import datetime, time, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)


CandidateSlot = namedtuple('CandidateSlot', ['start', 'end', 'label', 'timezone'])
BusyInterval = namedtuple('BusyInterval', ['start', 'end', 'assignee_id'])

WEEKDAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

MINUTES_PER_DAY = 24 * 60


def validate_timezone(timezone_name):
    """Check that a string is a valid IANA timezone name."""
    if not timezone_name or not isinstance(timezone_name, str):
        return False
    try:
        ZoneInfo(timezone_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def get_zone(timezone_name):
    """Return the ZoneInfo for a name, raising ValueError if it is unknown."""
    if not validate_timezone(timezone_name):
        raise ValueError(f"Invalid timezone: {timezone_name}")
    return ZoneInfo(timezone_name)


def parse_clock_time(value):
    """
    Parse an "HH:MM" string into minutes after midnight.

    "24:00" is accepted as the end of the day.
    """
    try:
        hours, minutes = value.split(':')
        hours, minutes = int(hours), int(minutes)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid clock time: {value!r}")

    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise ValueError(f"Invalid clock time: {value!r}")

    return hours * 60 + minutes


def validate_weekly_hours(weekly_hours):
    """
    Validate a weekday -> [{start, end}, ...] availability description.

    Returns the description with weekday keys lower-cased and each day's
    ranges ordered by start time.
    """
    if not isinstance(weekly_hours, dict):
        raise ValueError("Weekly hours must be a mapping of weekday name to time ranges")

    normalized = {}
    for day_name, ranges in weekly_hours.items():
        key = str(day_name).lower()
        if key not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown weekday: {day_name}")
        if not isinstance(ranges, list):
            raise ValueError(f"Time ranges for {key} must be a list")

        parsed = []
        for time_range in ranges:
            if not isinstance(time_range, dict) or 'start' not in time_range or 'end' not in time_range:
                raise ValueError(f"Each range for {key} needs a start and an end")
            start = parse_clock_time(time_range['start'])
            end = parse_clock_time(time_range['end'])
            if end <= start:
                raise ValueError(f"Range {time_range['start']}-{time_range['end']} on {key} must end after it starts")
            parsed.append((start, {'start': time_range['start'], 'end': time_range['end']}))

        parsed.sort(key=lambda item: item[0])
        normalized[key] = [time_range for _, time_range in parsed]

    return normalized


def get_open_ranges_for_date(weekly_hours, date):
    """Open-hour ranges configured for the weekday of a date."""
    return (weekly_hours or {}).get(WEEKDAY_NAMES[date.weekday()], [])


def local_datetime(date, minutes, tz):
    """Wall-clock time `minutes` after midnight of `date` in `tz`, as an aware datetime."""
    midnight = datetime.combine(date, time.min)
    return (midnight + timedelta(minutes=minutes)).replace(tzinfo=tz)


def get_day_bounds(date, timezone_name):
    """Start of the day and start of the next day in the given timezone."""
    tz = get_zone(timezone_name)
    day_start = local_datetime(date, 0, tz)
    day_end = local_datetime(date + timedelta(days=1), 0, tz)
    return day_start, day_end


def get_week_bounds(moment, timezone_name):
    """Monday 00:00 to the following Monday 00:00 around a moment, in the given timezone."""
    tz = get_zone(timezone_name)
    local_date = moment.astimezone(tz).date()
    monday = local_date - timedelta(days=local_date.weekday())
    return local_datetime(monday, 0, tz), local_datetime(monday + timedelta(days=7), 0, tz)


def format_slot_label(moment):
    return moment.strftime('%I:%M %p').lstrip('0')


def generate_time_slots(date, open_ranges, duration_minutes, step_minutes=15,
                        timezone_name='UTC', display_timezone=None):
    """
    Generate candidate slots for one day.

    Each open range is walked from its start in `step_minutes` increments,
    emitting [t, t + duration) while the slot still ends inside the range.
    Slots overlap when the step is shorter than the duration.

    Args:
        date: The day to generate slots for, in the link's reference zone
        open_ranges: Ordered list of {"start": "HH:MM", "end": "HH:MM"}
        duration_minutes: Meeting length
        step_minutes: Distance between consecutive slot starts
        timezone_name: Zone the open ranges are expressed in
        display_timezone: Zone used for slot labels (defaults to timezone_name)

    Returns:
        list: CandidateSlot values in chronological order per range
    """
    if duration_minutes <= 0:
        raise ValueError("Duration must be positive")
    if step_minutes <= 0:
        raise ValueError("Slot step must be positive")

    source_tz = get_zone(timezone_name)
    display_timezone = display_timezone or timezone_name
    display_tz = get_zone(display_timezone)

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    slots = []

    for time_range in open_ranges:
        start_minutes = parse_clock_time(time_range['start'])
        end_minutes = parse_clock_time(time_range['end'])

        # Step in UTC so durations stay exact across DST changes
        cursor = local_datetime(date, start_minutes, source_tz).astimezone(dt_timezone.utc)
        range_end = local_datetime(date, end_minutes, source_tz).astimezone(dt_timezone.utc)

        while cursor + duration <= range_end:
            slot_start = cursor.astimezone(display_tz)
            slot_end = (cursor + duration).astimezone(display_tz)
            slots.append(CandidateSlot(
                start=slot_start,
                end=slot_end,
                label=format_slot_label(slot_start),
                timezone=display_timezone,
            ))
            cursor += step

    return slots


def filter_slots_to_window(slots, earliest, latest):
    """Keep slots whose start lies within [earliest, latest]."""
    return [slot for slot in slots if earliest <= slot.start <= latest]


def busy_intervals_from_events(events):
    """Project calendar events onto BusyInterval values."""
    return [
        BusyInterval(start=event.start_time, end=event.end_time, assignee_id=event.user_id)
        for event in events
    ]


def serialize_slot(slot):
    return {
        'start': slot.start.isoformat(),
        'end': slot.end.isoformat(),
        'label': slot.label,
        'timezone': slot.timezone,
    }
