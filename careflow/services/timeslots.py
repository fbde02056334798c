import re

from careflow.errors import ValidationError

MINUTES_PER_DAY = 24 * 60
_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_clock(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    match = _CLOCK_RE.match((value or "").strip())
    if not match:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def compute_end_time(start: str, duration_minutes: int) -> str:
    """End clock time for a slot; wraps past midnight (``23:45`` + 30 -> ``00:15``)."""
    return format_clock(parse_clock(start) + duration_minutes)


def slot_bounds(start: str, end: str) -> tuple[int, int]:
    """(start, end) in minutes from the slot's date; an end at or before the start is on the next day."""
    start_minutes = parse_clock(start)
    end_minutes = parse_clock(end)
    if end_minutes <= start_minutes:
        end_minutes += MINUTES_PER_DAY
    return start_minutes, end_minutes


def duration_minutes(start: str, end: str) -> int:
    start_minutes, end_minutes = slot_bounds(start, end)
    return end_minutes - start_minutes


def crosses_midnight(start: str, end: str) -> bool:
    return slot_bounds(start, end)[1] > MINUTES_PER_DAY


def overlaps(a: tuple[int, int], b: tuple[int, int]) -> bool:
    return a[0] < b[1] and b[0] < a[1]
