from typing import Optional

MINUTES_PER_DAY = 24 * 60
LUNCH_HOURS = 1


def parse_time(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    hours, minutes = value.strip().split(":")
    hours, minutes = int(hours), int(minutes)
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def worked_minutes(start: Optional[str], end: Optional[str]) -> int:
    if not start or not end:
        return 0
    diff = parse_time(end) - parse_time(start)
    if diff < 0:
        # shift ended after midnight
        diff += MINUTES_PER_DAY
    return diff


def calculate_total_hours(start: Optional[str], end: Optional[str], lunch_deduction: bool = False) -> float:
    total = round(worked_minutes(start, end) / 60, 2)
    if lunch_deduction:
        total = max(0, round(total - LUNCH_HOURS, 2))
    return total


def format_duration(start: Optional[str], end: Optional[str], lunch_deduction: bool = False) -> str:
    minutes = worked_minutes(start, end)
    if lunch_deduction:
        minutes = max(0, minutes - LUNCH_HOURS * 60)
    return f"{minutes // 60}h {minutes % 60}min"
