# fieldops/utils.py
from datetime import date, datetime, timedelta
from typing import Optional, Union

DATE_FORMATS = [
    "%Y-%m-%d",             # '2024-03-01'
    "%Y-%m-%d %H:%M:%S",    # '2024-03-01 08:00:00'
    "%Y-%m-%dT%H:%M:%S",    # '2024-03-01T08:00:00'
    "%m/%d/%Y",             # '3/1/2024'
    "%m/%d/%y",             # '3/1/24'
]


def parse_user_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Accept a date, datetime or one of the common user-supplied string formats.
    Returns None for empty input or when no format matches.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass
    return None


def require_date(value) -> date:
    parsed = parse_user_date(value)
    if parsed is None:
        raise ValueError(f"Could not parse date: {value}")
    return parsed


def window_start(end: date, days: int) -> date:
    """First day of an inclusive window of `days` days ending on `end`."""
    return end - timedelta(days=days - 1)
