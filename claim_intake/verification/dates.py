"""Date parsing and textual date forms used when matching documents."""

from datetime import date, datetime
from typing import Any

MONTH_NAMES: list[str] = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]
MONTH_SHORT_NAMES: list[str] = [name[:3] for name in MONTH_NAMES]

_PARSE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
)


def parse_date(value: Any) -> date | None:
    """Coerce a date-ish value into a ``date``.

    Accepts ``date``/``datetime`` objects, ISO-8601 strings (with or
    without a time part) and a handful of common written forms.

    Returns:
        The parsed date, or ``None`` if the value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _PARSE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def date_representations(day: date) -> list[str]:
    """Render *day* in every textual form a document might print it in.

    All forms are lowercase so they can be compared against normalised
    document text.
    """
    d, m, y = day.day, day.month, day.year
    month = MONTH_NAMES[m - 1]
    short = MONTH_SHORT_NAMES[m - 1]
    return [
        day.isoformat(),
        f"{m}/{d}/{y}",
        f"{m:02d}/{d:02d}/{y}",
        f"{d}/{m}/{y}",
        f"{d:02d}/{m:02d}/{y}",
        f"{d}-{m}-{y}",
        f"{d:02d}-{m:02d}-{y}",
        f"{d} {month} {y}",
        f"{month} {d}, {y}",
        f"{month} {d} {y}",
        f"{d} {short} {y}",
        f"{short} {d}, {y}",
        f"{short} {d} {y}",
        f"{d}th {month}",
        f"{d}st {month}",
        f"{d}nd {month}",
        f"{d}rd {month}",
    ]
