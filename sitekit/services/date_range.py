from __future__ import annotations

import datetime as dt
import re
from typing import Optional, Tuple

_DATE_RANGE_RE = re.compile(r"^last-(\d+)-days$")


def parse_date_range(
    date_range: str,
    *,
    offset_days: int = 1,
    today: Optional[dt.date] = None,
) -> Tuple[str, str]:
    """Turn a slug like ``last-28-days`` into ISO (start, end) dates.

    The range ends `offset_days` before today (Google reports lag a day) and
    covers exactly N days.
    """
    match = _DATE_RANGE_RE.match(date_range or "")
    if not match:
        raise ValueError(f"Invalid date range: {date_range!r}")
    days = int(match.group(1))
    if days < 1:
        raise ValueError(f"Invalid date range: {date_range!r}")
    end = (today or dt.date.today()) - dt.timedelta(days=offset_days)
    start = end - dt.timedelta(days=days - 1)
    return start.isoformat(), end.isoformat()
