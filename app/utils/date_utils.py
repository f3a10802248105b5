from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Any, Tuple


def utcnow() -> datetime:
    """Naive UTC now; every DateTime column in the schema stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def safe_parse_datetime(value: Any) -> Optional[datetime]:
    """Robustly parse a datetime from various inputs (str, date, datetime)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        try:
            # Try ISO format first
            return datetime.fromisoformat(value)
        except ValueError:
            try:
                # Try simple date format
                d = datetime.strptime(value, "%Y-%m-%d").date()
                return datetime.combine(d, datetime.min.time())
            except ValueError:
                pass
    return None


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_start(d: date, months_back: int = 0) -> date:
    """First day of the month ``months_back`` months before ``d``."""
    index = d.year * 12 + (d.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def trailing_months(now: datetime, months: int) -> List[Tuple[date, date]]:
    """Return ``months`` (start, next_start) month windows, oldest first, ending with the current month."""
    current = now.date()
    windows: List[Tuple[date, date]] = []
    for back in range(months - 1, -1, -1):
        start = month_start(current, back)
        windows.append((start, month_start(current, back - 1)))
    return windows


def whole_days_between(earlier: datetime, later: datetime) -> int:
    return max(0, int((later - earlier) / timedelta(days=1)))
