# fanconnect/timeutil.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

# The store keeps naive UTC datetimes; everything compares in that space.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value) -> Optional[datetime]:
    """
    Accepts datetime (naive or aware), ISO string, or None.
    Aware values are converted to UTC first. Unparseable input -> None
    (callers treat None as "expired").
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
