from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

# Vietnam local time for user-facing dates
ICT = timezone(timedelta(hours=7))

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def fmt_dt(dt: datetime | None) -> str:
    if not dt:
        return "—"
    return ensure_aware_utc(dt).astimezone(ICT).strftime("%d.%m.%Y %H:%M ICT")


def days_left(end_at: datetime | None, now: datetime | None = None) -> int:
    if not end_at:
        return 0
    delta = ensure_aware_utc(end_at) - (now or utcnow())
    return max(0, delta.days + (1 if delta.seconds > 0 else 0))


def fmt_remaining(end_at: datetime | None, now: datetime | None = None) -> str:
    """'12 days 3 hours' style countdown, '0 minutes' once passed."""
    if not end_at:
        return "—"
    seconds = int((ensure_aware_utc(end_at) - (now or utcnow())).total_seconds())
    if seconds <= 0:
        return "0 minutes"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    parts = []
    if days:
        parts.append(f"{days} day{'s' if days != 1 else ''}")
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if not days and (minutes or not parts):
        parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    return " ".join(parts)
