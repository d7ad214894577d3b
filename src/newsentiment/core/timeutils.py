from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

IST = timezone(timedelta(hours=5, minutes=30), "IST")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(timezone.utc).isoformat()

def ensure_aware(dt: datetime, tz: timezone = timezone.utc) -> datetime:
    """Attach ``tz`` to naive datetimes; aware ones pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt

def days_old(published_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Fractional days between ``published_at`` and ``now``; undated or future counts as 0."""
    if published_at is None:
        return 0.0
    now = now or utcnow()
    delta = ensure_aware(now) - ensure_aware(published_at)
    return max(0.0, delta.total_seconds() / 86400.0)
