from datetime import date, datetime, time, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

BRAZIL_TZ = ZoneInfo("America/Sao_Paulo")


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_aware_in_brazil(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware in America/Sao_Paulo.

    Naive values get BRAZIL_TZ attached; aware values are converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=BRAZIL_TZ)
    return dt.astimezone(BRAZIL_TZ)


def to_local(dt_utc: Optional[datetime]) -> Optional[datetime]:
    """Convert a stored naive UTC timestamp to local restaurant time."""
    if dt_utc is None:
        return None
    return dt_utc.replace(tzinfo=timezone.utc).astimezone(BRAZIL_TZ)


def local_today() -> date:
    return datetime.now(BRAZIL_TZ).date()


def _parse_local_day(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)[:10]).date()


def local_day_range_to_utc(date_from, date_to=None) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return naive UTC bounds covering whole local days.

    ``date_from``/``date_to`` accept ``date`` objects or ``YYYY-MM-DD``
    strings. A missing ``date_to`` means the same day as ``date_from``.
    Raises ValueError on malformed input.
    """
    start_day = _parse_local_day(date_from)
    end_day = _parse_local_day(date_to) or start_day
    if start_day is None:
        return None, None
    if end_day < start_day:
        raise ValueError("date_to must not be before date_from")

    start_local = datetime.combine(start_day, time.min, tzinfo=BRAZIL_TZ)
    end_local = datetime.combine(end_day, time.max, tzinfo=BRAZIL_TZ)
    start_utc = start_local.astimezone(timezone.utc).replace(tzinfo=None)
    end_utc = end_local.astimezone(timezone.utc).replace(tzinfo=None)
    return start_utc, end_utc
