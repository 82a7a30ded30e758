from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    MongoDB stores datetimes without tzinfo (naive). Wrap values read from a
    document with ensure_utc() before comparing them with utcnow().
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_local(value: str | datetime | None, tz: ZoneInfo) -> datetime | None:
    """Parse an upstream start time into an aware datetime in ``tz``.

    Upstream feeds mix UTC ISO strings with bare local timestamps. Naive
    values are taken as wall-clock time in ``tz``. Returns None for empty or
    unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def local_today(tz: ZoneInfo, now: datetime | None = None) -> date:
    """Calendar date in ``tz`` at ``now`` (default: current time)."""
    return ensure_utc(now or utcnow()).astimezone(tz).date()
