from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from config.env import PLATFORM_TIMEZONE


def platform_tz() -> ZoneInfo:
    return ZoneInfo(PLATFORM_TIMEZONE)


def local_today(now: datetime | None = None) -> date:
    """Calendar date in the platform timezone for a naive-UTC instant."""
    now = now or datetime.utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(platform_tz()).date()


def to_naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(platform_tz())


def financial_year(on: date) -> str:
    """Indian financial year (April - March), e.g. 2025-26."""
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def local_day_bounds(start_day: date, end_day: date) -> tuple[datetime, datetime]:
    """First and last instant of an inclusive range of local calendar days, as naive UTC."""
    tz = platform_tz()
    start = datetime.combine(start_day, time.min, tzinfo=tz)
    end = datetime.combine(end_day, time(23, 59, 59, 999000), tzinfo=tz)
    return to_naive_utc(start), to_naive_utc(end)
