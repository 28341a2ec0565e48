"""
Date calculation and manipulation service.
Handles the engine clock, timezone conversion to local calendar days and
calendar windows (day, ISO week, month).
"""
import calendar
from datetime import datetime, timedelta, date, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from study_tracker.constants import (
    PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY, GRANULARITY_WEEK, GRANULARITY_MONTH, DEFAULT_TIMEZONE
)
from study_tracker.exceptions import ValidationException


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def utc_now() -> datetime:
        """Current time as naive UTC, the format every stored timestamp uses"""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def get_zone(tz_name: str) -> tzinfo:
        """
        Resolve an IANA timezone name.

        Raises:
            ValidationException: If the name is unknown
        """
        if not tz_name or tz_name.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationException("timezone", f"unknown timezone '{tz_name}'")

    @staticmethod
    def to_local(dt: datetime, tz_name: str) -> datetime:
        """
        Convert a stored timestamp to local wall-clock time.

        Naive datetimes are taken as UTC. The result is naive.
        """
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(DateService.get_zone(tz_name)).replace(tzinfo=None)

    @staticmethod
    def to_utc(dt: datetime) -> datetime:
        """Normalize an incoming datetime to naive UTC"""
        if dt.tzinfo is None:
            return dt
        return dt.astimezone(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def local_to_utc(dt: datetime, tz_name: str) -> datetime:
        """Interpret a naive local wall-clock time and return it as naive UTC"""
        aware = dt.replace(tzinfo=DateService.get_zone(tz_name))
        return aware.astimezone(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def to_local_date(dt: datetime, tz_name: str) -> date:
        """Calendar day a timestamp falls on in the given timezone"""
        return DateService.to_local(dt, tz_name).date()

    @staticmethod
    def get_day_range(target_date: date) -> tuple[datetime, datetime]:
        """
        Get datetime range for a full day (midnight to midnight).

        Args:
            target_date: Date to get range for

        Returns:
            Tuple of (day_start, day_end) datetimes
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = datetime.combine(target_date + timedelta(days=1), datetime.min.time())
        return day_start, day_end

    @staticmethod
    def get_week_start(target_date: date) -> date:
        """Monday of the ISO week containing target_date"""
        return target_date - timedelta(days=target_date.weekday())

    @staticmethod
    def get_week_range(target_date: date) -> tuple[date, date]:
        """First and last day of the ISO week containing target_date"""
        start = DateService.get_week_start(target_date)
        return start, start + timedelta(days=6)

    @staticmethod
    def get_month_range(target_date: date) -> tuple[date, date]:
        """First and last day of the calendar month containing target_date"""
        start = target_date.replace(day=1)
        end = target_date.replace(day=DateService.days_in_month(target_date))
        return start, end

    @staticmethod
    def days_in_month(target_date: date) -> int:
        return calendar.monthrange(target_date.year, target_date.month)[1]

    @staticmethod
    def get_bucket_range(target_date: date, granularity: str) -> tuple[date, date]:
        """Week or month bucket (inclusive) containing target_date"""
        if granularity == GRANULARITY_WEEK:
            return DateService.get_week_range(target_date)
        if granularity == GRANULARITY_MONTH:
            return DateService.get_month_range(target_date)
        raise ValidationException("granularity", f"must be '{GRANULARITY_WEEK}' or '{GRANULARITY_MONTH}'")

    @staticmethod
    def get_period_window(period: str, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
        """
        Calendar window of a recurring goal period containing as_of.

        Daily goals use the local day, weekly goals the ISO week (Monday
        start) and monthly goals the calendar month, all taken in tz_name.
        The bounds come back as naive UTC with an exclusive end.
        """
        today = DateService.to_local_date(as_of, tz_name)
        if period == PERIOD_DAILY:
            first, last = today, today
        elif period == PERIOD_WEEKLY:
            first, last = DateService.get_week_range(today)
        elif period == PERIOD_MONTHLY:
            first, last = DateService.get_month_range(today)
        else:
            raise ValidationException("period", f"'{period}' has no calendar window")
        start, _ = DateService.get_day_range(first)
        _, end = DateService.get_day_range(last)
        return DateService.local_to_utc(start, tz_name), DateService.local_to_utc(end, tz_name)

    @staticmethod
    def iter_days(start: date, end: date):
        """Yield every date from start to end inclusive"""
        current = start
        while current <= end:
            yield current
            current += timedelta(days=1)
