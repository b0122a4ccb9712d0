from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Dict, List, Optional


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def previous(self) -> "DateRange":
        """Same-length window ending just before this one starts."""
        length = self.end - self.start
        return DateRange(start=self.start - length, end=self.start - timedelta(microseconds=1))

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def last_n_days(days: int, now: Optional[datetime] = None) -> DateRange:
    today = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()
    start = datetime.combine(today - timedelta(days=days - 1), time.min, tzinfo=timezone.utc)
    end = datetime.combine(today, time.max, tzinfo=timezone.utc)
    return DateRange(start=start, end=end)


DATE_RANGES = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
}

DEFAULT_RANGE_DAYS = 30


def parse_date_range(key: Optional[str], now: Optional[datetime] = None) -> DateRange:
    return last_n_days(DATE_RANGES.get(key or "", DEFAULT_RANGE_DAYS), now=now)


def fill_missing_dates(series: List[dict], date_range: DateRange) -> List[dict]:
    counts = {point["date"]: point["count"] for point in series}
    result = []
    current = date_range.start.date()
    last = date_range.end.date()
    while current <= last:
        key = current.isoformat()
        result.append({"date": key, "count": counts.get(key, 0)})
        current += timedelta(days=1)
    return result
