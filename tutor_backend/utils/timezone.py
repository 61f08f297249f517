from datetime import datetime
from datetime import timezone as datetime_timezone


class TimeZone:
    """UTC helpers for timestamps stored by the billing tables."""

    def __init__(self) -> None:
        self.tz_info = datetime_timezone.utc

    def now(self) -> datetime:
        """Current aware time."""
        return datetime.now(self.tz_info)

    def now_ts(self) -> int:
        """Current unix timestamp in whole seconds."""
        return int(self.now().timestamp())

    def from_ts(self, ts: int | float) -> datetime:
        """Convert a unix timestamp (seconds) to an aware datetime."""
        return datetime.fromtimestamp(ts, tz=self.tz_info)

    def to_str(self, dt: datetime, format_str: str = '%Y-%m-%d %H:%M:%S') -> str:
        return dt.astimezone(self.tz_info).strftime(format_str)


timezone: TimeZone = TimeZone()
