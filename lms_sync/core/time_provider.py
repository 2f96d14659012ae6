from __future__ import annotations

from datetime import datetime, timezone


class TimeProvider:
    def utcnow(self) -> datetime:
        """Naive UTC timestamp, the form stored in DateTime columns."""
        return datetime.now(timezone.utc).replace(tzinfo=None)


default_time_provider = TimeProvider()
