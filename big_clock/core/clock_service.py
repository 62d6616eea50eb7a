"""
Clock Service - Wall-clock source for the scheduler
Handles timezone-aware time retrieval
"""
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo


class ClockService:
    """
    Centralized clock/time service with optional timezone.
    An empty timezone means the host's local time.
    """

    def __init__(self, timezone: str = ''):
        """
        Initialize clock service with timezone.

        Args:
            timezone: IANA timezone string (e.g., 'Europe/London'), or '' for local time
        """
        self._timezone = timezone or ''
        self._tz_obj: Optional[ZoneInfo] = None
        self._load_timezone()

    def _load_timezone(self) -> None:
        """Load timezone object, fallback to local time on error"""
        if not self._timezone:
            self._tz_obj = None
            return
        try:
            self._tz_obj = ZoneInfo(self._timezone)
        except Exception as e:
            print(f"Warning: Invalid timezone '{self._timezone}', using local time: {e}")
            self._timezone = ''
            self._tz_obj = None

    def set_timezone(self, timezone: str) -> bool:
        """
        Change timezone dynamically.

        Returns:
            True if the zone was accepted, False if it fell back to local time
        """
        self._timezone = timezone or ''
        self._load_timezone()
        return self._timezone == (timezone or '')

    def get_current_time(self) -> datetime:
        """
        Get current time in configured timezone.

        Returns:
            datetime object (timezone-aware when a zone is configured)
        """
        if self._tz_obj is None:
            return datetime.now()
        return datetime.now(self._tz_obj)

    @property
    def timezone(self) -> str:
        """Get current timezone string ('' for local time)"""
        return self._timezone
