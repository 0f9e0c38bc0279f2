import logging
from datetime import datetime
from typing import Optional

import pytz

logger = logging.getLogger(__name__)


def is_update_time(hour: int, timezone: str, now: Optional[datetime] = None) -> bool:
    """
    Check if the current hour in the given timezone is the full-rebuild hour

    Args:
        hour: Local hour (0-23) at which full rebuilds run
        timezone: pytz timezone name
        now: Aware or UTC-naive datetime, current UTC time when omitted

    Returns:
        True if the local hour equals hour
    """
    if now is None:
        now = datetime.now(pytz.UTC)
    elif now.tzinfo is None:
        now = pytz.UTC.localize(now)

    local_now = now.astimezone(pytz.timezone(timezone))
    return local_now.hour == hour
