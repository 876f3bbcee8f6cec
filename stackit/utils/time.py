"""Timezone helpers – provide a single UTC *now()* for the codebase.

Import :pyfunc:`utc_now` / :pyfunc:`utc_now_naive` everywhere instead of
calling the stdlib helpers directly so timestamps stay consistent.
"""

from datetime import datetime
from datetime import timezone


def utc_now() -> datetime:  # noqa: D401 – simple utility
    """Return *aware* current time in UTC."""

    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:  # noqa: D401 – simple utility
    """Return *naive* current time in UTC for database compatibility.

    SQLAlchemy DateTime columns without timezone info store naive datetimes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


__all__ = ["utc_now", "utc_now_naive"]
