"""
moodify.engine.days — The Day-Boundary Policy
==============================================

A claim's "day" is the user's **device-local calendar day**.  This module is
the only place a day is derived; every service goes through
:func:`claim_day` so a claim can never be counted against a UTC date in one
code path and a local date in another.

Rules:
    * ``date`` values are already a calendar day and are used as-is.
    * Timezone-aware ``datetime`` values are converted into the user's zone.
    * Naive ``datetime`` values are taken to be local wall-clock time.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from moodify.constants import DEFAULT_TIMEZONE


@lru_cache(maxsize=128)
def resolve_timezone(name: str | None) -> tzinfo:
    """Return the :class:`ZoneInfo` for an IANA *name* (default: UTC).

    Raises
    ------
    ValueError
        If *name* is not a known timezone.
    """
    name = (name or DEFAULT_TIMEZONE).strip()
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def claim_day(when: date | datetime, tz: str | tzinfo | None = None) -> date:
    """Map *when* onto the user's local calendar day."""
    if isinstance(when, datetime):
        if when.tzinfo is None:
            return when.date()
        zone = tz if isinstance(tz, tzinfo) else resolve_timezone(tz)
        return when.astimezone(zone).date()
    return when


def local_now(tz: str | tzinfo | None = None) -> datetime:
    """Current time in the user's zone (aware)."""
    zone = tz if isinstance(tz, tzinfo) else resolve_timezone(tz)
    return datetime.now(zone)
