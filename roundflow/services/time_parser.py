"""Clocks and the natural-language start-time parser.

Explicit layouts are tried first, interpreted in the requester's timezone:

* ``2026-03-14 18:30:00``, ``2026-03-14 18:30``, ``2026-03-14 6:30 pm``
* ``03/14/2026 18:30``, ``03/14/2026 6:30 pm``
* ``2026-03-14`` (midnight)
* ISO 8601 with an explicit offset (``2026-03-14T18:30:00-05:00``)

Anything else goes to ``dateparser`` anchored at the request clock, so
``now``, ``tomorrow 6pm``, ``friday at 6pm``, ``in 2 hours`` and
``next week`` all resolve.  ``932am`` is read as ``9:32 am``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dateparser

from roundflow.errors import TimeParseError
from roundflow.services.protocols import Clock

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Chicago"

# Common abbreviations users type instead of IANA names.
TIMEZONE_ALIASES: dict[str, str] = {
    "UTC": "UTC",
    "GMT": "UTC",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    "PACIFIC": "America/Los_Angeles",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "MOUNTAIN": "America/Denver",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "CENTRAL": "America/Chicago",
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "EASTERN": "America/New_York",
}

EXPLICIT_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %I:%M %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M %p",
    "%Y-%m-%d",
)

_COMPACT_CLOCK = re.compile(r"\b(\d{1,2})(\d{2})\s*(am|pm)\b")


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """A clock pinned to one instant.

    Used to anchor relative times ("tomorrow at 6pm") to when the user
    submitted the request rather than when the message is processed, so a
    redelivered request resolves to the same start time.
    """

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant


def clock_from_metadata(submitted_at: str | None, fallback: Clock) -> Clock:
    """Return a ``FixedClock`` at *submitted_at* (ISO 8601) if it parses."""
    if not submitted_at:
        return fallback
    try:
        return FixedClock(datetime.fromisoformat(submitted_at))
    except ValueError:
        return fallback


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def is_in_past(start_time: datetime, now: datetime) -> bool:
    """Whether *start_time* falls before the current minute."""
    return truncate_to_minute(start_time) < truncate_to_minute(now)


# ---------------------------------------------------------------------------
# Timezones
# ---------------------------------------------------------------------------


def _load_zone(name: str) -> ZoneInfo | None:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def resolve_timezone(tz_name: str, default: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    """Resolve *tz_name* to a ``ZoneInfo``, falling back to *default*.

    An exact alias wins, then an IANA name, then any alias contained in
    the input (``"6pm EST"``).  Unknown input logs a warning and uses
    *default*; only an unloadable *default* raises ``TimeParseError``.
    """
    name = (tz_name or "").strip()
    if name:
        upper = name.upper()
        if upper in TIMEZONE_ALIASES:
            return ZoneInfo(TIMEZONE_ALIASES[upper])
        zone = _load_zone(name)
        if zone is not None:
            return zone
        for alias, full_name in TIMEZONE_ALIASES.items():
            if alias in upper:
                return ZoneInfo(full_name)
        logger.warning("Unknown timezone %r, falling back to %s", tz_name, default)
    else:
        logger.debug("No timezone given, using %s", default)

    zone = _load_zone(default)
    if zone is None:
        raise TimeParseError(f"Unknown default timezone: {default!r}")
    return zone


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class NaturalTimeParser:
    """Default ``TimeParser``.

    Parameters
    ----------
    default_timezone:
        Zone used when the request carries none, or one that cannot be
        resolved.
    """

    def __init__(self, default_timezone: str = DEFAULT_TIMEZONE) -> None:
        self._default_tz = default_timezone

    def parse(self, text: str, tz_name: str, clock: Clock) -> datetime:
        raw = (text or "").strip()
        if not raw:
            raise TimeParseError("Start time is required")
        tz = resolve_timezone(tz_name, self._default_tz)
        now_local = clock.now().astimezone(tz)

        normalized = " ".join(raw.lower().split())
        normalized = _COMPACT_CLOCK.sub(r"\1:\2 \3", normalized)

        parsed = self._parse_explicit(raw, normalized)
        if parsed is None:
            parsed = self._parse_natural(normalized, tz, now_local)
        if parsed is None:
            raise TimeParseError(
                f"Invalid date/time format: {raw!r}. Supported formats: "
                "YYYY-MM-DD HH:MM, MM/DD/YYYY HH:MM, or natural language "
                "like 'tomorrow 5pm'"
            )

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        result = truncate_to_minute(parsed.astimezone(timezone.utc))
        logger.debug("Parsed %r in %s as %s", raw, tz.key, result.isoformat())
        return result

    @staticmethod
    def _parse_explicit(raw: str, normalized: str) -> datetime | None:
        candidate = normalized.replace(" at ", " ")
        for fmt in EXPLICIT_FORMATS:
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        # Offset-less ISO strings are left to the layouts above.
        return parsed if parsed.tzinfo is not None else None

    @staticmethod
    def _parse_natural(
        text: str, tz: ZoneInfo, now_local: datetime
    ) -> datetime | None:
        return dateparser.parse(
            text,
            languages=["en"],
            settings={
                "RELATIVE_BASE": now_local.replace(tzinfo=None),
                "TIMEZONE": tz.key,
                "RETURN_AS_TIMEZONE_AWARE": True,
                "PREFER_DATES_FROM": "future",
                "DATE_ORDER": "MDY",
            },
        )
