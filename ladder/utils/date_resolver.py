"""
Timestamp resolution utilities for match documents.

Match documents carry timestamps in several historical shapes. Everything is
resolved to a timezone-aware UTC datetime so matches can be ordered.

Supported inputs:
- datetime objects (naive values are treated as local time)
- ISO-8601 strings (e.g., 2025-06-03T14:32:08.063Z)
- Epoch seconds or milliseconds (int, float or digit strings)
- Legacy local-time strings: dd.mm.yyyy hh.mm.ss, dd.mm.yyyy hh.mm,
  with optional "klo" marker and commas (e.g., 16.08.2025 klo 10.01.01)
- Timestamp maps: {"seconds": ..., "nanoseconds": ...}
"""

import math
import re
from datetime import datetime, timezone, timedelta
from typing import Any, Optional

from ladder.config import Config
from ladder.constants import DisplayConstants

EPOCH_ZERO = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Values at or above this are treated as epoch milliseconds (year 5138 in seconds)
EPOCH_MILLISECONDS_THRESHOLD = 1e11

# Match fields consulted in order when resolving when a match was played
MATCH_TIME_FIELDS = ('playedAt', 'tsIso', 'timestamp', 'createdAt')

_LEGACY_PATTERN = re.compile(
    r'^(\d{1,2})\.(\d{1,2})\.(\d{4})(?: (\d{1,2})[.:](\d{1,2})(?:[.:](\d{1,2}))?)?$'
)
_ISO_DATE_ONLY = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def _local_timezone():
    if Config.LEGACY_TIMEZONE:
        from zoneinfo import ZoneInfo
        return ZoneInfo(Config.LEGACY_TIMEZONE)
    return None


def _to_utc(aware: datetime) -> Optional[datetime]:
    try:
        return aware.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # Offsets that push the value past year 1 or 9999
        return None


def _localize(naive: datetime) -> Optional[datetime]:
    """Attach local time semantics to a naive datetime and convert to UTC."""
    tz = _local_timezone()
    if tz is not None:
        return _to_utc(naive.replace(tzinfo=tz))
    # astimezone() on a naive value assumes system local time
    try:
        local = naive.astimezone()
    except (ValueError, OverflowError, OSError):
        return None
    return _to_utc(local)


def _from_epoch(value: float) -> Optional[datetime]:
    if math.isnan(value) or math.isinf(value):
        return None
    seconds = value / 1000 if abs(value) >= EPOCH_MILLISECONDS_THRESHOLD else value
    try:
        return EPOCH_ZERO + timedelta(seconds=seconds)
    except OverflowError:
        return None


def _parse_iso(text: str) -> Optional[datetime]:
    date_only = bool(_ISO_DATE_ONLY.match(text))
    candidate = text[:-1] + '+00:00' if text.endswith(('Z', 'z')) else text
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if date_only:
        # Date-only ISO strings are UTC midnight
        return parsed.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        return _localize(parsed)
    return _to_utc(parsed)


def _parse_legacy(text: str) -> Optional[datetime]:
    cleaned = text.replace('klo', ' ').replace(',', ' ')
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    match = _LEGACY_PATTERN.match(cleaned)
    if not match:
        return None
    day, month, year, hour, minute, second = match.groups()
    try:
        naive = datetime(
            int(year), int(month), int(day),
            int(hour or 0), int(minute or 0), int(second or 0)
        )
    except ValueError:
        return None
    return _localize(naive)


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse a single timestamp value.

    Args:
        value: Timestamp in any supported representation

    Returns:
        Timezone-aware UTC datetime, or None if the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return _localize(value)
        return _to_utc(value)

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if isinstance(value, dict):
        seconds = value.get('seconds', value.get('_seconds'))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get('nanoseconds', value.get('_nanoseconds', 0)) or 0
            try:
                fraction = float(nanos) / 1e9
            except (TypeError, ValueError):
                fraction = 0.0
            return _from_epoch(float(seconds) + fraction)
        return None

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if re.fullmatch(r'-?\d+(\.\d+)?', text):
        return _from_epoch(float(text))

    if '-' in text or 'T' in text:
        parsed = _parse_iso(text)
        if parsed is not None:
            return parsed

    if '.' in text:
        return _parse_legacy(text)

    return None


def resolve_instant(value: Any) -> datetime:
    """Resolve a timestamp value, falling back to epoch zero when unparseable."""
    parsed = parse_instant(value)
    return parsed if parsed is not None else EPOCH_ZERO


def resolve_match_instant(document: dict) -> datetime:
    """
    Resolve when a match was played from its stored fields.

    Tries playedAt, tsIso, timestamp and createdAt in order; the first value
    that parses wins. Falls back to epoch zero.
    """
    for field in MATCH_TIME_FIELDS:
        parsed = parse_instant(document.get(field))
        if parsed is not None:
            return parsed
    return EPOCH_ZERO


def to_iso_string(instant: datetime) -> str:
    """Format an instant as a sortable UTC ISO string with millisecond precision."""
    utc = instant.astimezone(timezone.utc)
    return utc.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc.microsecond // 1000:03d}Z"


def format_legacy(instant: datetime) -> str:
    """Format an instant in the legacy dd.mm.yyyy hh.mm.ss local-time form."""
    tz = _local_timezone()
    local = instant.astimezone(tz) if tz is not None else instant.astimezone()
    return local.strftime(DisplayConstants.LEGACY_DATE_FORMAT)
