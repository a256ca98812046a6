"""Turn raw OpenSearch documents into Loki push records."""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from forwarder.errors import NormalizationError

logger = logging.getLogger(__name__)

APP_LABEL = "graylog-forwarder"
DATA_ORIGIN = "historical"

# Graylog/syslog severity numbers
LEVEL_NAMES = {
    0: "emergency",
    1: "alert",
    2: "critical",
    3: "error",
    4: "warning",
    5: "notice",
    6: "info",
    7: "debug",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Graylog storage format, UTC: "2024-02-14 20:30:55.410"
_GRAYLOG_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2})\.(\d{3})$"
)

# "2024-02-14T20:30:55.410123456+01:00", offset may also be "+0100"
_ISO_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"([Zz]|[+-]\d{2}:?\d{2})?$"
)


@dataclass
class NormalizedRecord:
    timestamp_ns: str
    message: str
    labels: dict[str, str] = field(default_factory=dict)


def _epoch_ns(parts, fraction: str, tz: timezone) -> int:
    year, month, day, hour, minute, second = (int(p) for p in parts)
    try:
        dt = datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError as e:
        raise NormalizationError(str(e)) from e
    delta = dt - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    nanos = int(fraction.ljust(9, "0")) if fraction else 0
    return seconds * 1_000_000_000 + nanos


def _parse_offset(value: str | None) -> timezone:
    if not value or value in ("Z", "z"):
        return timezone.utc
    sign = -1 if value[0] == "-" else 1
    hours, minutes = int(value[1:3]), int(value[-2:])
    if hours > 23 or minutes > 59:
        raise NormalizationError(f"invalid UTC offset {value!r}")
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def parse_timestamp_ns(value: str) -> int:
    """Parse a document timestamp into integer nanoseconds since the epoch.

    Tries the Graylog format first, then RFC 3339 / ISO-8601. Fractional
    seconds keep full nanosecond precision.
    """
    match = _GRAYLOG_RE.match(value)
    if match:
        return _epoch_ns(match.groups()[:6], match.group(7), timezone.utc)

    match = _ISO_RE.match(value)
    if match is None:
        raise NormalizationError(
            f"timestamp {value!r} matches neither the Graylog format nor ISO-8601"
        )
    nanos = _epoch_ns(match.groups()[:6], match.group(7), _parse_offset(match.group(8)))
    logger.warning("Timestamp %r did not match the Graylog format, parsed as ISO-8601", value)
    return nanos


def level_name(level) -> str:
    """Map a numeric severity to its name; anything outside 0-7 is 'unknown'."""
    if isinstance(level, float):
        if not math.isfinite(level):
            return "unknown"
        level = int(level)
    return LEVEL_NAMES.get(level, "unknown")


def _get_str(doc: dict, key: str) -> str | None:
    value = doc.get(key)
    return value if isinstance(value, str) else None


def _serialize(doc: dict) -> str:
    return json.dumps(doc, separators=(",", ":"), sort_keys=True,
                      ensure_ascii=False, default=str)


def build_labels(doc: dict, source_index: str) -> dict[str, str]:
    labels = {
        "app": APP_LABEL,
        "source_index": source_index,
        "data_origin": DATA_ORIGIN,
    }

    app_name = _get_str(doc, "app")
    if app_name is not None:
        labels["app_name"] = app_name

    level = doc.get("level")
    if isinstance(level, (int, float)) and not isinstance(level, bool):
        labels["log_level"] = level_name(level)
    elif isinstance(level, str):
        labels["log_level"] = level.lower()

    host = _get_str(doc, "host")
    if host is not None:
        labels["host"] = host

    return labels


def normalize(doc: dict, source_index: str) -> NormalizedRecord:
    """Build a push record from one raw document.

    Only the timestamp is mandatory; a missing message falls back to the
    whole document serialized as JSON, and absent labels are omitted.
    """
    timestamp = _get_str(doc, "timestamp")
    if timestamp is None:
        raise NormalizationError(
            f"document missing or invalid 'timestamp' field: {_serialize(doc)[:200]}"
        )
    nanos = parse_timestamp_ns(timestamp)

    message = _get_str(doc, "message")
    if message is None:
        message = _serialize(doc)
        logger.warning("'message' field not found, sending full document as message: %s",
                       message[:200])

    return NormalizedRecord(
        timestamp_ns=str(nanos),
        message=message,
        labels=build_labels(doc, source_index),
    )
