"""Field validation shared by the claim builders."""

import ipaddress
import re
from typing import Iterable, List, Optional, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .types import ConnectionType, MalformedInput

_TIME_OF_DAY = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}


def parse_duration(text: str, field: Optional[str] = None) -> int:
    """Parse a duration string like '1m', '5s' or '1h30m' into nanoseconds.

    Raises:
        MalformedInput: if the string is not a valid duration
    """
    s = text.strip() if isinstance(text, str) else ""
    if not s:
        raise MalformedInput(f"invalid duration {text!r}", field=field)

    sign = 1
    if s[0] in "+-":
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return 0

    total = 0.0
    pos = 0
    while pos < len(s):
        m = _DURATION_PART.match(s, pos)
        if not m:
            raise MalformedInput(f"invalid duration {text!r}", field=field)
        total += float(m.group(1)) * _NANOS_PER_UNIT[m.group(2)]
        pos = m.end()
    if pos == 0:
        raise MalformedInput(f"invalid duration {text!r}", field=field)
    return sign * int(round(total))


def validate_time_of_day(value: str, field: Optional[str] = None) -> str:
    """Check an HH:MM:SS time-of-day string."""
    m = _TIME_OF_DAY.match(value or "")
    if not m:
        raise MalformedInput(f"time {value!r} must be in HH:MM:SS format", field=field)
    hours, minutes, seconds = (int(g) for g in m.groups())
    if hours > 23 or minutes > 59 or seconds > 59:
        raise MalformedInput(f"time {value!r} is out of range", field=field)
    return value


def validate_locale(value: str, field: Optional[str] = None) -> str:
    """Check that value names an IANA time zone."""
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise MalformedInput(f"unknown time zone {value!r}", field=field) from e
    return value


def validate_cidr(value: str, field: Optional[str] = None) -> str:
    """Check a canonical CIDR block such as '10.0.0.0/8'.

    Host bits must be zero so that the network is written one way only.
    """
    if not isinstance(value, str) or "/" not in value:
        raise MalformedInput(f"{value!r} is not a CIDR block", field=field)
    try:
        network = ipaddress.ip_network(value, strict=True)
    except ValueError as e:
        raise MalformedInput(f"{value!r} is not a canonical CIDR block: {e}", field=field) from e
    if str(network) != value:
        raise MalformedInput(f"{value!r} is not a canonical CIDR block (expected {network})", field=field)
    return value


def validate_sampling(value: int, field: Optional[str] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise MalformedInput(f"sampling percentage {value!r} must be between 0 and 100", field=field)
    return value


def validate_subject(value: str, field: Optional[str] = None) -> str:
    """Check a NATS subject or subject pattern: non-empty, dot separated, no whitespace."""
    if not isinstance(value, str) or not value:
        raise MalformedInput("subject cannot be empty", field=field)
    if any(c.isspace() for c in value):
        raise MalformedInput(f"subject {value!r} cannot contain whitespace", field=field)
    if any(token == "" for token in value.split(".")):
        raise MalformedInput(f"subject {value!r} has an empty token", field=field)
    return value


def parse_connection_type(value: str, field: Optional[str] = None) -> ConnectionType:
    try:
        return ConnectionType(value)
    except ValueError:
        raise MalformedInput(
            f"Must be one of: STANDARD, WEBSOCKET, LEAFNODE, MQTT. Got: {value}",
            field=field,
        ) from None


def parse_connection_types(values: Iterable[str], field: str = "allowed_connection_types") -> Set[ConnectionType]:
    return {parse_connection_type(v, f"{field}[{i}]") for i, v in enumerate(values)}


def validate_cidrs(values: Iterable[str], field: str = "source_networks") -> Set[str]:
    return {validate_cidr(v, f"{field}[{i}]") for i, v in enumerate(values)}


def validate_subjects(values: Optional[Iterable[str]], field: str) -> List[str]:
    if not values:
        return []
    return [validate_subject(v, f"{field}[{i}]") for i, v in enumerate(values)]


def normalize_tags(values: Optional[Iterable[str]]) -> List[str]:
    """Trim, drop empties, and de-duplicate tags; output is sorted."""
    if not values:
        return []
    return sorted({v.strip() for v in values if v and v.strip()})
