"""
Core Utilities

Shared coercion helpers used across the application.
Inbound payloads come from several checkout and admin surfaces, so values
arrive as strings, numbers, booleans or lists depending on the caller.
"""
import json
import math
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

TRUE_TOKENS = {"true", "1", "yes", "y", "si", "sí", "on"}
FALSE_TOKENS = {"false", "0", "no", "n", "off"}

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def to_number(value: Any) -> Optional[float]:
    """
    Parse a finite number from an int, float or numeric string.

    Booleans, None, blank strings, containers and ints beyond float range
    are not numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def pick_number(*values: Any) -> Optional[float]:
    """Return the first value that parses as a finite number."""
    for value in values:
        number = to_number(value)
        if number is not None:
            return number
    return None


def pick_limit(*values: Any) -> Optional[float]:
    """
    Resolve a threshold from candidate fields.

    Zero and blank values mean "no restriction" and are skipped, so a record
    with minimum=0 behaves exactly like one with no minimum at all.
    """
    for value in values:
        number = to_number(value)
        if number is None or number == 0:
            continue
        return number
    return None


def is_active_flag(value: Any) -> bool:
    """Tolerant activity flag: True, positive numbers and yes-like tokens."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, str):
        return value.strip().lower() in TRUE_TOKENS
    return False


def to_bool(value: Any) -> Optional[bool]:
    """
    Normalize a boolean-ish value.

    Returns None for None and blank strings so callers can tell
    "not provided" apart from an explicit False.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        token = value.strip().lower()
        if not token:
            return None
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
    return bool(value)


def to_array(value: Any) -> List[Any]:
    """
    Accept a list, a JSON array string, a comma-separated string or a scalar.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
        return [part.strip() for part in text.split(",") if part.strip()]
    return [value]


def to_string_set(value: Any) -> List[str]:
    """Trimmed, de-duplicated strings in first-seen order."""
    result: List[str] = []
    for item in to_array(value):
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    return result


def to_int_set(value: Any) -> List[int]:
    """Integers only, de-duplicated in first-seen order."""
    result: List[int] = []
    for item in to_array(value):
        number = to_number(item)
        if number is None or not number.is_integer():
            continue
        if int(number) not in result:
            result.append(int(number))
    return result


def first_text(*values: Any) -> Optional[str]:
    """Return the first value that is a non-blank string once trimmed."""
    for value in values:
        if value is None or isinstance(value, (bool, dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def slugify(value: Any, fallback: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to "_", trim underscores."""
    text = "" if value is None else str(value).lower()
    slug = _SLUG_PATTERN.sub("_", text).strip("_")
    return slug or fallback


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_record_id() -> str:
    """Record id of the form c_<base36 millis>_<6 random base36 chars>."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"c_{to_base36(millis)}_{suffix}"


def truncate(value: Any, length: int) -> str:
    text = "" if value is None else str(value)
    return text[:length]


def iter_nonblank(values: Iterable[Any]) -> Iterable[str]:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            yield text
