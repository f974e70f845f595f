"""Randomization and formatting helpers shared by the browser utilities."""

from __future__ import annotations

import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

_ALPHANUMERIC = string.ascii_lowercase + string.digits
_PASSWORD_CHARS = string.ascii_letters + string.digits + "!@#$%^&*()"
_INVALID_USERNAME_CHARS = re.compile(r"[^a-z0-9.]")


def normalize_bounds(low: float, high: float) -> Tuple[float, float]:
    """Return ``(low, high)`` ordered so that ``low <= high``."""
    if low > high:
        return high, low
    return low, high


def random_number(low: int, high: int) -> int:
    """Random integer between ``low`` and ``high`` inclusive, in either order."""
    low, high = normalize_bounds(low, high)
    return random.randint(int(low), int(high))


def compute_end_time(
    min_ms: float,
    max_ms: float,
    *,
    now_ms: Optional[float] = None,
) -> float:
    """Epoch milliseconds uniformly within ``[now + min_ms, now + max_ms]``."""
    min_ms, max_ms = normalize_bounds(min_ms, max_ms)
    if now_ms is None:
        now_ms = time.time() * 1000
    return now_ms + random.uniform(min_ms, max_ms)


def random_string(length: int) -> str:
    return "".join(random.choice(_ALPHANUMERIC) for _ in range(length))


def generate_strong_password(min_length: int = 12, max_length: int = 18) -> str:
    """Password of random length mixing cases, digits and symbols."""
    length = random_number(min_length, max_length)
    return "".join(random.choice(_PASSWORD_CHARS) for _ in range(length))


def generate_username(
    first_name: Optional[str],
    last_name: Optional[str],
    username: Optional[str] = None,
) -> str:
    """Build a webmail-compatible username from the given names.

    The result only contains ``[a-z0-9.]``, has no leading dots and is at
    least 12 characters long.  With neither name available, ``username`` is
    sanitized and returned as-is, or a random one is produced.
    """
    suffix = random_string(random_number(3, 8))
    number = random.randint(0, 9999)

    first = (first_name or "").strip().lower()
    last = (last_name or "").strip().lower()

    if not first and not last:
        if username:
            return _INVALID_USERNAME_CHARS.sub("", username.lower())
        return f"{suffix}{number}"

    parts: List[str] = []
    if first and (random.random() > 0.3 or not last):
        parts.append(first)
    if last and (random.random() > 0.3 or not first):
        parts.append(last)

    if random.random() > 0.5:
        parts.insert(0, suffix)
    else:
        parts.append(suffix)
    parts.append(str(number))

    result = ("." if random.random() > 0.5 else "").join(parts)
    result = _INVALID_USERNAME_CHARS.sub("", result).lstrip(".")
    while len(result) < 12:
        result += random_string(random_number(2, 4))
    return result


def format_birthday(birthday: Mapping[str, Any]) -> str:
    """Format ``{"day", "month", "year"}`` as ``DD-MM-YYYY``."""
    day = str(birthday["day"]).zfill(2)
    month = str(birthday["month"]).zfill(2)
    return f"{day}-{month}-{birthday['year']}"


def get_random_from_array(items: Sequence[T]) -> T:
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence) or not items:
        raise ValueError("Input must be a non-empty sequence")
    return random.choice(items)


def refactor_text_area_message(
    body: Optional[str],
    data: Mapping[str, Optional[str]],
) -> Optional[str]:
    """Fill the message template placeholders used by compose forms.

    Escaped ``\\n`` sequences become real line breaks so ``type_text`` turns
    them into Enter presses.
    """
    if not body:
        return None

    first_name = data.get("first_name")
    last_name = data.get("last_name")
    replacements = {
        "\\n": "\n",
        "${Recipient_Name}": data.get("recipient_name") or "",
        "[Include the exciting news here]": "",
        "${Your_Name}": f"{first_name} {last_name}" if first_name and last_name else "",
    }
    for placeholder, value in replacements.items():
        body = body.replace(placeholder, value)
    return body


def shuffle_array(items: Sequence[T]) -> List[T]:
    """Return a shuffled copy of ``items``."""
    shuffled = list(items)
    random.shuffle(shuffled)
    return shuffled


def tracking_request_date(date: datetime) -> str:
    """Format ``date`` as ``YYYY-MM-DDTHH:MM:SS.sss3851±HH:MM``.

    Date and time fields are UTC; the trailing offset is the date's own UTC
    offset (local time for naive values).  The sign follows the tracking
    endpoint's convention: ``+`` only for offsets east of UTC, so UTC itself
    renders as ``-00:00``.
    """
    aware = date if date.tzinfo is not None else date.astimezone()
    offset = aware.utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    moment = aware.astimezone(timezone.utc)

    sign = "+" if offset_minutes > 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    millis = moment.microsecond // 1000
    return (
        f"{moment:%Y-%m-%dT%H:%M:%S}.{millis:03d}3851"
        f"{sign}{hours:02d}:{minutes:02d}"
    )


__all__ = [
    "compute_end_time",
    "format_birthday",
    "generate_strong_password",
    "generate_username",
    "get_random_from_array",
    "normalize_bounds",
    "random_number",
    "random_string",
    "refactor_text_area_message",
    "shuffle_array",
    "tracking_request_date",
]
