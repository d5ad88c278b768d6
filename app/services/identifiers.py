# app/services/identifiers.py
import re
import secrets
from datetime import datetime
from typing import Callable

from app.core.time_utils import local_tz, utcnow

# <PREFIX>-<YEAR>-<5 digits>, e.g. FPW-2025-48213
ID_PATTERN = re.compile(r"^[A-Z]+-\d{4}-\d{5}$")

_SUFFIX_MIN = 10000
_SUFFIX_SPAN = 90000


def generate_id(prefix: str, now: datetime | None = None) -> str:
    """
    Human-readable business id scoped to the current year of the business
    calendar (settings.TIMEZONE).

    Only 90,000 values exist per prefix per year, so collisions are
    possible; use generate_unique_id() when a lookup is available.
    """
    prefix = prefix.strip().upper()
    if not prefix.isalpha() or not prefix.isascii():
        raise ValueError(f"Invalid id prefix: {prefix!r}")

    year = (now or utcnow().astimezone(local_tz())).year
    suffix = _SUFFIX_MIN + secrets.randbelow(_SUFFIX_SPAN)
    return f"{prefix}-{year:04d}-{suffix}"


def is_valid_id(value: str) -> bool:
    return bool(ID_PATTERN.match(value or ""))


def generate_unique_id(
    prefix: str,
    exists: Callable[[str], bool],
    max_attempts: int = 5,
    now: datetime | None = None,
) -> str:
    """
    Draw ids until `exists` reports an unused one.

    Raises:
        RuntimeError: if every attempt collided.
    """
    for _ in range(max_attempts):
        candidate = generate_id(prefix, now=now)
        if not exists(candidate):
            return candidate
    raise RuntimeError(f"Could not allocate a unique {prefix} id after {max_attempts} attempts")
